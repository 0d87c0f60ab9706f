"""Load ``SettingsConfig`` from ``QUEUEBOARD_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import fields, replace
from typing import Any, Dict, Mapping, Optional

from ..domain.settings import SettingsConfig

_log = logging.getLogger(__name__)

ENV_PREFIX = "QUEUEBOARD_"

_MINIMUMS: Dict[str, int] = {
    "request_timeout_s": 1,
    "retries": 0,
    "poll_interval_ms": 200,
    "debounce_ms": 0,
    "typing_hold_ms": 0,
    "slot_lock_ms": 0,
    "side_lock_ms": 0,
    "io_workers": 1,
    "history_limit": 1,
}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _coerce_int(name: str, value: Any, fallback: int) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        _log.warning("Ignoring invalid %s=%r, using %s", name, value, fallback)
        return fallback
    minimum = _MINIMUMS.get(name, 0)
    if number < minimum:
        _log.warning("%s=%s below minimum %s, clamping", name, number, minimum)
        return minimum
    return number


def apply_overrides(config: SettingsConfig, payload: Mapping[str, Any]) -> SettingsConfig:
    """Return ``config`` with known keys of ``payload`` coerced and applied."""
    updates: Dict[str, Any] = {}
    for spec in fields(SettingsConfig):
        if spec.name not in payload:
            continue
        raw = payload[spec.name]
        default = getattr(config, spec.name)
        if isinstance(default, bool):
            updates[spec.name] = _coerce_bool(raw)
        elif isinstance(default, int):
            updates[spec.name] = _coerce_int(spec.name, raw, default)
        else:
            updates[spec.name] = str(raw).strip()
    if "api_base_url" in updates:
        updates["api_base_url"] = updates["api_base_url"].rstrip("/")
    return replace(config, **updates) if updates else config


def load_settings(env: Optional[Mapping[str, str]] = None) -> SettingsConfig:
    """Build settings from ``QUEUEBOARD_*`` variables (``QUEUEBOARD_API_URL`` etc.)."""
    source = os.environ if env is None else env
    payload: Dict[str, Any] = {}
    aliases = {"api_base_url": "API_URL"}
    for spec in fields(SettingsConfig):
        var = ENV_PREFIX + aliases.get(spec.name, spec.name.upper())
        value = source.get(var)
        if value is not None and value != "":
            payload[spec.name] = value
    return apply_overrides(SettingsConfig(), payload)


__all__ = ["SettingsConfig", "apply_overrides", "load_settings"]
