"""Root logger setup for the board client.

``QUEUEBOARD_LOG_LEVEL`` sets the root level, ``QUEUEBOARD_DEBUG`` forces
DEBUG, and ``QUEUEBOARD_LOG_LEVELS`` takes per-logger overrides such as
``queueboard.usecases.sync_engine=DEBUG,queueboard.adapters=WARNING`` so lock
decisions can be traced without flooding the console with HTTP noise.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Mapping, Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
LOG_DATEFMT = "%H:%M:%S"

LEVEL_VAR = "QUEUEBOARD_LOG_LEVEL"
DEBUG_VAR = "QUEUEBOARD_DEBUG"
OVERRIDES_VAR = "QUEUEBOARD_LOG_LEVELS"

# urllib3 logs every pooled connection; keep it out of INFO output.
HTTP_LOGGERS = ("urllib3", "requests")

_TRUTHY = {"1", "true", "yes", "on"}


def parse_level(value: Union[int, str, None], fallback: int = logging.INFO) -> int:
    """Resolve ``"debug"``, ``"10"`` or ``10`` to a level; unknown input gives ``fallback``."""
    if isinstance(value, int):
        return value
    name = (value or "").strip().upper()
    if not name:
        return fallback
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else fallback


def parse_overrides(spec: Optional[str]) -> Dict[str, int]:
    """Parse ``name=LEVEL`` pairs separated by commas; malformed pairs are skipped."""
    overrides: Dict[str, int] = {}
    for chunk in (spec or "").split(","):
        name, sep, level = chunk.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        resolved = parse_level(level, fallback=-1)
        if resolved >= 0:
            overrides[name] = resolved
    return overrides


def env_level(env: Optional[Mapping[str, str]] = None) -> Optional[int]:
    """Root level requested by the environment, or ``None`` when unset."""
    source = os.environ if env is None else env
    explicit = source.get(LEVEL_VAR)
    if explicit and explicit.strip():
        return parse_level(explicit)
    if (source.get(DEBUG_VAR) or "").strip().lower() in _TRUTHY:
        return logging.DEBUG
    return None


def configure_root(
    default_level: Union[int, str] = logging.INFO,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Configure the root logger once and apply environment overrides.

    Returns the effective root level.
    """
    source = os.environ if env is None else env
    requested = env_level(source)
    effective = requested if requested is not None else parse_level(default_level)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    root.setLevel(effective)

    http_level = logging.DEBUG if effective <= logging.DEBUG else logging.WARNING
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    for name, level in parse_overrides(source.get(OVERRIDES_VAR)).items():
        logging.getLogger(name).setLevel(level)
    return effective


__all__ = ["configure_root", "env_level", "parse_level", "parse_overrides"]
