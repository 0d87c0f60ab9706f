"""Client settings value object shared by the sync use cases and the runtime."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SettingsConfig:
    """Runtime settings for one board client.

    Timing fields are milliseconds except ``request_timeout_s``.
    """

    api_base_url: str = ""
    api_key: str = ""
    request_timeout_s: int = 10
    retries: int = 0
    poll_interval_ms: int = 5000
    debounce_ms: int = 500
    typing_hold_ms: int = 1000
    slot_lock_ms: int = 2000
    side_lock_ms: int = 3000
    io_workers: int = 8
    realtime: bool = True
    history_limit: int = 100

    @property
    def offline(self) -> bool:
        return not self.api_base_url

    @property
    def slot_lock_s(self) -> float:
        return self.slot_lock_ms / 1000.0

    @property
    def side_lock_s(self) -> float:
        return self.side_lock_ms / 1000.0

    @property
    def typing_hold_s(self) -> float:
        return self.typing_hold_ms / 1000.0

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000.0


__all__ = ["SettingsConfig"]
