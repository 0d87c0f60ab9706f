"""Keyed timer registry on top of a UI scheduler.

The runtime passes Tk-style ``after`` and ``after_cancel`` callables into
this class so timer state for the poll loop, debounced writes and the I/O
pump is tracked in one place and canceled safely when the board shuts down.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional


ScheduleFn = Callable[[int, Callable[[], None]], Any]
CancelFn = Callable[[Any], None]

_log = logging.getLogger(__name__)


@dataclass
class TimerHandle:
    """Timer token associated with a single key.

    Attributes:
        key: Timer key (``"poll"``, ``("debounce", 7)``, ...).
        token: Scheduler token returned by the UI scheduler implementation.
    """
    key: Hashable
    token: Any


class TimerScheduler:
    """Manage keyed one-shot timers using a UI scheduler (for example Tk)."""

    def __init__(self, schedule: ScheduleFn, cancel: CancelFn) -> None:
        """Store schedule/cancel functions and initialize handle registry.

        Args:
            schedule: Function compatible with ``after(delay_ms, callback)``.
            cancel: Function compatible with ``after_cancel(token)``.
        """
        self._schedule = schedule
        self._cancel = cancel
        self._handles: Dict[Hashable, TimerHandle] = {}

    def schedule(self, key: Hashable, delay_ms: int, callback: Callable[[], None]) -> None:
        """Schedule or reschedule ``callback`` under ``key``.

        An earlier timer with the same key is canceled first, so only the most
        recent callback for a key ever fires.
        """
        delay = max(1, int(delay_ms))
        self.cancel(key)

        def _fire() -> None:
            handle = self._handles.get(key)
            if handle is None or handle.token is not token_box[0]:
                return
            del self._handles[key]
            callback()

        token_box: list = [None]
        token = self._schedule(delay, _fire)
        token_box[0] = token
        self._handles[key] = TimerHandle(key=key, token=token)

    def cancel(self, key: Hashable) -> None:
        """Cancel a pending timer; unknown keys are ignored."""
        handle = self._handles.pop(key, None)
        if not handle:
            return
        try:
            self._cancel(handle.token)
        except Exception as exc:
            _log.debug("Timer cancel for %r failed: %s", key, exc)

    def cancel_all(self) -> None:
        """Cancel all pending timers."""
        for key in list(self._handles.keys()):
            self.cancel(key)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._handles

    def handle_for(self, key: Hashable) -> Optional[TimerHandle]:
        """Return the current handle for a key, if scheduled."""
        return self._handles.get(key)

    def pending_keys(self) -> list:
        return list(self._handles)


__all__ = ["TimerHandle", "TimerScheduler"]
