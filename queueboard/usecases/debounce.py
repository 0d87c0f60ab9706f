"""Debounced dispatch keyed by an arbitrary id (one timer per key)."""

from __future__ import annotations

from typing import Callable, Dict, Hashable

from queueboard.domain.ports import TimerPort


class KeyedDebouncer:
    """Run only the last callback submitted for a key within ``delay_ms``.

    Every ``call`` restarts the key's timer. ``flush`` runs pending callbacks
    immediately and ``cancel_all`` drops them, so no timer outlives the board.
    """

    def __init__(self, timers: TimerPort, delay_ms: int, *, namespace: str = "debounce") -> None:
        self._timers = timers
        self.delay_ms = int(delay_ms)
        self._namespace = namespace
        self._pending: Dict[Hashable, Callable[[], None]] = {}

    def call(self, key: Hashable, callback: Callable[[], None]) -> None:
        self._pending[key] = callback
        self._timers.schedule((self._namespace, key), self.delay_ms, lambda: self._fire(key))

    def _fire(self, key: Hashable) -> None:
        callback = self._pending.pop(key, None)
        if callback is not None:
            callback()

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    def flush(self) -> None:
        for key in list(self._pending):
            self._timers.cancel((self._namespace, key))
            self._fire(key)

    def cancel(self, key: Hashable) -> None:
        self._pending.pop(key, None)
        self._timers.cancel((self._namespace, key))

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)


__all__ = ["KeyedDebouncer"]
