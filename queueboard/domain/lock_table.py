"""Time-bounded suppression windows for external updates.

A lock on a slot id or a side is held while a local write is in flight and for
a trailing hold afterwards. The sync engine asks this table before applying a
poll result or a broadcast; a locked entity keeps its optimistic value.

Typing flags are tracked separately: any active flag freezes external updates
for the whole view.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from .entities import Side, Slot, SlotId

Clock = Callable[[], float]
K = TypeVar("K", bound=Hashable)


@dataclass
class _Hold:
    in_flight: int = 0
    expires_at: float = 0.0


class _HoldMap(Generic[K]):
    """Per-key in-flight counters plus expiry timestamps."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._holds: Dict[K, _Hold] = {}

    def begin(self, key: K) -> None:
        self._holds.setdefault(key, _Hold()).in_flight += 1

    def end(self, key: K, hold_s: float) -> None:
        hold = self._holds.setdefault(key, _Hold())
        hold.in_flight = max(0, hold.in_flight - 1)
        hold.expires_at = max(hold.expires_at, self._clock() + hold_s)

    def extend(self, key: K, hold_s: float) -> None:
        hold = self._holds.setdefault(key, _Hold())
        hold.expires_at = max(hold.expires_at, self._clock() + hold_s)

    def is_held(self, key: K) -> bool:
        hold = self._holds.get(key)
        if hold is None:
            return False
        if hold.in_flight > 0 or hold.expires_at > self._clock():
            return True
        del self._holds[key]
        return False

    def any_held(self) -> bool:
        return any(self.is_held(key) for key in list(self._holds))

    def expires_at(self, key: K) -> Optional[float]:
        hold = self._holds.get(key)
        return hold.expires_at if hold else None

    def clear(self) -> None:
        self._holds.clear()


class LockTable:
    """Explicit lock table: ``id -> hold``, ``side -> hold``, ``id -> typing``."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock or time.monotonic
        self._entries: _HoldMap[SlotId] = _HoldMap(self.clock)
        self._sides: _HoldMap[str] = _HoldMap(self.clock)
        self._typing: _HoldMap[SlotId] = _HoldMap(self.clock)

    # ---- slot ids ----
    def begin_entry(self, slot_id: SlotId) -> None:
        self._entries.begin(slot_id)

    def end_entry(self, slot_id: SlotId, hold_s: float) -> None:
        self._entries.end(slot_id, hold_s)

    def hold_entry(self, slot_id: SlotId, hold_s: float) -> None:
        self._entries.extend(slot_id, hold_s)

    def entry_locked(self, slot_id: SlotId) -> bool:
        return self._entries.is_held(slot_id)

    # ---- sides ----
    def begin_side(self, side: Side) -> None:
        self._sides.begin(side)

    def end_side(self, side: Side, hold_s: float) -> None:
        self._sides.end(side, hold_s)

    def side_locked(self, side: Side) -> bool:
        return self._sides.is_held(side)

    # ---- typing ----
    def mark_typing(self, slot_id: SlotId, hold_s: float) -> None:
        """Refresh the typing flag; it lapses ``hold_s`` after the last call."""
        self._typing.extend(slot_id, hold_s)

    def typing_active(self) -> bool:
        return self._typing.any_held()

    def is_typing(self, slot_id: SlotId) -> bool:
        return self._typing.is_held(slot_id)

    # ---- queries ----
    def any_active(self) -> bool:
        return self._entries.any_held() or self._sides.any_held() or self._typing.any_held()

    def blocking_reason(self, slot: Slot) -> Optional[str]:
        """Return why an external update for ``slot`` must be dropped, if at all."""
        if self.typing_active():
            return "typing"
        if self.entry_locked(slot.id):
            return "entry"
        if self.side_locked(slot.side):
            return "side"
        return None

    def clear(self) -> None:
        self._entries.clear()
        self._sides.clear()
        self._typing.clear()


__all__ = ["Clock", "LockTable"]
