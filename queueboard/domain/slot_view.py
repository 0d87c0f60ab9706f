"""In-memory mirror of all slots, addressed by store id.

Entries are frozen ``Slot`` values and are only ever replaced as a whole, so a
reader never observes a half-applied update. ``revision`` advances only when a
stored value actually changes, which lets callers skip redundant redraws.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional

from .entities import Position, Side, Slot, SlotId, SlotKey, SlotPatch, dedupe_by_key, sort_key


class ClientSlotView:
    """Client-side copy of the board rebuilt from polls and patched locally."""

    def __init__(self, slots: Iterable[Slot] = ()) -> None:
        self._slots: Dict[SlotId, Slot] = {slot.id: slot for slot in slots}
        self.revision = 0

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._slots

    def get(self, slot_id: SlotId) -> Optional[Slot]:
        return self._slots.get(slot_id)

    def all(self) -> List[Slot]:
        return sorted(self._slots.values(), key=sort_key)

    def ids(self) -> List[SlotId]:
        return list(self._slots)

    def find(self, key: SlotKey) -> Optional[Slot]:
        """Return the slot occupying ``key``; duplicates resolve to the highest id."""
        found: Optional[Slot] = None
        for slot in self._slots.values():
            if slot.key == key and (found is None or slot.id > found.id):
                found = slot
        return found

    def side_slots(self, side: Side) -> List[Slot]:
        """Deduplicated slots of one side in row order."""
        return [slot for slot in dedupe_by_key(self._slots.values()) if slot.side == side]

    def row_groups(self, side: Side) -> Dict[int, Dict[Position, Slot]]:
        groups: Dict[int, Dict[Position, Slot]] = {}
        for slot in self.side_slots(side):
            groups.setdefault(slot.row_index, {})[slot.position] = slot
        return groups

    # ------------------------------------------------------------------
    # Mutation (whole-value replacement only)
    # ------------------------------------------------------------------
    def put(self, slot: Slot) -> bool:
        """Store ``slot`` unless an equal value is already present."""
        current = self._slots.get(slot.id)
        if current is not None and current.same_content(slot):
            return False
        self._slots[slot.id] = slot
        self.revision += 1
        return True

    def patch(self, slot_id: SlotId, patch: SlotPatch) -> Optional[Slot]:
        """Apply ``patch`` to one slot; returns the new value or ``None`` if unchanged."""
        current = self._slots.get(slot_id)
        if current is None:
            return None
        updated = patch.apply_to(current)
        if not self.put(updated):
            return None
        return updated

    def replace_all(
        self,
        slots: Iterable[Slot],
        *,
        skip: Callable[[Slot], bool] = lambda _slot: False,
    ) -> List[SlotId]:
        """Merge a full snapshot, leaving slots for which ``skip`` is true untouched.

        Ids missing from the snapshot are dropped unless ``skip`` protects them.
        Returns the ids whose stored value changed.
        """
        incoming: Dict[SlotId, Slot] = {}
        for slot in slots:
            incoming[slot.id] = slot
        changed: List[SlotId] = []
        for slot_id, slot in incoming.items():
            if skip(slot):
                continue
            if self.put(slot):
                changed.append(slot_id)
        for slot_id in [sid for sid in self._slots if sid not in incoming]:
            if skip(self._slots[slot_id]):
                continue
            del self._slots[slot_id]
            self.revision += 1
            changed.append(slot_id)
        return changed


__all__ = ["ClientSlotView"]
