"""In-process ``StorePort`` for offline boards and tests.

Follows the backend's row-swap and history rules.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from queueboard.domain.entities import (
    UNSET,
    HistoryAction,
    HistoryLogEntry,
    Slot,
    SlotId,
    SlotKey,
    SlotPatch,
    canonical_keys,
    sort_key,
)
from queueboard.domain.ports import StorePort

from .api_errors import ApiNotFoundError


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class MemoryStore(StorePort):
    """Offline substitute for ``StoreRestAdapter`` with the same store semantics.

    History is written only when ``text`` or ``checked`` actually changes, and
    ``clear_slot_text`` always logs the old text. Moving a slot onto an occupied
    row swaps the occupant into the vacated row so identities stay unique.
    Every port call is appended to ``calls`` as ``(method, args)``.
    """

    history_limit: int = 100
    calls: List[Tuple[str, tuple]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: Dict[SlotId, Slot] = {}
        self._history: List[HistoryLogEntry] = []
        self._next_id = 1
        self._next_history_id = 1

    # ---------- StorePort ----------

    def list_slots(self) -> List[Slot]:
        with self._lock:
            self.calls.append(("list_slots", ()))
            return sorted(self._slots.values(), key=sort_key)

    def get_slot(self, slot_id: SlotId) -> Slot:
        with self._lock:
            self.calls.append(("get_slot", (slot_id,)))
            return self._require(slot_id)

    def update_slot(self, slot_id: SlotId, patch: SlotPatch) -> Slot:
        with self._lock:
            self.calls.append(("update_slot", (slot_id, patch)))
            current = self._require(slot_id)
            if patch.row_index is not UNSET and patch.row_index != current.row_index:
                self._vacate(current, patch.row_index)
            updated = replace(patch.apply_to(current), updated_at=_utcnow_iso())
            self._slots[slot_id] = updated
            if patch.checked is not UNSET and patch.checked != current.checked:
                action: HistoryAction = "checked" if patch.checked else "unchecked"
                self._log(current, action, str(current.checked).lower(), str(patch.checked).lower())
            if patch.text is not UNSET and patch.text != current.text:
                self._log(current, "text_changed", current.text, patch.text)
            return updated

    def clear_slot_text(self, slot_id: SlotId) -> Slot:
        with self._lock:
            self.calls.append(("clear_slot_text", (slot_id,)))
            current = self._require(slot_id)
            updated = replace(current, text="", updated_at=_utcnow_iso())
            self._slots[slot_id] = updated
            self._log(current, "text_changed", current.text, "")
            return updated

    def initialize_grid(self) -> List[Slot]:
        with self._lock:
            self.calls.append(("initialize_grid", ()))
            existing = {slot.key for slot in self._slots.values()}
            for key in canonical_keys():
                if key in existing:
                    continue
                slot = Slot(
                    id=self._next_id,
                    row_index=key.row_index,
                    side=key.side,
                    position=key.position,
                    updated_at=_utcnow_iso(),
                )
                self._slots[slot.id] = slot
                self._next_id += 1
            return sorted(self._slots.values(), key=sort_key)

    def list_history(self, limit: int = 100) -> List[HistoryLogEntry]:
        with self._lock:
            self.calls.append(("list_history", (limit,)))
            size = max(0, min(int(limit), self.history_limit))
            return list(reversed(self._history))[:size]

    # ---------- Test/offline helpers ----------

    def seed(self, slots: List[Slot]) -> None:
        with self._lock:
            for slot in slots:
                self._slots[slot.id] = slot
                self._next_id = max(self._next_id, slot.id + 1)

    def calls_to(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    # ---------- Internals ----------

    def _require(self, slot_id: SlotId) -> Slot:
        slot = self._slots.get(slot_id)
        if slot is None:
            raise ApiNotFoundError(f"Entry {slot_id} not found", status=404)
        return slot

    def _occupant(self, key: SlotKey) -> Optional[Slot]:
        for slot in self._slots.values():
            if slot.key == key:
                return slot
        return None

    def _vacate(self, mover: Slot, target_row: int) -> None:
        occupant = self._occupant(SlotKey(target_row, mover.side, mover.position))
        if occupant is not None and occupant.id != mover.id:
            self._slots[occupant.id] = replace(occupant, row_index=mover.row_index)

    def _log(self, slot: Slot, action: HistoryAction, old: Optional[str], new: Optional[str]) -> None:
        self._history.append(
            HistoryLogEntry(
                id=self._next_history_id,
                row_index=slot.row_index,
                side=slot.side,
                position=slot.position,
                action=action,
                old_value=old,
                new_value=new,
                timestamp=_utcnow_iso(),
            )
        )
        self._next_history_id += 1
        if len(self._history) > self.history_limit:
            del self._history[: len(self._history) - self.history_limit]


__all__ = ["MemoryStore"]
