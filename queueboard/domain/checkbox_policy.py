"""Checkbox exclusivity and reorder-on-uncheck rules for one cabinet side.

The functions here are pure: they read a set of slots and return the writes
needed to reach the target state. The mutation dispatcher applies the writes
to the view optimistically and then sends them to the store.

A row-group is checked when its P1 slot is checked. At most one row-group per
side may be checked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .entities import UNSET, Position, Side, Slot, SlotId, SlotPatch, dedupe_by_key


@dataclass(frozen=True)
class PlannedWrite:
    """One store update the transition needs."""

    slot_id: SlotId
    patch: SlotPatch


@dataclass(frozen=True)
class TransitionPlan:
    """Writes produced by a check or uncheck transition on one side."""

    side: Side
    row_index: int
    writes: Tuple[PlannedWrite, ...] = field(default_factory=tuple)
    noop_reason: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return not self.writes

    def slot_ids(self) -> List[SlotId]:
        return [write.slot_id for write in self.writes]


def _side_groups(slots: Iterable[Slot], side: Side) -> Dict[int, Dict[Position, Slot]]:
    groups: Dict[int, Dict[Position, Slot]] = {}
    for slot in dedupe_by_key(slots):
        if slot.side != side:
            continue
        groups.setdefault(slot.row_index, {})[slot.position] = slot
    return groups


def checked_rows(slots: Iterable[Slot], side: Side) -> List[int]:
    """Rows on ``side`` that currently have a checked slot, ascending."""
    rows = {slot.row_index for slot in dedupe_by_key(slots) if slot.side == side and slot.checked}
    return sorted(rows)


def is_row_checked(slots: Iterable[Slot], row_index: int, side: Side) -> bool:
    return row_index in checked_rows(slots, side)


def plan_check(slots: Iterable[Slot], row_index: int, side: Side) -> TransitionPlan:
    """Check ``row_index`` and uncheck every other checked slot on ``side``.

    Only slots whose ``checked`` value changes get a write.
    """
    groups = _side_groups(slots, side)
    if row_index not in groups:
        return TransitionPlan(side=side, row_index=row_index, noop_reason="unknown row")
    writes: List[PlannedWrite] = []
    for row in sorted(groups):
        for position in sorted(groups[row]):
            slot = groups[row][position]
            should_check = row == row_index and position == "P1"
            if slot.checked != should_check:
                writes.append(PlannedWrite(slot.id, SlotPatch(checked=should_check)))
    return TransitionPlan(side=side, row_index=row_index, writes=tuple(writes))


def _is_populated(group: Dict[Position, Slot]) -> bool:
    return any(slot.text or slot.checked for slot in group.values())


def plan_uncheck(slots: Iterable[Slot], row_index: int, side: Side) -> TransitionPlan:
    """Uncheck ``row_index`` and move its row-group to the bottom of the stack.

    Populated rows other than the target keep their relative order and are
    renumbered from 0; the target takes the next index; empty rows follow in
    their existing order. Text stays with its slot id. Unchecking a row that is
    not checked is a no-op.
    """
    groups = _side_groups(slots, side)
    if row_index not in groups:
        return TransitionPlan(side=side, row_index=row_index, noop_reason="unknown row")
    if not any(slot.checked for slot in groups[row_index].values()):
        return TransitionPlan(side=side, row_index=row_index, noop_reason="row not checked")

    others = [row for row in sorted(groups) if row != row_index]
    populated = [row for row in others if _is_populated(groups[row])]
    empty = [row for row in others if row not in populated]
    order = populated + [row_index] + empty

    writes: List[PlannedWrite] = []
    for new_index, old_row in enumerate(order):
        for position in sorted(groups[old_row]):
            slot = groups[old_row][position]
            new_row = new_index if new_index != slot.row_index else None
            uncheck = old_row == row_index and slot.checked
            if new_row is None and not uncheck:
                continue
            patch = SlotPatch(
                row_index=new_row if new_row is not None else UNSET,
                checked=False if uncheck else UNSET,
            )
            writes.append(PlannedWrite(slot.id, patch))
    return TransitionPlan(side=side, row_index=row_index, writes=tuple(writes))


__all__ = [
    "PlannedWrite",
    "TransitionPlan",
    "checked_rows",
    "is_row_checked",
    "plan_check",
    "plan_uncheck",
]
