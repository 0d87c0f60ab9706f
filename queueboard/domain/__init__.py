"""Domain package exports for value objects and board rules."""

from .entities import (
    BOARD_ROWS,
    BOARD_SIZE,
    POSITIONS,
    SIDES,
    UNSET,
    HistoryLogEntry,
    Position,
    Side,
    Slot,
    SlotId,
    SlotKey,
    SlotPatch,
    canonical_keys,
    slot_from_payload,
    slots_from_payload,
)
from .lock_table import LockTable
from .slot_view import ClientSlotView
from .text_normalizer import normalize_text

__all__ = [
    "BOARD_ROWS",
    "BOARD_SIZE",
    "ClientSlotView",
    "HistoryLogEntry",
    "LockTable",
    "POSITIONS",
    "Position",
    "SIDES",
    "Side",
    "Slot",
    "SlotId",
    "SlotKey",
    "SlotPatch",
    "UNSET",
    "canonical_keys",
    "normalize_text",
    "slot_from_payload",
    "slots_from_payload",
]
