from __future__ import annotations

"""Domain value objects shared by the sync engine, adapters and view models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple

Side = Literal["left", "right"]
Position = Literal["P1", "P2"]
SlotId = int
HistoryAction = Literal["checked", "unchecked", "text_changed"]

BOARD_ROWS = 12
SIDES: Tuple[Side, ...] = ("left", "right")
POSITIONS: Tuple[Position, ...] = ("P1", "P2")
HISTORY_ACTIONS: Tuple[HistoryAction, ...] = ("checked", "unchecked", "text_changed")
BOARD_SIZE = BOARD_ROWS * len(SIDES) * len(POSITIONS)


class _Unset:
    """Marker type for fields absent from a partial update."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class SlotKey:
    """Logical grid coordinate ``(row_index, side, position)`` of a slot."""

    row_index: int
    side: Side
    position: Position

    def __post_init__(self) -> None:
        if isinstance(self.row_index, bool) or not isinstance(self.row_index, int):
            raise TypeError("SlotKey.row_index must be an integer.")
        if self.side not in SIDES:
            raise ValueError(f"Unknown side '{self.side}'.")
        if self.position not in POSITIONS:
            raise ValueError(f"Unknown position '{self.position}'.")

    def __str__(self) -> str:
        return f"{self.side}:{self.row_index}:{self.position}"


@dataclass(frozen=True)
class Slot:
    """One cell of the board as last observed or optimistically patched."""

    id: SlotId
    """Store-assigned surrogate key; stable across row reassignment."""
    row_index: int
    """Row the slot currently occupies on its side."""
    side: Side
    """Cabinet the slot belongs to."""
    position: Position
    """Player position inside the row-group."""
    text: str = ""
    """Free-form player entry."""
    checked: bool = False
    """Row-group check state; only P1 slots are ever checked."""
    updated_at: Optional[str] = None
    """Server timestamp as reported on the wire, ``None`` for local copies."""

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise TypeError("Slot.id must be an integer.")
        if self.side not in SIDES:
            raise ValueError(f"Unknown side '{self.side}'.")
        if self.position not in POSITIONS:
            raise ValueError(f"Unknown position '{self.position}'.")
        if not isinstance(self.text, str):
            raise TypeError("Slot.text must be a string.")
        object.__setattr__(self, "checked", bool(self.checked))

    @property
    def key(self) -> SlotKey:
        return SlotKey(self.row_index, self.side, self.position)

    def same_content(self, other: "Slot") -> bool:
        """Return True when ``other`` would render identically (timestamps ignored)."""
        return (
            self.text == other.text
            and self.checked == other.checked
            and self.row_index == other.row_index
            and self.side == other.side
            and self.position == other.position
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rowIndex": self.row_index,
            "side": self.side,
            "position": self.position,
            "text": self.text,
            "checked": self.checked,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class SlotPatch:
    """Partial update for a slot with explicit presence per field.

    Fields left as ``UNSET`` are not sent and stay unchanged in the store.
    """

    text: Any = UNSET
    checked: Any = UNSET
    row_index: Any = UNSET

    def __post_init__(self) -> None:
        if self.text is not UNSET and not isinstance(self.text, str):
            raise TypeError("SlotPatch.text must be a string when present.")
        if self.checked is not UNSET and not isinstance(self.checked, bool):
            raise TypeError("SlotPatch.checked must be a bool when present.")
        if self.row_index is not UNSET and (
            isinstance(self.row_index, bool) or not isinstance(self.row_index, int)
        ):
            raise TypeError("SlotPatch.row_index must be an integer when present.")

    def is_empty(self) -> bool:
        return self.text is UNSET and self.checked is UNSET and self.row_index is UNSET

    def apply_to(self, slot: Slot) -> Slot:
        """Return a new slot with the present fields replaced."""
        changes: Dict[str, Any] = {}
        if self.text is not UNSET:
            changes["text"] = self.text
        if self.checked is not UNSET:
            changes["checked"] = self.checked
        if self.row_index is not UNSET:
            changes["row_index"] = self.row_index
        if not changes:
            return slot
        return Slot(
            id=slot.id,
            row_index=changes.get("row_index", slot.row_index),
            side=slot.side,
            position=slot.position,
            text=changes.get("text", slot.text),
            checked=changes.get("checked", slot.checked),
            updated_at=slot.updated_at,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.text is not UNSET:
            payload["text"] = self.text
        if self.checked is not UNSET:
            payload["checked"] = self.checked
        if self.row_index is not UNSET:
            payload["rowIndex"] = self.row_index
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SlotPatch":
        return cls(
            text=payload["text"] if "text" in payload else UNSET,
            checked=payload["checked"] if "checked" in payload else UNSET,
            row_index=payload["rowIndex"] if "rowIndex" in payload else UNSET,
        )


@dataclass(frozen=True)
class HistoryLogEntry:
    """Immutable audit record written by the store on a slot change."""

    id: int
    row_index: int
    side: Side
    position: Position
    action: HistoryAction
    old_value: Optional[str]
    new_value: Optional[str]
    timestamp: Optional[str] = None

    def __post_init__(self) -> None:
        if self.action not in HISTORY_ACTIONS:
            raise ValueError(f"Unknown history action '{self.action}'.")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rowIndex": self.row_index,
            "side": self.side,
            "position": self.position,
            "action": self.action,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "timestamp": self.timestamp,
        }


def canonical_keys() -> List[SlotKey]:
    """Return the 48 identity keys of a fresh board in store order."""
    return [
        SlotKey(row, side, position)
        for row in range(BOARD_ROWS)
        for side in SIDES
        for position in POSITIONS
    ]


def sort_key(slot: Slot) -> Tuple[int, str, str]:
    return (slot.row_index, slot.side, slot.position)


def _format_timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def slot_from_payload(payload: Any) -> Slot:
    """Parse a wire-format slot (camelCase keys) into a ``Slot``.

    Raises:
        ValueError: When the payload is not a mapping or misses required keys.
    """
    if isinstance(payload, Slot):
        return payload
    if not isinstance(payload, Mapping):
        raise ValueError(f"Slot payload must be an object, got {type(payload).__name__}.")
    try:
        raw_id = payload["id"]
        raw_row = payload.get("rowIndex", payload.get("row_index"))
        side = payload["side"]
        position = payload["position"]
    except KeyError as exc:
        raise ValueError(f"Slot payload missing key {exc}.") from exc
    if raw_row is None:
        raise ValueError("Slot payload missing key 'rowIndex'.")
    try:
        slot_id = int(raw_id)
        row_index = int(raw_row)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Slot payload has non-integer id/rowIndex: {exc}") from exc
    text = payload.get("text")
    try:
        return Slot(
            id=slot_id,
            row_index=row_index,
            side=side,
            position=position,
            text="" if text is None else str(text),
            checked=bool(payload.get("checked", False)),
            updated_at=_format_timestamp(payload.get("updatedAt", payload.get("updated_at"))),
        )
    except TypeError as exc:
        raise ValueError(str(exc)) from exc


def slots_from_payload(payload: Any) -> List[Slot]:
    """Parse a wire-format slot array; non-array payloads raise ``ValueError``."""
    if not isinstance(payload, list):
        raise ValueError(f"Expected a slot array, got {type(payload).__name__}.")
    return [slot_from_payload(item) for item in payload]


def history_from_payload(payload: Any) -> HistoryLogEntry:
    if not isinstance(payload, Mapping):
        raise ValueError("History payload must be an object.")
    try:
        return HistoryLogEntry(
            id=int(payload["id"]),
            row_index=int(payload["rowIndex"]),
            side=payload["side"],
            position=payload["position"],
            action=payload["action"],
            old_value=payload.get("oldValue"),
            new_value=payload.get("newValue"),
            timestamp=_format_timestamp(payload.get("timestamp")),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed history payload: {exc}") from exc


def dedupe_by_key(slots: Iterable[Slot]) -> List[Slot]:
    """Keep one slot per identity key, preferring the highest id."""
    best: Dict[SlotKey, Slot] = {}
    for slot in slots:
        current = best.get(slot.key)
        if current is None or slot.id > current.id:
            best[slot.key] = slot
    return sorted(best.values(), key=sort_key)


__all__ = [
    "BOARD_ROWS",
    "BOARD_SIZE",
    "HISTORY_ACTIONS",
    "HistoryAction",
    "HistoryLogEntry",
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
    "dedupe_by_key",
    "history_from_payload",
    "slot_from_payload",
    "slots_from_payload",
    "sort_key",
]
