"""Board view model: row DTOs per side, status line and history rows."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ..domain.entities import BOARD_ROWS, SIDES, HistoryLogEntry, Side, SlotId
from ..domain.ports import UseCaseError
from ..domain.slot_view import ClientSlotView

# Codes that mean "the server is unreachable" rather than "this call failed".
OFFLINE_CODES = frozenset({"REQUEST_TIMEOUT"})


@dataclass(frozen=True)
class BoardRow:
    """One row-group as shown to the user."""

    row_index: int
    side: Side
    p1_id: Optional[SlotId] = None
    p2_id: Optional[SlotId] = None
    p1_text: str = ""
    p2_text: str = ""
    checked: bool = False

    @property
    def populated(self) -> bool:
        return bool(self.p1_text or self.p2_text or self.checked)


@dataclass
class BoardVM:
    """UI state for the board: rows per side, status line, history panel."""

    on_board_changed: Optional[Callable[[Dict[Side, List[BoardRow]]], None]] = None
    on_status_changed: Optional[Callable[[Dict[str, object]], None]] = None
    clock: Callable[[], float] = time.monotonic

    rows: Dict[Side, List[BoardRow]] = field(default_factory=dict)
    history: List[HistoryLogEntry] = field(default_factory=list)
    error_code: Optional[str] = None
    error_message: str = ""
    offline: bool = False
    connection_state: str = "disconnected"
    retry_at: Optional[float] = None

    # ------------------------------------------------------------------
    # Board
    # ------------------------------------------------------------------
    def apply_view(self, view: ClientSlotView) -> Dict[Side, List[BoardRow]]:
        """Rebuild row DTOs from the slot view and notify the board widget."""
        rows: Dict[Side, List[BoardRow]] = {}
        for side in SIDES:
            groups = view.row_groups(side)
            side_rows: List[BoardRow] = []
            for row_index in range(max([BOARD_ROWS - 1, *groups.keys()]) + 1):
                group = groups.get(row_index, {})
                p1 = group.get("P1")
                p2 = group.get("P2")
                side_rows.append(
                    BoardRow(
                        row_index=row_index,
                        side=side,
                        p1_id=p1.id if p1 else None,
                        p2_id=p2.id if p2 else None,
                        p1_text=p1.text if p1 else "",
                        p2_text=p2.text if p2 else "",
                        checked=bool((p1 and p1.checked) or (p2 and p2.checked)),
                    )
                )
            rows[side] = side_rows
        self.rows = rows
        if self.on_board_changed:
            self.on_board_changed(rows)
        return rows

    def row(self, side: Side, row_index: int) -> Optional[BoardRow]:
        for item in self.rows.get(side, []):
            if item.row_index == row_index:
                return item
        return None

    def checked_row(self, side: Side) -> Optional[int]:
        for item in self.rows.get(side, []):
            if item.checked:
                return item.row_index
        return None

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def apply_error(self, err: UseCaseError) -> None:
        self.error_code = err.code
        self.error_message = err.message
        if err.code in OFFLINE_CODES:
            self.offline = True
        retry_after = err.meta.get("retry_after_s")
        if err.code == "RATE_LIMITED" and retry_after is not None:
            self.retry_at = self.clock() + float(retry_after)
        self._emit_status()

    def apply_recovered(self) -> None:
        """Clear the offline indicator and error after a successful poll."""
        self.offline = False
        self.error_code = None
        self.error_message = ""
        self.retry_at = None
        self._emit_status()

    def clear_error(self) -> None:
        """Drop a stale error after a later call succeeded; no-op when clean."""
        if self.error_code is None and not self.offline and self.retry_at is None:
            return
        self.apply_recovered()

    def set_connection_state(self, state: str) -> None:
        self.connection_state = state
        self._emit_status()

    def retry_hint(self, now: Optional[float] = None) -> str:
        """Countdown label for a rate-limited client, empty once it elapsed."""
        if self.retry_at is None:
            return ""
        current = self.clock() if now is None else now
        remaining = self.retry_at - current
        if remaining <= 0:
            return ""
        return f"Retry in {math.ceil(remaining)}s"

    def status(self, now: Optional[float] = None) -> Dict[str, object]:
        return {
            "error_code": self.error_code,
            "error_message": self.error_message,
            "offline": self.offline,
            "connection": self.connection_state,
            "retry_hint": self.retry_hint(now),
        }

    def _emit_status(self) -> None:
        if self.on_status_changed:
            self.on_status_changed(self.status())

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def set_history(self, entries: Sequence[HistoryLogEntry]) -> None:
        self.history = list(entries)

    def history_rows(self) -> List[Dict[str, object]]:
        """History entries as display rows, newest first."""
        return [
            {
                "when": entry.timestamp or "",
                "slot": f"{entry.side} row {entry.row_index + 1} {entry.position}",
                "action": entry.action,
                "old": entry.old_value or "",
                "new": entry.new_value or "",
            }
            for entry in self.history
        ]


__all__ = ["BoardRow", "BoardVM", "OFFLINE_CODES"]
