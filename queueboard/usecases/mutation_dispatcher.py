"""Turn user intents into optimistic view patches, locks and store writes.

Every operation patches the view synchronously first, takes its locks, and
only then hands the store call to the background runner. Completions run on
the UI thread: they release locks on the trailing hold, publish
``entry-updated`` on success and report failures through ``SyncHooks``.
The store's returned slot is not written back into the view; the next poll
after the lock expires repairs any divergence.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional

from queueboard.domain.checkbox_policy import TransitionPlan, plan_check, plan_uncheck
from queueboard.domain.entities import Side, Slot, SlotId, SlotPatch
from queueboard.domain.lock_table import LockTable
from queueboard.domain.ports import (
    EVENT_ENTRY_UPDATED,
    BroadcastPort,
    StorePort,
    TaskRunnerPort,
    TimerPort,
)
from queueboard.domain.settings import SettingsConfig
from queueboard.domain.slot_view import ClientSlotView
from queueboard.domain.text_normalizer import normalize_text
from queueboard.usecases.debounce import KeyedDebouncer
from queueboard.usecases.error_mapping import map_api_error
from queueboard.usecases.sync_engine import SyncHooks


class MutationDispatcher:
    """Command surface used by the board view model."""

    def __init__(
        self,
        store: StorePort,
        broadcast: Optional[BroadcastPort],
        runner: TaskRunnerPort,
        timers: TimerPort,
        locks: LockTable,
        view: ClientSlotView,
        *,
        settings: Optional[SettingsConfig] = None,
        hooks: Optional[SyncHooks] = None,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.store = store
        self.broadcast = broadcast
        self.runner = runner
        self.locks = locks
        self.view = view
        self.settings = settings or SettingsConfig()
        self.hooks = hooks or SyncHooks()
        self.debouncer = KeyedDebouncer(timers, self.settings.debounce_ms, namespace="text")
        self._in_flight: Dict[int, Future] = {}
        self._seq = 0

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------
    def set_text(self, slot_id: SlotId, raw_text: str) -> Optional[Slot]:
        """Show ``raw_text`` (normalized) now; write it once typing pauses.

        Returns the patched slot, or ``None`` for unknown ids or unchanged text.
        """
        if slot_id not in self.view:
            self._log.warning("set_text for unknown slot %s ignored", slot_id)
            return None
        text = normalize_text(raw_text)
        updated = self.view.patch(slot_id, SlotPatch(text=text))
        if updated is not None:
            self.hooks.on_view_changed([slot_id])
        settings = self.settings
        self.locks.mark_typing(slot_id, settings.typing_hold_s)
        # Covers the debounce window; the write itself then holds the id.
        self.locks.hold_entry(slot_id, settings.debounce_s + settings.slot_lock_s)
        self.debouncer.call(
            slot_id,
            lambda: self._write(slot_id, SlotPatch(text=text), op="set_text"),
        )
        return updated

    def flush(self) -> None:
        """Send pending debounced text writes immediately."""
        self.debouncer.flush()

    def close(self) -> None:
        """Drop pending debounced writes; in-flight calls still release locks."""
        self.debouncer.cancel_all()

    # ------------------------------------------------------------------
    # Checkboxes
    # ------------------------------------------------------------------
    def toggle_checked(self, row_index: int, side: Side, checked: bool) -> TransitionPlan:
        """Check a row-group (exclusive per side) or uncheck it and move it to the bottom."""
        slots = self.view.all()
        if checked:
            plan = plan_check(slots, row_index, side)
        else:
            plan = plan_uncheck(slots, row_index, side)
        if plan.is_noop:
            self._log.debug(
                "toggle_checked(%s, %s, %s) is a no-op: %s",
                row_index,
                side,
                checked,
                plan.noop_reason or "already in target state",
            )
            return plan

        changed: List[SlotId] = []
        for write in plan.writes:
            if self.view.patch(write.slot_id, write.patch) is not None:
                changed.append(write.slot_id)
        if changed:
            self.hooks.on_view_changed(changed)
        op = "check" if checked else "uncheck"
        for write in plan.writes:
            self._write(write.slot_id, write.patch, op=op, side=side)
        return plan

    # ------------------------------------------------------------------
    # Clearing
    # ------------------------------------------------------------------
    def clear_slot(self, slot_id: SlotId, *, side: Optional[Side] = None) -> None:
        if slot_id not in self.view:
            self._log.warning("clear_slot for unknown slot %s ignored", slot_id)
            return
        # A pending keystroke write would resurrect the text after the clear.
        self.debouncer.cancel(slot_id)
        if self.view.patch(slot_id, SlotPatch(text="")) is not None:
            self.hooks.on_view_changed([slot_id])
        self._submit(slot_id, self.store.clear_slot_text, slot_id, op="clear", side=side)

    def clear_row(self, row_index: int, side: Side) -> List[SlotId]:
        """Clear both slots of a row-group; both store calls run concurrently."""
        group = self.view.row_groups(side).get(row_index, {})
        ids = [group[position].id for position in sorted(group)]
        if not ids:
            self._log.warning("clear_row(%s, %s): row not in view", row_index, side)
            return []
        for slot_id in ids:
            self.clear_slot(slot_id, side=side)
        return ids

    # ------------------------------------------------------------------
    # Store calls
    # ------------------------------------------------------------------
    def _write(self, slot_id: SlotId, patch: SlotPatch, *, op: str, side: Optional[Side] = None) -> None:
        self._submit(slot_id, self.store.update_slot, slot_id, patch, op=op, side=side)

    def _submit(
        self,
        slot_id: SlotId,
        call: Callable[..., Slot],
        *args: object,
        op: str,
        side: Optional[Side],
    ) -> None:
        self.locks.begin_entry(slot_id)
        if side is not None:
            self.locks.begin_side(side)
        self._seq += 1
        seq = self._seq
        try:
            future = self.runner.submit(
                call,
                *args,
                on_done=lambda fut: self._on_write_done(seq, slot_id, side, op, fut),
            )
        except RuntimeError as exc:
            # Executor already shut down.
            self._release(slot_id, side)
            self._report(op, slot_id, exc)
            return
        if not future.done():
            self._in_flight[seq] = future

    def _on_write_done(
        self,
        seq: int,
        slot_id: SlotId,
        side: Optional[Side],
        op: str,
        future: Future,
    ) -> None:
        self._in_flight.pop(seq, None)
        self._release(slot_id, side)
        if future.cancelled():
            self._log.debug("%s for slot %s canceled", op, slot_id)
            return
        exc = future.exception()
        if exc is not None:
            self._report(op, slot_id, exc)
            return
        slot = future.result()
        if self.broadcast is not None:
            self.broadcast.publish(EVENT_ENTRY_UPDATED, {"slot": slot.to_payload()})
        self.hooks.on_success()

    def _release(self, slot_id: SlotId, side: Optional[Side]) -> None:
        self.locks.end_entry(slot_id, self.settings.slot_lock_s)
        if side is not None:
            self.locks.end_side(side, self.settings.side_lock_s)

    def _report(self, op: str, slot_id: SlotId, exc: BaseException) -> None:
        err = map_api_error(exc, default_code="UPDATE_FAILED")
        self._log.warning("%s for slot %s failed [%s]: %s", op, slot_id, err.code, err.message)
        self.hooks.on_error(err)


__all__ = ["MutationDispatcher"]
