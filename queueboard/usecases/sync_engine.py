"""Reconcile the client's slot view with polls, broadcasts and local edits.

Call context:
    ``queueboard.app.runtime.BoardRuntime`` builds one engine per board and
    calls ``start``/``stop``. Broadcast handlers and poll completions arrive on
    the UI thread (through ``BackgroundRunner`` and the adapter's ``post``).

Rules:
    - A poll result or ``entry-updated`` for a slot whose id or side is locked
      is discarded, not queued. Expired locks no longer block anything.
    - While any typing flag is active nothing external is applied.
    - ``sync-all`` is applied only when no lock of any kind is active.
    - Applying a value equal to the current one is a no-op and produces no
      change notification.
    - A failed poll leaves the view untouched.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional

from queueboard.domain.entities import Slot, SlotId, slot_from_payload, slots_from_payload
from queueboard.domain.lock_table import LockTable
from queueboard.domain.ports import (
    EVENT_ENTRY_UPDATED,
    EVENT_SYNC_ALL,
    BroadcastPort,
    StorePort,
    TaskRunnerPort,
    TimerPort,
    UseCaseError,
)
from queueboard.domain.settings import SettingsConfig
from queueboard.domain.slot_view import ClientSlotView
from queueboard.usecases.error_mapping import is_transient, map_api_error

POLL_TIMER_KEY = "poll"


def _noop(*_args: Any) -> None:
    return None


@dataclass
class SyncHooks:
    """UI callbacks fired on the UI thread.

    Attributes:
        on_view_changed: Receives the ids whose stored value changed.
        on_error: Receives a user-presentable error for a failed I/O call.
        on_recovered: Fired on the first successful poll after a failure.
        on_success: Fired after every successful poll or store write.
    """

    on_view_changed: Callable[[List[SlotId]], None] = field(default=_noop)
    on_error: Callable[[UseCaseError], None] = field(default=_noop)
    on_recovered: Callable[[], None] = field(default=_noop)
    on_success: Callable[[], None] = field(default=_noop)


class SyncEngine:
    """Owns the ``ClientSlotView`` and decides which external updates apply."""

    def __init__(
        self,
        store: StorePort,
        broadcast: Optional[BroadcastPort],
        runner: TaskRunnerPort,
        timers: TimerPort,
        locks: LockTable,
        view: Optional[ClientSlotView] = None,
        *,
        settings: Optional[SettingsConfig] = None,
        hooks: Optional[SyncHooks] = None,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.store = store
        self.broadcast = broadcast
        self.runner = runner
        self.timers = timers
        self.locks = locks
        self.view = view if view is not None else ClientSlotView()
        self.settings = settings or SettingsConfig()
        self.hooks = hooks or SyncHooks()
        self.running = False
        self.failing = False
        self.last_error: Optional[UseCaseError] = None
        self._generation = 0
        self._poll_future: Optional[Future] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Subscribe to broadcasts, poll once now and keep polling."""
        if self.running:
            return
        self.running = True
        if self.broadcast is not None:
            self.broadcast.subscribe(EVENT_ENTRY_UPDATED, self.on_entry_updated)
            self.broadcast.subscribe(EVENT_SYNC_ALL, self.on_sync_all)
        self.poll_now()

    def stop(self) -> None:
        """Cancel the poll loop and drop whatever is still in flight."""
        if not self.running:
            return
        self.running = False
        self.timers.cancel(POLL_TIMER_KEY)
        self._abort_poll()
        if self.broadcast is not None:
            self.broadcast.unsubscribe(EVENT_ENTRY_UPDATED, self.on_entry_updated)
            self.broadcast.unsubscribe(EVENT_SYNC_ALL, self.on_sync_all)

    def load(self, slots: Iterable[Slot]) -> List[SlotId]:
        """Seed the view with a known-good board (for example after initialization)."""
        changed = self.view.replace_all(slots)
        self._notify(changed)
        return changed

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    @property
    def poll_in_flight(self) -> bool:
        return self._poll_future is not None

    def poll_now(self) -> None:
        """Fetch the full board; an unfinished earlier poll is aborted."""
        if not self.running:
            return
        self._abort_poll()
        self._generation += 1
        generation = self._generation
        self._poll_future = self.runner.submit(
            self.store.list_slots,
            on_done=lambda fut: self._on_poll_done(generation, fut),
        )
        self.timers.schedule(POLL_TIMER_KEY, self.settings.poll_interval_ms, self.poll_now)

    def _abort_poll(self) -> None:
        future = self._poll_future
        self._poll_future = None
        # Bumping the generation makes a late result unrecognizable.
        self._generation += 1
        if future is not None and not future.done():
            if future.cancel():
                self._log.debug("Canceled queued poll request")
            else:
                self._log.debug("Previous poll still running; its result will be discarded")

    def _on_poll_done(self, generation: int, future: Future) -> None:
        if generation != self._generation or not self.running:
            self._log.debug("Discarding stale poll result (generation %s)", generation)
            return
        self._poll_future = None
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._poll_failed(exc)
            return
        self.apply_poll_result(future.result())
        if self.failing:
            self.failing = False
            self.last_error = None
            self._log.info("Board poll recovered")
            self.hooks.on_recovered()
        self.hooks.on_success()

    def _poll_failed(self, exc: BaseException) -> None:
        err = map_api_error(exc, default_code="POLL_FAILED")
        repeated = self.failing and self.last_error is not None and self.last_error.code == err.code
        self.failing = True
        self.last_error = err
        # An unreachable server fails every cycle; log the first one loudly.
        level = logging.DEBUG if repeated and is_transient(err) else logging.WARNING
        self._log.log(level, "Board poll failed [%s]: %s", err.code, err.message)
        self.hooks.on_error(err)

    def apply_poll_result(self, slots: Iterable[Slot]) -> List[SlotId]:
        """Merge a full snapshot, skipping every slot a lock protects."""
        incoming = list(slots)
        if self.locks.typing_active():
            self._log.debug("Typing in progress; poll result dropped")
            return []
        if not incoming and len(self.view):
            self._log.warning("Poll returned no slots; keeping the current board")
            return []
        changed = self.view.replace_all(incoming, skip=self._is_blocked)
        self._notify(changed)
        return changed

    def _is_blocked(self, slot: Slot) -> bool:
        reason = self.locks.blocking_reason(slot)
        if reason is None:
            return False
        current = self.view.get(slot.id)
        if current is None or not current.same_content(slot):
            self._log.debug("Skipping slot %s (%s lock)", slot.id, reason)
        return True

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------
    def on_entry_updated(self, payload: Mapping[str, Any]) -> None:
        try:
            slot = slot_from_payload(payload.get("slot"))
        except ValueError as exc:
            self._log.warning("Ignoring malformed %s event: %s", EVENT_ENTRY_UPDATED, exc)
            return
        self.apply_remote_slot(slot)

    def apply_remote_slot(self, slot: Slot) -> bool:
        """Apply one remote slot unless a lock protects it; True if the view changed."""
        reason = self.locks.blocking_reason(slot)
        if reason is not None:
            self._log.debug("Dropping remote update for slot %s (%s lock)", slot.id, reason)
            return False
        if not self.view.put(slot):
            return False
        self._notify([slot.id])
        return True

    def on_sync_all(self, payload: Mapping[str, Any]) -> None:
        try:
            slots = slots_from_payload(payload.get("slots"))
        except ValueError as exc:
            self._log.warning("Ignoring malformed %s event: %s", EVENT_SYNC_ALL, exc)
            return
        self.apply_resync(slots)

    def apply_resync(self, slots: Iterable[Slot]) -> List[SlotId]:
        """Replace the whole view, but only while nothing is locked."""
        if self.locks.any_active():
            self._log.debug("Locks active; resync dropped")
            return []
        incoming = list(slots)
        if not incoming:
            return []
        changed = self.view.replace_all(incoming)
        self._notify(changed)
        return changed

    def _notify(self, changed: List[SlotId]) -> None:
        if changed:
            self.hooks.on_view_changed(changed)


__all__ = ["POLL_TIMER_KEY", "SyncEngine", "SyncHooks"]
