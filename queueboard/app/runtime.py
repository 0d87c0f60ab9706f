"""Compose adapters, use cases and the board view model into one client.

The runtime is toolkit-agnostic: it receives Tk-compatible ``schedule``
(``after``) and ``cancel`` (``after_cancel``) callables and pumps a
``MainThreadQueue`` from a timer so background completions land on the UI
thread. With no API URL configured it runs against an in-process
``MemoryStore``.
"""

from __future__ import annotations

import logging
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import List, Optional

from queueboard.adapters.broadcast_local import LocalBroadcastHub
from queueboard.adapters.broadcast_sse import SseBroadcastAdapter
from queueboard.adapters.store_memory import MemoryStore
from queueboard.adapters.store_rest import StoreRestAdapter
from queueboard.domain.entities import Side, SlotId
from queueboard.domain.lock_table import LockTable
from queueboard.domain.ports import BroadcastPort, StorePort
from queueboard.domain.slot_view import ClientSlotView
from queueboard.usecases.error_mapping import map_api_error
from queueboard.usecases.fetch_history import FetchHistory
from queueboard.usecases.initialize_board import InitializeBoard
from queueboard.usecases.mutation_dispatcher import MutationDispatcher
from queueboard.usecases.sync_engine import SyncEngine, SyncHooks
from queueboard.viewmodels.board_vm import BoardVM

from .background import BackgroundRunner, MainThreadQueue
from .scheduler import CancelFn, ScheduleFn, TimerScheduler
from .settings import SettingsConfig

PUMP_TIMER_KEY = "io-pump"
PUMP_INTERVAL_MS = 50

_log = logging.getLogger(__name__)


class BoardRuntime:
    """Own every long-lived object of one board client."""

    def __init__(
        self,
        settings: SettingsConfig,
        schedule: ScheduleFn,
        cancel: CancelFn,
        *,
        store: Optional[StorePort] = None,
        broadcast: Optional[BroadcastPort] = None,
        hub: Optional[LocalBroadcastHub] = None,
        executor: Optional[Executor] = None,
        locks: Optional[LockTable] = None,
        vm: Optional[BoardVM] = None,
        client_id: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.client_id = client_id or uuid.uuid4().hex
        self.inbox = MainThreadQueue()
        self.timers = TimerScheduler(schedule, cancel)
        self.runner = BackgroundRunner(
            executor
            or ThreadPoolExecutor(
                max_workers=settings.io_workers, thread_name_prefix="queueboard-io"
            ),
            self.inbox.post,
        )
        self.locks = locks or LockTable()
        self.view = ClientSlotView()
        self.vm = vm or BoardVM()
        self.store = store or self._build_store()
        self.broadcast = broadcast if broadcast is not None else self._build_broadcast(hub)

        hooks = SyncHooks(
            on_view_changed=self._on_view_changed,
            on_error=self.vm.apply_error,
            on_recovered=self.vm.apply_recovered,
            on_success=self.vm.clear_error,
        )
        self.engine = SyncEngine(
            self.store,
            self.broadcast,
            self.runner,
            self.timers,
            self.locks,
            self.view,
            settings=settings,
            hooks=hooks,
        )
        self.dispatcher = MutationDispatcher(
            self.store,
            self.broadcast,
            self.runner,
            self.timers,
            self.locks,
            self.view,
            settings=settings,
            hooks=hooks,
        )
        self.started = False

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------
    def _build_store(self) -> StorePort:
        if self.settings.offline:
            _log.info("No API URL configured; using in-memory store")
            return MemoryStore(history_limit=self.settings.history_limit)
        return StoreRestAdapter(
            self.settings.api_base_url,
            api_key=self.settings.api_key or None,
            request_timeout_s=self.settings.request_timeout_s,
            retries=self.settings.retries,
        )

    def _build_broadcast(self, hub: Optional[LocalBroadcastHub]) -> Optional[BroadcastPort]:
        if not self.settings.realtime:
            return None
        if self.settings.offline:
            return (hub or LocalBroadcastHub()).channel(self.client_id)
        return SseBroadcastAdapter(
            self.settings.api_base_url,
            post=self.inbox.post,
            api_key=self.settings.api_key or None,
            client_id=self.client_id,
            request_timeout_s=self.settings.request_timeout_s,
            on_state=self.vm.set_connection_state,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> Future:
        """Initialize the board in the background, then start syncing."""
        if self.started:
            raise RuntimeError("BoardRuntime already started")
        self.started = True
        self._pump()
        return self.runner.submit(InitializeBoard(self.store), on_done=self._on_initialized)

    def _on_initialized(self, future: Future) -> None:
        if not self.started:
            return
        exc = None if future.cancelled() else future.exception()
        if exc is not None:
            err = map_api_error(exc, default_code="INITIALIZE_FAILED")
            _log.warning("Board initialization failed [%s]: %s", err.code, err.message)
            self.vm.apply_error(err)
            # The first successful poll then reports recovery.
            self.engine.failing = True
            self.engine.last_error = err
        elif not future.cancelled():
            self.engine.load(future.result())
        # Polling repairs the board even when initialization failed.
        self.engine.start()

    def _pump(self) -> None:
        self.inbox.drain()
        if self.started:
            self.timers.schedule(PUMP_TIMER_KEY, PUMP_INTERVAL_MS, self._pump)

    def stop(self, *, flush: bool = True) -> None:
        """Tear down timers, subscriptions and the executor."""
        if not self.started:
            return
        if flush:
            self.dispatcher.flush()
        self.dispatcher.close()
        self.engine.stop()
        self.started = False
        self.timers.cancel_all()
        close = getattr(self.broadcast, "close", None)
        if callable(close):
            close()
        self.runner.shutdown()

    # ------------------------------------------------------------------
    # Commands (bound by the widget layer)
    # ------------------------------------------------------------------
    def set_text(self, slot_id: SlotId, text: str) -> None:
        self.dispatcher.set_text(slot_id, text)

    def toggle_checked(self, row_index: int, side: Side, checked: bool) -> None:
        self.dispatcher.toggle_checked(row_index, side, checked)

    def clear_slot(self, slot_id: SlotId) -> None:
        self.dispatcher.clear_slot(slot_id)

    def clear_row(self, row_index: int, side: Side) -> List[SlotId]:
        return self.dispatcher.clear_row(row_index, side)

    def refresh(self) -> None:
        self.engine.poll_now()

    def refresh_history(self) -> Future:
        """Load the history panel; a failed fetch keeps the previous list."""
        fetch = FetchHistory(self.store, limit=self.settings.history_limit)
        return self.runner.submit(fetch, on_done=self._on_history)

    def _on_history(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            err = map_api_error(exc, default_code="HISTORY_FAILED")
            _log.warning("History fetch failed [%s]: %s", err.code, err.message)
            self.vm.apply_error(err)
            return
        self.vm.set_history(future.result())

    def _on_view_changed(self, _changed: List[SlotId]) -> None:
        self.vm.apply_view(self.view)


__all__ = ["BoardRuntime", "PUMP_INTERVAL_MS", "PUMP_TIMER_KEY"]
