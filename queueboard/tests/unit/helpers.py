from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from queueboard.adapters.store_memory import MemoryStore
from queueboard.app.background import BackgroundRunner
from queueboard.app.scheduler import TimerScheduler
from queueboard.app.settings import SettingsConfig
from queueboard.domain.entities import SIDES, Slot, SlotKey, SlotPatch
from queueboard.domain.lock_table import LockTable
from queueboard.domain.ports import BroadcastHandler, UseCaseError
from queueboard.domain.slot_view import ClientSlotView
from queueboard.usecases.mutation_dispatcher import MutationDispatcher
from queueboard.usecases.sync_engine import SyncEngine, SyncHooks


class ManualClock:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualTimers:
    """Tk-style ``after``/``after_cancel`` driven by ``advance(ms)``."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self._seq = 0
        self._pending: Dict[int, Tuple[float, Callable[[], None]]] = {}

    def after(self, delay_ms: int, callback: Callable[[], None]) -> int:
        self._seq += 1
        self._pending[self._seq] = (self.clock.now + delay_ms / 1000.0, callback)
        return self._seq

    def after_cancel(self, token: int) -> None:
        self._pending.pop(token, None)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def advance(self, ms: float) -> None:
        target = self.clock.now + ms / 1000.0
        while True:
            due = [
                (when, token)
                for token, (when, _cb) in self._pending.items()
                if when <= target
            ]
            if not due:
                break
            when, token = min(due)
            _when, callback = self._pending.pop(token)
            self.clock.now = max(self.clock.now, when)
            callback()
        self.clock.now = target


class ManualJob:
    def __init__(self, future: Future, fn: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        self.future = future
        self.fn = fn
        self.args = args
        self.started = False

    def start(self) -> bool:
        """Move the future to RUNNING so it can no longer be canceled."""
        self.started = self.future.set_running_or_notify_cancel()
        return self.started

    def finish(self) -> None:
        if not self.started and not self.start():
            return
        try:
            result = self.fn(*self.args)
        except Exception as exc:
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class ManualExecutor(Executor):
    """Executor whose jobs run only when the test says so."""

    def __init__(self) -> None:
        self.jobs: List[ManualJob] = []
        self.shut_down = False

    def submit(self, fn, /, *args, **kwargs):
        if self.shut_down:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future: Future = Future()
        call = (lambda *a: fn(*a, **kwargs)) if kwargs else fn
        self.jobs.append(ManualJob(future, call, args))
        return future

    def shutdown(self, wait: bool = True, *, cancel_futures: bool = False) -> None:
        self.shut_down = True

    @property
    def pending(self) -> List[ManualJob]:
        return [job for job in self.jobs if not job.future.done()]

    def run_next(self) -> None:
        self.pending[0].finish()

    def run_all(self) -> int:
        ran = 0
        while self.pending:
            self.pending[0].finish()
            ran += 1
        return ran


def immediate_post(callback: Callable[[], None]) -> None:
    callback()


class RecordingBroadcast:
    """In-memory ``BroadcastPort`` that records publishes and lets tests emit."""

    def __init__(self) -> None:
        self.published: List[Tuple[str, Dict[str, Any]]] = []
        self.handlers: Dict[str, List[BroadcastHandler]] = {}

    def publish(self, event: str, payload: Mapping[str, Any]) -> None:
        self.published.append((event, dict(payload)))

    def subscribe(self, event: str, handler: BroadcastHandler) -> None:
        self.handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: BroadcastHandler) -> None:
        if handler in self.handlers.get(event, []):
            self.handlers[event].remove(handler)

    def emit(self, event: str, payload: Mapping[str, Any]) -> None:
        for handler in list(self.handlers.get(event, [])):
            handler(payload)


class FailingStore(MemoryStore):
    """MemoryStore that raises queued errors for chosen methods and slot ids."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: Dict[Tuple[str, Optional[int]], List[Exception]] = {}

    def fail(self, method: str, exc: Exception, slot_id: Optional[int] = None) -> None:
        self.failures.setdefault((method, slot_id), []).append(exc)

    def _maybe_raise(self, method: str, slot_id: Optional[int] = None) -> None:
        for key in ((method, slot_id), (method, None)):
            queued = self.failures.get(key)
            if queued:
                raise queued.pop(0)

    def list_slots(self) -> List[Slot]:
        self._maybe_raise("list_slots")
        return super().list_slots()

    def update_slot(self, slot_id: int, patch: SlotPatch) -> Slot:
        self._maybe_raise("update_slot", slot_id)
        return super().update_slot(slot_id, patch)

    def clear_slot_text(self, slot_id: int) -> Slot:
        self._maybe_raise("clear_slot_text", slot_id)
        return super().clear_slot_text(slot_id)


def slot_id(row_index: int, side: str, position: str = "P1") -> int:
    """Id assigned by ``MemoryStore.initialize_grid`` on a fresh board."""
    return 1 + row_index * 4 + SIDES.index(side) * 2 + (0 if position == "P1" else 1)


@dataclass
class BoardHarness:
    store: MemoryStore
    broadcast: RecordingBroadcast
    clock: ManualClock
    timers: ManualTimers
    executor: ManualExecutor
    locks: LockTable
    view: ClientSlotView
    settings: SettingsConfig
    engine: SyncEngine
    dispatcher: MutationDispatcher
    changes: List[List[int]] = field(default_factory=list)
    errors: List[UseCaseError] = field(default_factory=list)
    recovered: List[bool] = field(default_factory=list)

    def settle(self) -> None:
        """Run every queued store call."""
        self.executor.run_all()

    def reload(self) -> None:
        """Replace the view with the store's current state."""
        self.view.replace_all(self.store.list_slots())

    def view_slot(self, row_index: int, side: str, position: str = "P1") -> Slot:
        slot = self.view.find(SlotKey(row_index, side, position))
        assert slot is not None
        return slot

    def store_slot(self, row_index: int, side: str, position: str = "P1") -> Slot:
        for slot in self.store.list_slots():
            if (slot.row_index, slot.side, slot.position) == (row_index, side, position):
                return slot
        raise AssertionError(f"no store slot at {side}:{row_index}:{position}")


def make_harness(
    store: Optional[MemoryStore] = None,
    settings: Optional[SettingsConfig] = None,
) -> BoardHarness:
    store = store if store is not None else MemoryStore()
    if not store.list_slots():
        store.initialize_grid()
    store.calls.clear()
    clock = ManualClock()
    timers = ManualTimers(clock)
    executor = ManualExecutor()
    runner = BackgroundRunner(executor, immediate_post)
    scheduler = TimerScheduler(timers.after, timers.after_cancel)
    locks = LockTable(clock=clock)
    view = ClientSlotView(store.list_slots())
    store.calls.clear()
    settings = settings or SettingsConfig()
    broadcast = RecordingBroadcast()
    changes: List[List[int]] = []
    errors: List[UseCaseError] = []
    recovered: List[bool] = []
    hooks = SyncHooks(
        on_view_changed=lambda ids: changes.append(list(ids)),
        on_error=errors.append,
        on_recovered=lambda: recovered.append(True),
    )
    engine = SyncEngine(
        store, broadcast, runner, scheduler, locks, view, settings=settings, hooks=hooks
    )
    dispatcher = MutationDispatcher(
        store, broadcast, runner, scheduler, locks, view, settings=settings, hooks=hooks
    )
    return BoardHarness(
        store=store,
        broadcast=broadcast,
        clock=clock,
        timers=timers,
        executor=executor,
        locks=locks,
        view=view,
        settings=settings,
        engine=engine,
        dispatcher=dispatcher,
        changes=changes,
        errors=errors,
        recovered=recovered,
    )


__all__ = [
    "BoardHarness",
    "FailingStore",
    "ManualClock",
    "ManualExecutor",
    "ManualJob",
    "ManualTimers",
    "RecordingBroadcast",
    "immediate_post",
    "make_harness",
    "slot_id",
]
