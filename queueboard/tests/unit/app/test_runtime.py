from __future__ import annotations

from typing import List

import pytest

from queueboard.adapters.api_errors import ApiNotFoundError, ApiRateLimitError, ApiTimeoutError
from queueboard.adapters.broadcast_local import LocalBroadcastHub
from queueboard.adapters.store_memory import MemoryStore
from queueboard.app.runtime import PUMP_INTERVAL_MS, PUMP_TIMER_KEY, BoardRuntime
from queueboard.app.settings import SettingsConfig
from queueboard.domain.lock_table import LockTable
from queueboard.tests.unit.helpers import FailingStore, ManualClock, ManualExecutor, ManualTimers, slot_id
from queueboard.viewmodels.board_vm import BoardVM


class _Board:
    """Several runtimes sharing one store, one broadcast hub and one clock."""

    def __init__(self, store: MemoryStore = None) -> None:
        self.store = store if store is not None else MemoryStore()
        self.hub = LocalBroadcastHub()
        self.clock = ManualClock()
        self.timers = ManualTimers(self.clock)
        self.executors: List[ManualExecutor] = []

    def client(self, name: str) -> BoardRuntime:
        executor = ManualExecutor()
        self.executors.append(executor)
        return BoardRuntime(
            SettingsConfig(),
            self.timers.after,
            self.timers.after_cancel,
            store=self.store,
            hub=self.hub,
            executor=executor,
            locks=LockTable(clock=self.clock),
            vm=BoardVM(clock=self.clock),
            client_id=name,
        )

    def settle(self, rounds: int = 4) -> None:
        for _ in range(rounds):
            for executor in self.executors:
                executor.run_all()
            self.timers.advance(PUMP_INTERVAL_MS)


def test_start_initializes_board_and_renders_rows():
    board = _Board()
    rt = board.client("a")

    rt.start()
    assert PUMP_TIMER_KEY in rt.timers.pending_keys()
    board.settle()

    assert len(board.store.list_slots()) == 48
    assert len(rt.view) == 48
    assert rt.engine.running
    assert [len(rt.vm.rows[side]) for side in ("left", "right")] == [12, 12]


def test_start_twice_is_rejected():
    rt = _Board().client("a")
    rt.start()

    with pytest.raises(RuntimeError):
        rt.start()


def test_text_edit_reaches_second_client_through_broadcast():
    board = _Board()
    a = board.client("a")
    b = board.client("b")
    a.start()
    b.start()
    board.settle()

    a.set_text(slot_id(0, "left"), "Zoë")
    a.dispatcher.flush()
    board.settle()

    assert board.store.get_slot(slot_id(0, "left")).text == "Zoe"
    assert b.view.get(slot_id(0, "left")).text == "Zoe"
    assert b.vm.row("left", 0).p1_text == "Zoe"
    assert ("a", "entry-updated") in [(origin, event) for origin, event, _ in board.hub.published]


def test_check_on_one_client_shows_on_the_other():
    board = _Board()
    a = board.client("a")
    b = board.client("b")
    a.start()
    b.start()
    board.settle()

    a.toggle_checked(4, "right", True)
    board.settle()

    assert a.vm.checked_row("right") == 4
    assert b.vm.checked_row("right") == 4
    assert b.vm.checked_row("left") is None


def test_clear_row_through_runtime():
    board = _Board()
    rt = board.client("a")
    rt.start()
    board.settle()
    rt.set_text(slot_id(1, "left", "P2"), "Bob")
    rt.dispatcher.flush()
    board.settle()

    ids = rt.clear_row(1, "left")
    board.settle()

    assert slot_id(1, "left", "P2") in ids
    assert board.store.get_slot(slot_id(1, "left", "P2")).text == ""
    assert rt.vm.row("left", 1).populated is False


def test_history_panel_loads_newest_first():
    board = _Board()
    rt = board.client("a")
    rt.start()
    board.settle()
    rt.set_text(slot_id(0, "left"), "one")
    rt.dispatcher.flush()
    board.settle()
    rt.set_text(slot_id(0, "left"), "two")
    rt.dispatcher.flush()
    board.settle()

    rt.refresh_history()
    board.settle()

    assert [row["new"] for row in rt.vm.history_rows()] == ["two", "one"]


def test_failed_history_fetch_keeps_previous_list():
    class FlakyHistory(MemoryStore):
        broken = False

        def list_history(self, limit=100):
            if self.broken:
                raise ApiTimeoutError("down")
            return super().list_history(limit)

    store = FlakyHistory()
    board = _Board(store)
    rt = board.client("a")
    rt.start()
    board.settle()
    store.clear_slot_text(slot_id(0, "left"))
    rt.refresh_history()
    board.settle()
    before = list(rt.vm.history)

    store.broken = True
    rt.refresh_history()
    board.settle()

    assert rt.vm.history == before
    assert rt.vm.error_code == "REQUEST_TIMEOUT"
    assert rt.vm.offline


def test_failed_initialization_reports_offline_until_a_poll_succeeds():
    store = FailingStore()
    store.initialize_grid()
    store.fail("list_slots", ApiTimeoutError("down"))
    board = _Board(store)
    rt = board.client("a")

    rt.start()
    board.settle()

    assert rt.engine.running
    assert len(rt.view) == 48
    assert rt.vm.offline is False
    assert rt.vm.error_code is None


def test_write_error_clears_after_next_successful_write():
    store = FailingStore()
    board = _Board(store)
    rt = board.client("a")
    rt.start()
    board.settle()
    store.fail("update_slot", ApiRateLimitError("slow down", retry_after_s=12))

    rt.set_text(slot_id(0, "left"), "x")
    rt.dispatcher.flush()
    board.settle()
    assert rt.vm.error_code == "RATE_LIMITED"
    assert rt.vm.status()["retry_hint"] == "Retry in 12s"

    rt.set_text(slot_id(0, "left"), "xy")
    rt.dispatcher.flush()
    board.settle()

    assert rt.vm.error_code is None
    assert rt.vm.status()["retry_hint"] == ""
    assert store.get_slot(slot_id(0, "left")).text == "xy"


def test_write_error_clears_after_next_successful_poll():
    store = FailingStore()
    board = _Board(store)
    rt = board.client("a")
    rt.start()
    board.settle()
    store.fail("clear_slot_text", ApiNotFoundError("gone", status=404))

    rt.clear_slot(slot_id(3, "right"))
    board.settle()
    assert rt.vm.error_code == "NOT_FOUND"

    rt.refresh()
    board.settle()

    assert rt.vm.error_code is None
    assert rt.vm.error_message == ""


def test_stop_flushes_pending_text_and_cancels_timers():
    board = _Board()
    rt = board.client("a")
    rt.start()
    board.settle()
    rt.set_text(slot_id(2, "right"), "late")

    rt.stop()
    board.executors[0].run_all()

    assert board.store.get_slot(slot_id(2, "right")).text == "late"
    assert rt.timers.pending_keys() == []
    assert not rt.engine.running
    assert board.executors[0].shut_down
    rt.stop()
