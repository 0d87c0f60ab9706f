from __future__ import annotations

import logging
from dataclasses import replace

from queueboard.adapters.api_errors import ApiResponseFormatError, ApiTimeoutError
from queueboard.domain.entities import SlotPatch
from queueboard.domain.ports import EVENT_ENTRY_UPDATED, EVENT_SYNC_ALL
from queueboard.tests.unit.helpers import FailingStore, make_harness, slot_id
from queueboard.usecases.sync_engine import POLL_TIMER_KEY


def _remote_edit(h, sid: int, text: str):
    """Change the store behind the client's back, as another user would."""
    return h.store.update_slot(sid, SlotPatch(text=text))


def test_start_subscribes_polls_and_schedules_next_poll():
    h = make_harness()
    h.engine.start()

    assert len(h.broadcast.handlers[EVENT_ENTRY_UPDATED]) == 1
    assert len(h.broadcast.handlers[EVENT_SYNC_ALL]) == 1
    assert h.engine.poll_in_flight
    assert h.engine.timers.is_pending(POLL_TIMER_KEY)

    _remote_edit(h, slot_id(0, "left"), "Alice")
    h.settle()

    assert h.view.get(slot_id(0, "left")).text == "Alice"
    assert not h.engine.poll_in_flight


def test_poll_loop_fires_every_interval():
    h = make_harness()
    h.engine.start()
    h.settle()

    h.timers.advance(h.settings.poll_interval_ms)

    assert len(h.executor.pending) == 1
    h.settle()
    assert len(h.store.calls_to("list_slots")) == 2


def test_entry_lock_shadows_poll_until_hold_expires():
    h = make_harness()
    h.engine.start()
    h.settle()
    sid = slot_id(2, "right", "P2")
    h.view.patch(sid, SlotPatch(text="local"))
    h.locks.begin_entry(sid)
    _remote_edit(h, sid, "remote")

    h.engine.poll_now()
    h.settle()
    assert h.view.get(sid).text == "local"

    h.locks.end_entry(sid, 2.0)
    h.clock.advance(1.5)
    h.engine.poll_now()
    h.settle()
    assert h.view.get(sid).text == "local"

    h.clock.advance(0.6)
    h.engine.poll_now()
    h.settle()
    assert h.view.get(sid).text == "remote"


def test_side_lock_shadows_every_slot_on_that_side_only():
    h = make_harness()
    left = slot_id(5, "left")
    right = slot_id(5, "right")
    h.locks.begin_side("left")
    _remote_edit(h, left, "L")
    _remote_edit(h, right, "R")

    changed = h.engine.apply_poll_result(h.store.list_slots())

    assert changed == [right]
    assert h.view.get(left).text == ""
    assert h.view.get(right).text == "R"


def test_typing_flag_freezes_polls_and_broadcasts():
    h = make_harness()
    typed = slot_id(0, "left")
    other = slot_id(7, "right", "P2")
    h.locks.mark_typing(typed, 1.0)
    remote = _remote_edit(h, other, "Bob")

    assert h.engine.apply_poll_result(h.store.list_slots()) == []
    assert h.engine.apply_remote_slot(remote) is False
    assert h.view.get(other).text == ""

    h.clock.advance(1.1)
    assert h.engine.apply_remote_slot(remote) is True
    assert h.view.get(other).text == "Bob"


def test_identical_snapshot_applied_twice_is_a_no_op():
    h = make_harness()
    _remote_edit(h, slot_id(3, "left"), "Carol")
    snapshot = h.store.list_slots()

    first = h.engine.apply_poll_result(snapshot)
    revision = h.view.revision
    notifications = len(h.changes)
    second = h.engine.apply_poll_result(snapshot)

    assert first == [slot_id(3, "left")]
    assert second == []
    assert h.view.revision == revision
    assert len(h.changes) == notifications


def test_timestamp_only_difference_does_not_change_view():
    h = make_harness()
    sid = slot_id(1, "left")
    slot = h.view.get(sid)
    bumped = replace(slot, updated_at="2030-01-01T00:00:00+00:00")

    assert h.engine.apply_remote_slot(bumped) is False
    assert h.changes == []


def test_entry_updated_event_applies_remote_slot():
    h = make_harness()
    h.engine.start()
    h.settle()
    remote = _remote_edit(h, slot_id(4, "right"), "Dana")

    h.broadcast.emit(EVENT_ENTRY_UPDATED, {"slot": remote.to_payload(), "origin": "other"})

    assert h.view.get(slot_id(4, "right")).text == "Dana"
    assert h.changes[-1] == [slot_id(4, "right")]


def test_entry_updated_for_locked_slot_is_discarded():
    h = make_harness()
    sid = slot_id(4, "right")
    h.locks.begin_entry(sid)
    remote = _remote_edit(h, sid, "Dana")

    h.engine.on_entry_updated({"slot": remote.to_payload()})

    assert h.view.get(sid).text == ""


def test_malformed_entry_updated_is_ignored():
    h = make_harness()
    revision = h.view.revision

    h.engine.on_entry_updated({"slot": {"id": "x"}})
    h.engine.on_entry_updated({})

    assert h.view.revision == revision


def test_sync_all_dropped_while_any_lock_is_held():
    h = make_harness()
    _remote_edit(h, slot_id(9, "left"), "Eve")
    payload = {"slots": [slot.to_payload() for slot in h.store.list_slots()]}
    h.locks.begin_entry(slot_id(0, "right"))

    h.engine.on_sync_all(payload)
    assert h.view.get(slot_id(9, "left")).text == ""

    h.locks.end_entry(slot_id(0, "right"), 0.0)
    h.engine.on_sync_all(payload)
    assert h.view.get(slot_id(9, "left")).text == "Eve"


def test_sync_all_dropped_while_typing():
    h = make_harness()
    _remote_edit(h, slot_id(9, "left"), "Eve")
    h.locks.mark_typing(slot_id(1, "left"), 1.0)

    assert h.engine.apply_resync(h.store.list_slots()) == []


def test_failed_poll_keeps_view_and_reports_error_then_recovers():
    store = FailingStore()
    h = make_harness(store=store)
    h.engine.start()
    h.settle()
    _remote_edit(h, slot_id(0, "left"), "kept")
    h.engine.poll_now()
    h.settle()
    before = h.view.all()

    store.fail("list_slots", ApiTimeoutError("down"))
    h.engine.poll_now()
    h.settle()

    assert h.view.all() == before
    assert len(h.view) == 48
    assert h.errors[-1].code == "REQUEST_TIMEOUT"
    assert h.engine.failing

    h.engine.poll_now()
    h.settle()
    assert not h.engine.failing
    assert h.recovered == [True]


def test_repeated_timeouts_warn_once_but_report_every_failure(caplog):
    store = FailingStore()
    h = make_harness(store=store)
    h.engine.start()
    h.settle()
    store.fail("list_slots", ApiTimeoutError("down"))
    store.fail("list_slots", ApiTimeoutError("still down"))

    with caplog.at_level(logging.DEBUG, logger="queueboard.usecases.sync_engine"):
        h.engine.poll_now()
        h.settle()
        h.engine.poll_now()
        h.settle()

    assert [err.code for err in h.errors] == ["REQUEST_TIMEOUT", "REQUEST_TIMEOUT"]
    failures = [rec for rec in caplog.records if "Board poll failed" in rec.getMessage()]
    assert [rec.levelno for rec in failures] == [logging.WARNING, logging.DEBUG]


def test_malformed_poll_response_is_reported_and_view_survives():
    store = FailingStore()
    h = make_harness(store=store)
    h.engine.start()
    store.fail("list_slots", ApiResponseFormatError("List slots: expected an array"))
    h.engine.poll_now()
    h.settle()

    assert h.errors[-1].code == "INVALID_RESPONSE"
    assert len(h.view) == 48


def test_empty_poll_result_does_not_wipe_board():
    h = make_harness()

    assert h.engine.apply_poll_result([]) == []
    assert len(h.view) == 48


def test_next_poll_cancels_queued_request():
    h = make_harness()
    h.engine.start()
    first = h.executor.jobs[0]

    h.engine.poll_now()

    assert first.future.cancelled()
    h.settle()
    assert len(h.store.calls_to("list_slots")) == 1


def test_late_result_of_aborted_poll_is_discarded():
    h = make_harness()
    h.engine.start()
    first = h.executor.jobs[0]
    first.start()
    h.engine.poll_now()
    second = h.executor.jobs[1]
    sid = slot_id(6, "left")

    _remote_edit(h, sid, "late")
    first.finish()
    assert h.view.get(sid).text == ""

    second.finish()
    assert h.view.get(sid).text == "late"


def test_stop_unsubscribes_cancels_timer_and_drops_in_flight_poll():
    h = make_harness()
    h.engine.start()
    job = h.executor.jobs[0]
    job.start()

    h.engine.stop()
    _remote_edit(h, slot_id(0, "left"), "after stop")
    job.finish()

    assert h.broadcast.handlers[EVENT_ENTRY_UPDATED] == []
    assert h.broadcast.handlers[EVENT_SYNC_ALL] == []
    assert not h.engine.timers.is_pending(POLL_TIMER_KEY)
    assert h.view.get(slot_id(0, "left")).text == ""
