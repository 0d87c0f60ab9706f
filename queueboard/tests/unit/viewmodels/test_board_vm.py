from dataclasses import replace

from queueboard.domain.entities import HistoryLogEntry, Slot, canonical_keys
from queueboard.domain.ports import UseCaseError
from queueboard.domain.slot_view import ClientSlotView
from queueboard.viewmodels.board_vm import BoardVM


def _view(**overrides):
    slots = []
    for index, key in enumerate(canonical_keys(), start=1):
        slots.append(Slot(id=index, row_index=key.row_index, side=key.side, position=key.position))
    view = ClientSlotView(slots)
    for slot_id, values in overrides.items():
        current = view.get(int(slot_id.strip("s")))
        view.put(replace(current, **values))
    return view


class _Clock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


def test_apply_view_builds_twelve_rows_per_side_and_notifies():
    seen = []
    vm = BoardVM(on_board_changed=seen.append)

    rows = vm.apply_view(_view(s1={"text": "Ann"}, s2={"text": "Ben"}, s7={"checked": True}))

    assert len(rows["left"]) == len(rows["right"]) == 12
    assert vm.row("left", 0).p1_text == "Ann"
    assert vm.row("left", 0).p2_text == "Ben"
    assert vm.row("left", 0).populated
    assert vm.checked_row("right") == 1
    assert vm.checked_row("left") is None
    assert seen == [rows]


def test_timeout_sets_offline_until_recovered():
    statuses = []
    vm = BoardVM(on_status_changed=statuses.append)

    vm.apply_error(UseCaseError("REQUEST_TIMEOUT", "Cannot reach the server."))
    assert vm.offline
    assert statuses[-1]["offline"] is True

    vm.apply_recovered()
    assert not vm.offline
    assert vm.error_code is None


def test_other_errors_do_not_mark_offline():
    vm = BoardVM()

    vm.apply_error(UseCaseError("NOT_FOUND", "Entry not found."))

    assert not vm.offline
    assert vm.error_message == "Entry not found."


def test_clear_error_only_notifies_when_something_was_shown():
    statuses = []
    vm = BoardVM(on_status_changed=statuses.append)

    vm.clear_error()
    assert statuses == []

    vm.apply_error(UseCaseError("UPDATE_FAILED", "Write failed."))
    vm.clear_error()

    assert vm.error_code is None
    assert [s["error_code"] for s in statuses] == ["UPDATE_FAILED", None]


def test_rate_limit_counts_down_retry_hint():
    clock = _Clock()
    vm = BoardVM(clock=clock)

    vm.apply_error(UseCaseError("RATE_LIMITED", "Rate limit exceeded.", meta={"retry_after_s": 12}))

    assert vm.retry_hint() == "Retry in 12s"
    assert vm.retry_hint(now=clock.now + 4.5) == "Retry in 8s"
    assert vm.status(now=clock.now + 12)["retry_hint"] == ""


def test_connection_state_is_reported_in_status():
    vm = BoardVM()

    vm.set_connection_state("connected")

    assert vm.status()["connection"] == "connected"


def test_history_rows_are_display_ready():
    vm = BoardVM()
    vm.set_history(
        [
            HistoryLogEntry(
                id=2,
                row_index=3,
                side="right",
                position="P2",
                action="text_changed",
                old_value=None,
                new_value="Cy",
                timestamp="2024-05-01T10:00:00+00:00",
            )
        ]
    )

    assert vm.history_rows() == [
        {
            "when": "2024-05-01T10:00:00+00:00",
            "slot": "right row 4 P2",
            "action": "text_changed",
            "old": "",
            "new": "Cy",
        }
    ]
