import pytest

from queueboard.adapters.api_errors import ApiRateLimitError
from queueboard.adapters.store_memory import MemoryStore
from queueboard.domain.entities import SlotPatch
from queueboard.domain.ports import UseCaseError
from queueboard.usecases.fetch_history import FetchHistory


def test_history_is_newest_first_and_limited():
    store = MemoryStore()
    store.initialize_grid()
    for value in ("a", "b", "c"):
        store.update_slot(1, SlotPatch(text=value))

    entries = FetchHistory(store, limit=2)()

    assert [entry.new_value for entry in entries] == ["c", "b"]
    assert store.calls_to("list_history") == [(2,)]


def test_rate_limited_history_maps_to_use_case_error():
    class LimitedStore(MemoryStore):
        def list_history(self, limit=100):
            raise ApiRateLimitError("Too many requests", retry_after_s=30)

    with pytest.raises(UseCaseError) as info:
        FetchHistory(LimitedStore())()
    assert info.value.code == "RATE_LIMITED"
    assert info.value.meta["retry_after_s"] == 30
