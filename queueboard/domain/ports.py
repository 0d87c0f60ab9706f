from __future__ import annotations
from concurrent.futures import Future
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Protocol

from .entities import HistoryLogEntry, Slot, SlotId, SlotPatch

QUEUE_CHANNEL = "queue-channel"
EVENT_ENTRY_UPDATED = "entry-updated"
EVENT_SYNC_ALL = "sync-all"
BROADCAST_EVENTS = (EVENT_ENTRY_UPDATED, EVENT_SYNC_ALL)

BroadcastHandler = Callable[[Mapping[str, Any]], None]


# ---- Error model ----
class UseCaseError(Exception):
    """Base class for use case level errors (user-presentable)."""

    def __init__(self, code: str, message: str, meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = dict(meta or {})


# ---- Ports (Hexagonal boundaries) ----
class StorePort(Protocol):
    """CRUD access to the slot table and the history log.

    Calls are blocking; the sync layer runs them on a background executor.
    """

    def list_slots(self) -> List[Slot]: ...  # ordered by (row, side, position)
    def get_slot(self, slot_id: SlotId) -> Slot: ...
    def update_slot(self, slot_id: SlotId, patch: SlotPatch) -> Slot: ...
    def clear_slot_text(self, slot_id: SlotId) -> Slot: ...
    def initialize_grid(self) -> List[Slot]: ...  # idempotent upsert of 48 slots
    def list_history(self, limit: int = 100) -> List[HistoryLogEntry]: ...  # newest first


class BroadcastPort(Protocol):
    """Publish/subscribe on the queue channel. Delivery is best-effort."""

    def publish(self, event: str, payload: Mapping[str, Any]) -> None: ...  # never raises
    def subscribe(self, event: str, handler: BroadcastHandler) -> None: ...
    def unsubscribe(self, event: str, handler: BroadcastHandler) -> None: ...


class TaskRunnerPort(Protocol):
    """Runs blocking calls off the UI thread; ``on_done`` runs back on it."""

    def submit(
        self, fn: Callable[..., Any], *args: Any, on_done: Callable[[Future], None]
    ) -> Future: ...


class TimerPort(Protocol):
    """Keyed one-shot timers; scheduling a key again replaces its timer."""

    def schedule(self, key: Hashable, delay_ms: int, callback: Callable[[], None]) -> None: ...
    def cancel(self, key: Hashable) -> None: ...
