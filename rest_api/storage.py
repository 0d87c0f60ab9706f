"""Relational storage for board slots and the append-only history log.

`rest_api.app` creates one :class:`QueueStore` per application and calls it
from the ``/queue`` and ``/history`` routes. Slots are addressed by their
surrogate ``id``; ``(row_index, side, position)`` is unique at all times, so
moving a slot onto an occupied row swaps the occupant into the vacated row
inside the same transaction.

History rows are written only when ``text`` or ``checked`` actually changes.
``clear_entry`` always records the previous text.
"""

import datetime
import logging
import threading
from datetime import timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

BOARD_ROWS = 12
SIDES = ("left", "right")
POSITIONS = ("P1", "P2")

log = logging.getLogger(__name__)

Base = declarative_base()


class QueueEntry(Base):
    """One slot of the board."""

    __tablename__ = "queue_entries"

    id = Column(Integer, primary_key=True, index=True)
    row_index = Column(Integer, nullable=False)  # 0..11, negative while parked mid-swap
    side = Column(String(8), nullable=False)
    position = Column(String(4), nullable=False)
    text = Column(Text, nullable=False, default="")
    checked = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("row_index", "side", "position", name="uq_entry_identity"),
    )


class HistoryLog(Base):
    """Immutable audit record for a slot change."""

    __tablename__ = "history_log"

    id = Column(Integer, primary_key=True, index=True)
    row_index = Column(Integer, nullable=False)
    side = Column(String(8), nullable=False)
    position = Column(String(4), nullable=False)
    action = Column(String(16), nullable=False)  # checked | unchecked | text_changed
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)


class EntryNotFound(LookupError):
    """Raised when a slot id does not resolve."""


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(timezone.utc)


def _iso(value: Optional[datetime.datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def entry_to_dict(entry: QueueEntry) -> Dict[str, Any]:
    """Serialize a slot in the camelCase wire format."""
    return {
        "id": entry.id,
        "rowIndex": entry.row_index,
        "side": entry.side,
        "position": entry.position,
        "text": entry.text or "",
        "checked": bool(entry.checked),
        "updatedAt": _iso(entry.updated_at),
    }


def history_to_dict(row: HistoryLog) -> Dict[str, Any]:
    return {
        "id": row.id,
        "rowIndex": row.row_index,
        "side": row.side,
        "position": row.position,
        "action": row.action,
        "oldValue": row.old_value,
        "newValue": row.new_value,
        "timestamp": _iso(row.timestamp),
    }


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite URLs get thread-safe connection settings.

    In-memory SQLite shares one connection so every session sees the same data.
    """
    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def _identity(entry: QueueEntry) -> Tuple[int, str, str]:
    return entry.row_index, entry.side, entry.position


class QueueStore:
    """Slot table plus history log behind one SQLAlchemy engine.

    Writes are serialized with a process-local lock so the swap sequence of a
    row reassignment never interleaves with another write.
    """

    def __init__(self, database_url: str = "sqlite:///:memory:", engine: Optional[Engine] = None) -> None:
        self.engine = engine or build_engine(database_url)
        self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._write_lock = threading.Lock()

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    # ---------- reads ----------

    def list_entries(self) -> List[Dict[str, Any]]:
        with self._sessions() as session:
            rows = session.scalars(
                select(QueueEntry).order_by(
                    QueueEntry.row_index, QueueEntry.side, QueueEntry.position
                )
            ).all()
            return [entry_to_dict(row) for row in rows]

    def get_entry(self, entry_id: int) -> Dict[str, Any]:
        with self._sessions() as session:
            return entry_to_dict(self._require(session, entry_id))

    def list_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        size = max(1, min(int(limit), 100))
        with self._sessions() as session:
            rows = session.scalars(
                select(HistoryLog).order_by(HistoryLog.timestamp.desc(), HistoryLog.id.desc()).limit(size)
            ).all()
            return [history_to_dict(row) for row in rows]

    # ---------- writes ----------

    def update_entry(self, entry_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update.

        Parameters
        ----------
        entry_id : int
            Surrogate id of the slot.
        changes : Dict[str, Any]
            Any of ``text``, ``checked``, ``row_index``; absent keys stay unchanged.
        """
        with self._write_lock, self._sessions() as session:
            entry = self._require(session, entry_id)
            now = utcnow()
            # History records where the slot was when the change was made.
            where = _identity(entry)
            if "row_index" in changes and changes["row_index"] != entry.row_index:
                self._move(session, entry, int(changes["row_index"]), now)
            if "checked" in changes and bool(changes["checked"]) != bool(entry.checked):
                new_checked = bool(changes["checked"])
                self._log(
                    session,
                    where,
                    "checked" if new_checked else "unchecked",
                    str(bool(entry.checked)).lower(),
                    str(new_checked).lower(),
                    now,
                )
                entry.checked = new_checked
            if "text" in changes and changes["text"] != (entry.text or ""):
                self._log(session, where, "text_changed", entry.text or "", changes["text"], now)
                entry.text = changes["text"]
            entry.updated_at = now
            session.commit()
            return entry_to_dict(entry)

    def clear_entry(self, entry_id: int) -> Dict[str, Any]:
        with self._write_lock, self._sessions() as session:
            entry = self._require(session, entry_id)
            now = utcnow()
            self._log(session, _identity(entry), "text_changed", entry.text or "", "", now)
            entry.text = ""
            entry.updated_at = now
            session.commit()
            return entry_to_dict(entry)

    def initialize_grid(self) -> List[Dict[str, Any]]:
        """Create missing canonical slots; existing slots are left untouched."""
        with self._write_lock, self._sessions() as session:
            existing = {
                (row.row_index, row.side, row.position)
                for row in session.scalars(select(QueueEntry)).all()
            }
            now = utcnow()
            created = 0
            for row_index in range(BOARD_ROWS):
                for side in SIDES:
                    for position in POSITIONS:
                        if (row_index, side, position) in existing:
                            continue
                        session.add(
                            QueueEntry(
                                row_index=row_index,
                                side=side,
                                position=position,
                                text="",
                                checked=False,
                                updated_at=now,
                            )
                        )
                        created += 1
            try:
                session.commit()
            except IntegrityError:
                # Another process initialized concurrently; its rows win.
                session.rollback()
                log.info("Concurrent grid initialization detected")
            else:
                if created:
                    log.info("Initialized %d board slots", created)
        return self.list_entries()

    # ---------- internals ----------

    @staticmethod
    def _require(session: Session, entry_id: int) -> QueueEntry:
        entry = session.get(QueueEntry, entry_id)
        if entry is None:
            raise EntryNotFound(f"Entry {entry_id} not found")
        return entry

    @staticmethod
    def _move(session: Session, entry: QueueEntry, target_row: int, now: datetime.datetime) -> None:
        vacated = entry.row_index
        occupant = session.scalars(
            select(QueueEntry).where(
                QueueEntry.side == entry.side,
                QueueEntry.position == entry.position,
                QueueEntry.row_index == target_row,
                QueueEntry.id != entry.id,
            )
        ).first()
        if occupant is None:
            entry.row_index = target_row
            session.flush()
            return
        occupant.row_index = -1 - occupant.id
        session.flush()
        entry.row_index = target_row
        session.flush()
        occupant.row_index = vacated
        occupant.updated_at = now
        session.flush()

    @staticmethod
    def _log(
        session: Session,
        where: Tuple[int, str, str],
        action: str,
        old: Optional[str],
        new: Optional[str],
        now: datetime.datetime,
    ) -> None:
        session.add(
            HistoryLog(
                row_index=where[0],
                side=where[1],
                position=where[2],
                action=action,
                old_value=old,
                new_value=new,
                timestamp=now,
            )
        )
