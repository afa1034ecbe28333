"""
Remote store abstractions for events and sermons.

Events live in a document store (one document per event, queried by date);
sermons live in a keyed real-time store (children under generated keys). The
two have different ordering and key-generation semantics, so they get
separate interfaces. Each interface has an in-memory implementation for
development and tests, a SQLAlchemy implementation for self-hosting, and a
Firebase implementation.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Optional, Protocol

from firebase_admin import db as rtdb
from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1 import Query
from sqlalchemy import Column, Float, String, Text, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shared.firebase_constants import EVENTS_COLLECTION, SERMONS_PATH
from shared.json_utils import convert_keys


class EventStore(Protocol):
    """Document store holding one record per event."""

    def list_events(self) -> list[tuple[str, dict]]:
        """Return (id, record) pairs for dated events, newest date first."""
        ...

    def get_event(self, event_id: str) -> Optional[dict]:
        ...

    def create_event(self, record: dict) -> str:
        """Store a new record and return the store-assigned id."""
        ...

    def update_event(
        self, event_id: str, fields: dict, *, upsert: bool = False
    ) -> None:
        """
        Merge `fields` into the record with `event_id`.

        Raises KeyError when the record does not exist, unless `upsert` is
        set, in which case the record is created with just `fields`.
        """
        ...


class SermonStore(Protocol):
    """Keyed real-time store holding sermon children under generated keys."""

    def list_sermons(self) -> list[tuple[str, dict]]:
        """Return (key, record) pairs in no particular order."""
        ...

    def push_sermon(self, record: dict) -> str:
        """Append a child record and return its generated key."""
        ...


def _date_sort_key(item: tuple[str, dict]) -> str:
    return item[1].get("date") or ""


class InMemoryEventStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.records: dict[str, dict] = {}

    def list_events(self) -> list[tuple[str, dict]]:
        dated = [
            (event_id, dict(record))
            for event_id, record in self.records.items()
            if record.get("date")
        ]
        return sorted(dated, key=_date_sort_key, reverse=True)

    def get_event(self, event_id: str) -> Optional[dict]:
        record = self.records.get(event_id)
        return dict(record) if record is not None else None

    def create_event(self, record: dict) -> str:
        event_id = uuid.uuid4().hex
        self.records[event_id] = dict(record)
        return event_id

    def update_event(
        self, event_id: str, fields: dict, *, upsert: bool = False
    ) -> None:
        if event_id not in self.records:
            if not upsert:
                raise KeyError(event_id)
            self.records[event_id] = {}
        self.records[event_id].update(fields)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.records.clear()


class InMemorySermonStore:
    """Simple in-memory keyed store for development and tests."""

    def __init__(self):
        self.children: dict[str, dict] = {}

    def list_sermons(self) -> list[tuple[str, dict]]:
        return [(key, dict(record)) for key, record in self.children.items()]

    def push_sermon(self, record: dict) -> str:
        key = uuid.uuid4().hex
        self.children[key] = dict(record)
        return key

    def reset(self) -> None:
        self.children.clear()


Base = declarative_base()


class EventRow(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=True)
    time = Column(String, nullable=True)
    date = Column(String, nullable=True, index=True)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=True)
    type = Column(String, nullable=True)


class SermonRow(Base):
    __tablename__ = "sermons"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=True)
    date = Column(String, nullable=True)
    audio_url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False)


_EVENT_COLUMNS = ("title", "time", "date", "description", "image_url", "type")
_SERMON_COLUMNS = ("title", "date", "audio_url", "description")


def _row_to_record(row: Any, columns: tuple[str, ...]) -> dict:
    data = {
        name: getattr(row, name)
        for name in columns
        if getattr(row, name) is not None
    }
    return convert_keys(data, "snake_to_camel")


def _record_to_columns(record: dict, columns: tuple[str, ...]) -> dict:
    data = convert_keys(record, "camel_to_snake")
    return {name: value for name, value in data.items() if name in columns}


class _SqlStore:
    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SQL stores")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)


class SqlEventStore(_SqlStore):
    """
    SQLAlchemy-backed document store. Accepts any SQLAlchemy URL (e.g.,
    Postgres, or SQLite for tests).
    """

    def list_events(self) -> list[tuple[str, dict]]:
        with self.Session() as session:
            stmt = (
                select(EventRow)
                .where(EventRow.date.is_not(None))
                .order_by(EventRow.date.desc())
            )
            rows = session.execute(stmt).scalars().all()
            return [(row.id, _row_to_record(row, _EVENT_COLUMNS)) for row in rows]

    def get_event(self, event_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            return _row_to_record(row, _EVENT_COLUMNS) if row else None

    def create_event(self, record: dict) -> str:
        event_id = uuid.uuid4().hex
        with self.Session() as session:
            session.add(EventRow(id=event_id, **_record_to_columns(record, _EVENT_COLUMNS)))
            session.commit()
        return event_id

    def update_event(
        self, event_id: str, fields: dict, *, upsert: bool = False
    ) -> None:
        values = _record_to_columns(fields, _EVENT_COLUMNS)
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            if row is None:
                if not upsert:
                    raise KeyError(event_id)
                session.add(EventRow(id=event_id, **values))
            else:
                for name, value in values.items():
                    setattr(row, name, value)
            session.commit()


class SqlSermonStore(_SqlStore):
    """SQLAlchemy-backed keyed store; keys are generated on insert."""

    def list_sermons(self) -> list[tuple[str, dict]]:
        with self.Session() as session:
            rows = (
                session.execute(select(SermonRow).order_by(SermonRow.created_at.asc()))
                .scalars()
                .all()
            )
            return [(row.id, _row_to_record(row, _SERMON_COLUMNS)) for row in rows]

    def push_sermon(self, record: dict) -> str:
        key = uuid.uuid4().hex
        with self.Session() as session:
            session.add(
                SermonRow(
                    id=key,
                    created_at=time.time(),
                    **_record_to_columns(record, _SERMON_COLUMNS),
                )
            )
            session.commit()
        return key


class FirestoreEventStore:
    """Cloud Firestore implementation of the event document store."""

    def __init__(self, app=None, collection: str = EVENTS_COLLECTION):
        self._client = firestore.client(app)
        self._collection = self._client.collection(collection)

    def list_events(self) -> list[tuple[str, dict]]:
        # Firestore omits documents that lack the ordering field, which keeps
        # undated override documents out of this listing.
        query = self._collection.order_by(
            "date", direction=Query.DESCENDING
        )
        return [(snapshot.id, snapshot.to_dict() or {}) for snapshot in query.stream()]

    def get_event(self, event_id: str) -> Optional[dict]:
        snapshot = self._collection.document(event_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict() or {}

    def create_event(self, record: dict) -> str:
        _, doc_ref = self._collection.add(record)
        return doc_ref.id

    def update_event(
        self, event_id: str, fields: dict, *, upsert: bool = False
    ) -> None:
        doc_ref = self._collection.document(event_id)
        if upsert:
            doc_ref.set(fields, merge=True)
            return
        try:
            doc_ref.update(fields)
        except exceptions.NotFound as e:
            raise KeyError(event_id) from e


class RealtimeDbSermonStore:
    """Firebase Realtime Database implementation of the sermon store."""

    def __init__(self, app=None, path: str = SERMONS_PATH):
        self._ref = rtdb.reference(path, app=app)

    def list_sermons(self) -> list[tuple[str, dict]]:
        children = self._ref.get() or {}
        return [
            (key, value if isinstance(value, dict) else {})
            for key, value in children.items()
        ]

    def push_sermon(self, record: dict) -> str:
        return self._ref.push(record).key
