"""
Events listing: permanent recurring entries merged with admin-managed events.

The in-memory collection is what the site renders. It only changes after the
document store confirms a write, so it never shows an edit the store rejected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from datetime import date
from typing import Any, Mapping, Optional

from backend.db import EventStore
from backend.errors import MissingFieldError, RemoteStoreError, ValidationError
from backend.notifications import Notifier
from shared.json_utils import convert_keys
from shared.types import Event, EventType

logger = logging.getLogger(__name__)

PERMANENT_EVENTS: tuple[Event, ...] = (
    Event(
        id="sunday-service",
        title="Sunday Service",
        time="10:00",
        description=(
            "Weekly worship service for all ages. Join us for praise, prayer, "
            "and fellowship."
        ),
        image_url=(
            "https://images.unsplash.com/photo-1438232992991-995b7058bbb3"
            "?ixlib=rb-4.0.3&auto=format&fit=crop&w=1974&q=80"
        ),
        is_permanent=True,
        type=EventType.REGULAR,
    ),
    Event(
        id="bible-study",
        title="Bible Study",
        time="19:00",
        description=(
            "Wednesday evening Bible study. Dive deeper into God's word with "
            "our community."
        ),
        image_url=(
            "https://images.unsplash.com/photo-1504052434569-70ad5836ab65"
            "?ixlib=rb-4.0.3&auto=format&fit=crop&w=1470&q=80"
        ),
        is_permanent=True,
        type=EventType.REGULAR,
    ),
)
PERMANENT_EVENT_IDS = frozenset(event.id for event in PERMANENT_EVENTS)

EDITABLE_FIELDS = ("title", "time", "date", "description", "image_url", "type")
REQUIRED_FIELDS = ("title", "time", "description", "image_url")

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _validate_time(value: Any) -> str:
    if not value:
        raise MissingFieldError("time")
    if not isinstance(value, str) or not _TIME_PATTERN.match(value):
        raise ValidationError("time must be in HH:MM format")
    return value


def validate_event_fields(
    fields: Mapping[str, Any], *, permanent: bool = False
) -> dict:
    """
    Check an event form and return the fields to write.

    Permanent entries only accept `time`; anything else in the form is
    ignored. Other entries need every field, including a `YYYY-MM-DD` date.
    """
    if permanent:
        return {"time": _validate_time(fields.get("time"))}

    cleaned = {name: fields.get(name) for name in EDITABLE_FIELDS}
    for name in REQUIRED_FIELDS:
        if not cleaned[name]:
            raise MissingFieldError(name)
    _validate_time(cleaned["time"])
    if not cleaned["date"]:
        raise MissingFieldError("date")
    if not _DATE_PATTERN.match(str(cleaned["date"])):
        raise ValidationError("date must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(str(cleaned["date"]))
    except ValueError as e:
        raise ValidationError(f"date is not a calendar date: {cleaned['date']}") from e
    if cleaned["type"] is None:
        cleaned["type"] = EventType.SPECIAL
    elif cleaned["type"] not in set(EventType):
        raise ValidationError("type must be 'regular' or 'special'")
    cleaned["type"] = EventType(cleaned["type"])
    return cleaned


def _to_store_fields(fields: Mapping[str, Any]) -> dict:
    """Map snake_case event fields to the camelCase document layout."""
    record = {
        name: str(value) if name == "type" else value
        for name, value in fields.items()
        if value is not None
    }
    return convert_keys(record, "snake_to_camel")


class EventCollection:
    """Owns the merged events list and keeps it consistent with the store."""

    def __init__(self, store: EventStore, notifier: Notifier):
        self._store = store
        self._notifier = notifier
        self.events: list[Event] = [replace(event) for event in PERMANENT_EVENTS]
        self.loading = True

    def get(self, event_id: str) -> Optional[Event]:
        for event in self.events:
            if event.id == event_id:
                return event
        return None

    def load_events(self) -> list[Event]:
        """
        Fetch special events and merge them after the permanent entries.

        A failed fetch leaves just the permanent entries and notifies the
        user; it never raises.
        """
        seeds = [replace(event) for event in PERMANENT_EVENTS]
        try:
            fetched = [
                Event.from_record(event_id, record)
                for event_id, record in self._store.list_events()
                if event_id not in PERMANENT_EVENT_IDS
            ]
            for seed in seeds:
                override = self._store.get_event(seed.id)
                if override and override.get("time"):
                    seed.time = override["time"]
        except Exception as e:
            logger.error("Error fetching events: %s", e)
            self._notifier.error("Failed to load events")
            self.events = [replace(event) for event in PERMANENT_EVENTS]
        else:
            self.events = seeds + fetched
        finally:
            self.loading = False
        return self.events

    def save_event(
        self, fields: Mapping[str, Any], existing: Optional[Event] = None
    ) -> Event:
        """
        Create or update an event, then mirror the confirmed write locally.

        Args:
            fields: Form values keyed by Event attribute name.
            existing: The entry being edited, or None to create a new one.

        Returns:
            The entry as it now appears in the collection.

        Raises:
            ValidationError: If the form is incomplete; nothing is written.
            RemoteStoreError: If the store write fails; the collection is left
                untouched so the edit form can stay open.
        """
        permanent = bool(existing and existing.is_permanent)
        if existing is not None and fields.get("type") is None:
            fields = {**fields, "type": existing.type}
        cleaned = validate_event_fields(fields, permanent=permanent)

        try:
            if permanent:
                self._store.update_event(
                    existing.id, _to_store_fields(cleaned), upsert=True
                )
            elif existing is not None and existing.id:
                self._store.update_event(existing.id, _to_store_fields(cleaned))
            else:
                new_id = self._store.create_event(_to_store_fields(cleaned))
        except Exception as e:
            logger.error("Error saving event: %s", e)
            self._notifier.error("Failed to save event")
            raise RemoteStoreError(f"Failed to save event: {e}") from e

        if existing is not None and existing.id:
            saved = self._apply_update(existing, cleaned)
        else:
            saved = Event(id=new_id, **cleaned)
            self.events = [*self.events, saved]
        self._notifier.success("Event saved successfully!")
        return saved

    def _apply_update(self, existing: Event, cleaned: Mapping[str, Any]) -> Event:
        updated = replace(existing, **cleaned)
        events = []
        for event in self.events:
            if event.id == existing.id:
                event = replace(event, **cleaned)
                updated = event
            events.append(event)
        self.events = events
        return updated
