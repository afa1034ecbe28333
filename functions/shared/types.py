# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Optional

from dacite import Config, from_dict

from shared.json_utils import convert_keys

UNTITLED_SERMON = "Untitled Sermon"


class EventType(StrEnum):
    REGULAR = "regular"
    SPECIAL = "special"


class NotificationLevel(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """
    Parses an ISO-8601 timestamp (or plain date) into an aware datetime.

    Naive values are treated as UTC. Unparseable values sort as the oldest
    possible timestamp rather than raising.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Event:
    """A calendar entry shown in the events listing."""

    id: str
    title: str
    time: str
    description: str
    image_url: str
    date: Optional[str] = None
    is_permanent: bool = False
    type: EventType = EventType.SPECIAL

    @classmethod
    def from_record(cls, event_id: str, record: dict) -> "Event":
        """Builds an Event from a camelCase store record."""
        data = convert_keys(record, "camel_to_snake")
        data["id"] = event_id
        data.setdefault("title", "")
        data.setdefault("time", "")
        data.setdefault("description", "")
        data.setdefault("image_url", "")
        data["is_permanent"] = bool(data.get("is_permanent", False))
        if data.get("type") not in set(EventType):
            data.pop("type", None)
        return from_dict(
            data_class=cls,
            data=data,
            config=Config(cast=[EventType], check_types=False),
        )

    def to_record(self) -> dict:
        """
        Returns the document stored for this event.

        `id` and `isPermanent` are never stored; the id is the document key
        and permanence is a property of the seed list.
        """
        data = asdict(self)
        data.pop("id")
        data.pop("is_permanent")
        data["type"] = str(self.type)
        return convert_keys(data, "snake_to_camel")

    def to_json(self) -> dict:
        data = convert_keys(asdict(self), "snake_to_camel")
        data["type"] = str(self.type)
        return data


@dataclass
class Sermon:
    """An archived sermon recording."""

    id: str
    title: str
    date: str
    audio_url: str
    description: str = ""

    @classmethod
    def from_record(cls, sermon_id: str, record: Optional[dict]) -> "Sermon":
        """Builds a Sermon from a keyed store child, filling missing fields."""
        data = convert_keys(record or {}, "camel_to_snake")
        return cls(
            id=sermon_id,
            title=data.get("title") or UNTITLED_SERMON,
            date=data.get("date") or utc_now_iso(),
            audio_url=data.get("audio_url") or "",
            description=data.get("description") or "",
        )

    @property
    def sort_key(self) -> datetime:
        return parse_timestamp(self.date)

    @property
    def download_filename(self) -> str:
        return f"{self.title}.mp3"

    def to_record(self) -> dict:
        data = asdict(self)
        data.pop("id")
        return convert_keys(data, "snake_to_camel")


@dataclass(frozen=True)
class SessionIdentity:
    """Minimal profile of the signed-in user, used to gate admin actions."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    message: str
    created_at: str = field(default_factory=utc_now_iso)
    # Client session the message is addressed to; None reaches every client.
    recipient: Optional[str] = None
    sequence: int = 0
