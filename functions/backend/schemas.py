"""
Pydantic schemas for the site API.

Field names follow the web client's camelCase payloads.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from shared.types import Event, Notification, Sermon, SessionIdentity


class EventRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    time: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = Field(default=None, max_length=2048)
    type: Optional[Literal["regular", "special"]] = None

    def to_fields(self) -> dict:
        return {
            "title": self.title,
            "time": self.time,
            "date": self.date,
            "description": self.description,
            "image_url": self.imageUrl,
            "type": self.type,
        }


class EventResponse(BaseModel):
    id: str
    title: str
    time: str
    date: Optional[str] = None
    description: str
    imageUrl: str
    isPermanent: bool
    type: Literal["regular", "special"]

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(**event.to_json())


class EventListResponse(BaseModel):
    events: list[EventResponse]


class SermonRequest(BaseModel):
    audioUrl: str = Field(..., min_length=1, max_length=2048)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=4096)


class SermonResponse(BaseModel):
    id: str
    title: str
    date: str
    audioUrl: str
    description: str
    downloadFilename: str

    @classmethod
    def from_sermon(cls, sermon: Sermon) -> "SermonResponse":
        return cls(
            id=sermon.id,
            title=sermon.title,
            date=sermon.date,
            audioUrl=sermon.audio_url,
            description=sermon.description,
            downloadFilename=sermon.download_filename,
        )


class SermonListResponse(BaseModel):
    sermons: list[SermonResponse]


class UploadResponse(BaseModel):
    url: str
    path: str
    progress: float
    bytes: int


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=4096)


class GoogleLoginRequest(BaseModel):
    idToken: Optional[str] = None
    errorCode: Optional[str] = None


class IdentityResponse(BaseModel):
    uid: str
    email: Optional[str] = None
    displayName: Optional[str] = None
    photoURL: Optional[str] = None

    @classmethod
    def from_identity(
        cls, identity: Optional[SessionIdentity]
    ) -> Optional["IdentityResponse"]:
        if identity is None:
            return None
        return cls(
            uid=identity.uid,
            email=identity.email,
            displayName=identity.display_name,
            photoURL=identity.photo_url,
        )


class SessionResponse(BaseModel):
    sessionId: Optional[str] = None
    identity: Optional[IdentityResponse] = None
    loading: bool


class AuthResultResponse(BaseModel):
    success: bool
    sessionId: Optional[str] = None
    identity: Optional[IdentityResponse] = None


class GoogleUrlResponse(BaseModel):
    url: str


class NotificationResponse(BaseModel):
    level: Literal["success", "error", "info"]
    message: str
    createdAt: str

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            level=str(notification.level),
            message=notification.message,
            createdAt=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
