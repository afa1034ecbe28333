"""
Error taxonomy for the site backend.

Validation errors are raised before any network call. Transport errors wrap
failures from the remote stores and blob storage. Provider errors carry the
auth provider's error code so callers can classify them.
"""

from __future__ import annotations


class SiteError(Exception):
    """Base class for errors with a user-safe message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SiteError):
    """Input rejected before reaching any remote service."""


class MissingFieldError(ValidationError):
    def __init__(self, field_name: str):
        super().__init__(f"{field_name} is required")
        self.field_name = field_name


class FileTypeError(ValidationError):
    def __init__(self, content_type: str | None, expected: str):
        super().__init__(
            f"Unsupported file type {content_type or 'unknown'}; expected {expected}"
        )
        self.content_type = content_type
        self.expected = expected


class FileTooLargeError(ValidationError):
    def __init__(self, size: int, limit: int):
        super().__init__(
            f"File is {size} bytes; the limit is {limit // (1024 * 1024)} MB"
        )
        self.size = size
        self.limit = limit


class UploadInProgressError(ValidationError):
    def __init__(self):
        super().__init__("Please wait for the upload to finish before submitting")


class EventNotFoundError(SiteError):
    def __init__(self, event_id: str):
        super().__init__("Event not found")
        self.event_id = event_id


class NotSignedInError(SiteError):
    def __init__(self):
        super().__init__("Admin sign-in required")


class RemoteStoreError(SiteError):
    """A document or keyed store operation failed in transport."""


class UploadError(SiteError):
    """A blob transfer failed; no URL is available."""


class UploadCancelledError(UploadError):
    def __init__(self):
        super().__init__("Upload cancelled")


class AuthProviderError(SiteError):
    """An auth provider failure identified by a provider error code."""

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"
