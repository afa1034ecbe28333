"""
Sermon archive kept in step with the keyed sermon store.
"""

from __future__ import annotations

import logging

from backend.db import SermonStore
from backend.errors import MissingFieldError, RemoteStoreError
from backend.notifications import Notifier
from backend.uploads import SelectedFile, UploadWorkflow
from shared.types import Sermon, utc_now_iso

logger = logging.getLogger(__name__)


class SermonArchive:
    """Owns the most-recent-first sermon list shown on the site."""

    def __init__(self, store: SermonStore, notifier: Notifier):
        self._store = store
        self._notifier = notifier
        self.sermons: list[Sermon] = []
        self.loading = True

    def load_sermons(self) -> list[Sermon]:
        """
        Fetch every sermon, newest first.

        Missing fields get defaults. A failed fetch notifies the user and
        leaves an empty archive; it never raises.
        """
        try:
            records = self._store.list_sermons()
            sermons = [Sermon.from_record(key, record) for key, record in records]
        except Exception as e:
            logger.error("Error fetching sermons: %s", e)
            self._notifier.error("Failed to load sermons")
            sermons = []
        finally:
            self.loading = False
        self.sermons = sorted(sermons, key=lambda s: s.sort_key, reverse=True)
        return self.sermons

    def add_sermon(self, audio_url: str, title: str, description: str = "") -> Sermon:
        """
        Record an uploaded sermon and put it at the top of the archive.

        Raises:
            MissingFieldError: If the title or audio URL is empty.
            RemoteStoreError: If the store rejects the write; the archive is
                left unchanged.
        """
        if not title:
            raise MissingFieldError("title")
        if not audio_url:
            raise MissingFieldError("audio_url")

        sermon = Sermon(
            id="",
            title=title,
            date=utc_now_iso(),
            audio_url=audio_url,
            description=description or "",
        )
        try:
            key = self._store.push_sermon(sermon.to_record())
        except Exception as e:
            logger.error("Error saving sermon: %s", e)
            self._notifier.error("Failed to save sermon")
            raise RemoteStoreError(f"Failed to save sermon: {e}") from e

        sermon.id = key
        self.sermons = [sermon, *self.sermons]
        self._notifier.success("Sermon uploaded successfully!")
        return sermon

    def submit(
        self,
        uploads: UploadWorkflow,
        audio_url: str,
        title: str,
        description: str = "",
    ) -> Sermon:
        """Form submission path: refused while an audio upload is in flight."""
        uploads.guard_submit()
        return self.add_sermon(audio_url, title, description)

    def upload_and_add(
        self,
        uploads: UploadWorkflow,
        file: SelectedFile,
        title: str,
        description: str = "",
    ) -> Sermon:
        """
        Upload an audio file and record it as a sermon once the URL is known.

        Validation happens before the transfer starts, so a bad file or an
        empty title never reaches storage.
        """
        if not title:
            raise MissingFieldError("title")
        task = uploads.upload_audio(file)
        url = task.result(
            on_progress=lambda percent: logger.debug(
                "Uploading %s: %.0f%%", task.path, percent
            )
        )
        return self.add_sermon(url, title, description)
