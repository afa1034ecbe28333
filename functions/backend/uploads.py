"""
Upload workflow for sermon audio and event images.

Files are validated before anything touches the network. An accepted file
becomes an `UploadTask`: a finite, single-use stream of percent values that
resolves to a retrievable URL once the last chunk lands.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from backend.errors import (
    FileTooLargeError,
    FileTypeError,
    UploadCancelledError,
    UploadError,
    UploadInProgressError,
)
from backend.notifications import Notifier
from backend.storage import BlobStore
from shared.firebase_constants import EVENT_IMAGE_PREFIX, SERMON_AUDIO_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class SelectedFile:
    """A file picked by the user, held in memory."""

    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def build_storage_path(prefix: str, filename: str, now: Optional[float] = None) -> str:
    """Namespace a filename by upload time, e.g. `sermons/1718000000000-a.mp3`."""
    epoch_ms = int((time.time() if now is None else now) * 1000)
    return f"{prefix}/{epoch_ms}-{os.path.basename(filename)}"


def _percent(transferred: int, total: int) -> float:
    if total <= 0:
        return 100.0
    return min(100.0, max(0.0, transferred / total * 100))


class UploadTask:
    """
    One in-flight transfer.

    Iterate to drive the transfer and receive progress percentages, or call
    `result()` to run it to completion. The stream cannot be restarted.
    """

    def __init__(
        self,
        workflow: "UploadWorkflow",
        path: str,
        file: SelectedFile,
        failure_message: str,
    ):
        self.path = path
        self.file = file
        self.progress = 0.0
        self.url: Optional[str] = None
        self.error: Optional[UploadError] = None
        self._workflow = workflow
        self._failure_message = failure_message
        self._started = False
        self._cancelled = False

    @property
    def done(self) -> bool:
        return self.url is not None or self.error is not None

    def cancel(self) -> None:
        """Stop before the next chunk; the task then fails as cancelled."""
        self._cancelled = True

    def __iter__(self) -> Iterator[float]:
        if self._started:
            raise RuntimeError("An upload task can only be consumed once")
        self._started = True
        return self._run()

    def result(self, on_progress: Optional[Callable[[float], None]] = None) -> str:
        for percent in self:
            if on_progress:
                on_progress(percent)
        return self.url

    def _run(self) -> Iterator[float]:
        workflow = self._workflow
        workflow._begin_transfer()
        try:
            if self._cancelled:
                raise UploadCancelledError()
            transfer = workflow.blob_store.upload_resumable(
                self.path,
                self.file.data,
                self.file.content_type or "application/octet-stream",
                workflow.chunk_size,
            )
            try:
                for transferred, total in transfer:
                    self.progress = _percent(transferred, total)
                    yield self.progress
                    if self._cancelled:
                        raise UploadCancelledError()
            finally:
                transfer.close()
            self.url = workflow.blob_store.download_url(self.path)
            logger.info("Uploaded %s (%d bytes)", self.path, self.file.size)
        except UploadCancelledError as e:
            self.error = e
            logger.info("Upload of %s cancelled at %.0f%%", self.path, self.progress)
            raise
        except Exception as e:
            logger.error("Upload of %s failed: %s", self.path, e)
            self.error = UploadError(str(e) or e.__class__.__name__)
            workflow.notifier.error(self._failure_message)
            raise self.error from e
        finally:
            workflow._end_transfer()


class UploadWorkflow:
    def __init__(
        self,
        blob_store: BlobStore,
        notifier: Notifier,
        *,
        chunk_size: int = 8 * 1024 * 1024,
        max_image_bytes: int = 5 * 1024 * 1024,
    ):
        self.blob_store = blob_store
        self.notifier = notifier
        self.chunk_size = chunk_size
        self.max_image_bytes = max_image_bytes
        self._active = 0
        self._lock = threading.Lock()

    @property
    def is_uploading(self) -> bool:
        return self._active > 0

    def _begin_transfer(self) -> None:
        with self._lock:
            self._active += 1

    def _end_transfer(self) -> None:
        with self._lock:
            self._active -= 1

    def upload_audio(self, file: SelectedFile) -> UploadTask:
        """
        Start a sermon audio upload.

        Raises:
            FileTypeError: If the file is not `audio/*`.
        """
        if not (file.content_type or "").startswith("audio/"):
            raise FileTypeError(file.content_type, "audio/*")
        return UploadTask(
            self,
            build_storage_path(SERMON_AUDIO_PREFIX, file.filename),
            file,
            failure_message="Failed to upload sermon",
        )

    def upload_image(self, file: SelectedFile) -> UploadTask:
        """
        Start an event image upload.

        Raises:
            FileTypeError: If the file is not `image/*`.
            FileTooLargeError: If the file exceeds the image size cap.
        """
        if not (file.content_type or "").startswith("image/"):
            raise FileTypeError(file.content_type, "image/*")
        if file.size > self.max_image_bytes:
            raise FileTooLargeError(file.size, self.max_image_bytes)
        return UploadTask(
            self,
            build_storage_path(EVENT_IMAGE_PREFIX, file.filename),
            file,
            failure_message="Failed to upload image",
        )

    def guard_submit(self) -> None:
        """Block dependent form submission while a transfer is in flight."""
        if self.is_uploading:
            error = UploadInProgressError()
            self.notifier.error(error.message)
            raise error
