"""
User-facing notification channel.

The web client renders these as toasts; the backend only records them.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from shared.types import Notification, NotificationLevel

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Channel for success/failure messages shown to the site user."""

    def success(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        ...

    def forget(self, recipient: str) -> None:
        """Drop delivery state for a closed client session."""
        ...


class InMemoryNotifier:
    """
    Keeps the most recent notifications so clients can poll them.

    Messages emitted inside `deliver_to(session_id)` reach that client only.
    Messages emitted outside any delivery block, such as startup load
    failures, reach every client. Inside `deliver_to(None)` there is no
    client to reach, so messages are only logged.
    """

    def __init__(self, history: int = 50):
        self.notifications: deque[Notification] = deque(maxlen=history)
        self._cursors: dict[Optional[str], int] = {}
        self._sequence = 0
        self._lock = threading.Lock()
        self._local = threading.local()

    @contextmanager
    def deliver_to(self, recipient: Optional[str]) -> Iterator[None]:
        previous = getattr(self._local, "scope", None)
        self._local.scope = (recipient,)
        try:
            yield
        finally:
            self._local.scope = previous

    def _emit(self, level: NotificationLevel, message: str) -> None:
        log_level = logging.ERROR if level == NotificationLevel.ERROR else logging.INFO
        logger.log(log_level, "[notify:%s] %s", level, message)
        scope = getattr(self._local, "scope", None)
        if scope is not None and scope[0] is None:
            return
        with self._lock:
            self._sequence += 1
            self.notifications.append(
                Notification(
                    level=level,
                    message=message,
                    recipient=scope[0] if scope else None,
                    sequence=self._sequence,
                )
            )

    def success(self, message: str) -> None:
        self._emit(NotificationLevel.SUCCESS, message)

    def error(self, message: str) -> None:
        self._emit(NotificationLevel.ERROR, message)

    def info(self, message: str) -> None:
        self._emit(NotificationLevel.INFO, message)

    def drain(self, recipient: Optional[str] = None) -> list[Notification]:
        """Return notifications `recipient` has not seen yet, oldest first."""
        with self._lock:
            cursor = self._cursors.get(recipient, 0)
            self._cursors[recipient] = self._sequence
            return [
                n
                for n in self.notifications
                if n.sequence > cursor and n.recipient in (None, recipient)
            ]

    def forget(self, recipient: str) -> None:
        with self._lock:
            self._cursors.pop(recipient, None)

    def reset(self) -> None:
        with self._lock:
            self.notifications.clear()
            self._cursors.clear()
