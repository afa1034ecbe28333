"""
Application context tying the site's collections, uploads and session together.
"""

from __future__ import annotations

from dataclasses import dataclass

from backend.auth import AuthGate
from backend.events import EventCollection
from backend.notifications import InMemoryNotifier
from backend.sermons import SermonArchive
from backend.uploads import UploadWorkflow


@dataclass
class SiteContext:
    events: EventCollection
    sermons: SermonArchive
    uploads: UploadWorkflow
    auth: AuthGate
    notifier: InMemoryNotifier

    def load(self) -> None:
        """Initial fetch of events and sermons; failures notify every client."""
        self.events.load_events()
        self.sermons.load_sermons()

    def close(self) -> None:
        self.auth.close_all()
