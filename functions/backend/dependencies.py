"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
from functools import partial

import firebase_admin
from firebase_admin import credentials

from backend.auth import (
    AuthGate,
    AuthProviderFactory,
    FirebaseAuthProvider,
    InMemoryAccounts,
    InMemoryAuthProvider,
)
from backend.config import get_settings
from backend.db import (
    EventStore,
    FirestoreEventStore,
    InMemoryEventStore,
    InMemorySermonStore,
    RealtimeDbSermonStore,
    SermonStore,
    SqlEventStore,
    SqlSermonStore,
)
from backend.events import EventCollection
from backend.notifications import InMemoryNotifier
from backend.sermons import SermonArchive
from backend.site import SiteContext
from backend.storage import BlobStore, FirebaseBlobStore, InMemoryBlobStore, S3BlobStore
from backend.uploads import UploadWorkflow

logger = logging.getLogger(__name__)

_firebase_app: firebase_admin.App | None = None
_site_context: SiteContext | None = None


def get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app:
        return _firebase_app

    settings = get_settings()
    if settings.firebase_credentials_path:
        credential = credentials.Certificate(settings.firebase_credentials_path)
    else:
        credential = credentials.ApplicationDefault()
    options = {
        "projectId": settings.firebase_project_id,
        "databaseURL": settings.firebase_database_url,
        "storageBucket": settings.firebase_storage_bucket,
    }
    _firebase_app = firebase_admin.initialize_app(
        credential, {key: value for key, value in options.items() if value}
    )
    return _firebase_app


def build_event_store() -> EventStore:
    settings = get_settings()
    if settings.use_in_memory_backends:
        return InMemoryEventStore()
    if settings.database_url:
        return SqlEventStore(settings.database_url)
    if settings.firebase_configured:
        return FirestoreEventStore(get_firebase_app())
    return InMemoryEventStore()


def build_sermon_store() -> SermonStore:
    settings = get_settings()
    if settings.use_in_memory_backends:
        return InMemorySermonStore()
    if settings.database_url:
        return SqlSermonStore(settings.database_url)
    if settings.firebase_configured and settings.firebase_database_url:
        return RealtimeDbSermonStore(get_firebase_app())
    return InMemorySermonStore()


def build_blob_store() -> BlobStore:
    settings = get_settings()
    if settings.use_in_memory_backends:
        return InMemoryBlobStore()
    if settings.s3_bucket:
        return S3BlobStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.s3_public_base_url,
        )
    if settings.firebase_configured and settings.firebase_storage_bucket:
        return FirebaseBlobStore(get_firebase_app())
    return InMemoryBlobStore()


def build_auth_provider_factory() -> AuthProviderFactory:
    """Return a factory producing one provider instance per client session."""
    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_web_api_key:
        return partial(InMemoryAuthProvider, InMemoryAccounts())
    return partial(FirebaseAuthProvider, settings.firebase_web_api_key)


def build_site_context() -> SiteContext:
    settings = get_settings()
    notifier = InMemoryNotifier(history=settings.notification_history)
    return SiteContext(
        events=EventCollection(build_event_store(), notifier),
        sermons=SermonArchive(build_sermon_store(), notifier),
        uploads=UploadWorkflow(
            build_blob_store(),
            notifier,
            chunk_size=settings.upload_chunk_size,
            max_image_bytes=settings.max_image_upload_bytes,
        ),
        auth=AuthGate(
            build_auth_provider_factory(),
            notifier,
            google_client_id=settings.google_client_id,
            google_redirect_uri=settings.google_redirect_uri,
            max_sessions=settings.max_client_sessions,
        ),
        notifier=notifier,
    )


def get_site_context() -> SiteContext:
    """
    Return a singleton site context so collections and the session persist
    across requests.
    """
    global _site_context
    if _site_context:
        return _site_context

    _site_context = build_site_context()
    _site_context.load()
    logger.info(
        "Site context ready: %d events, %d sermons",
        len(_site_context.events.events),
        len(_site_context.sermons.sermons),
    )
    return _site_context


def set_site_context(context: SiteContext | None) -> None:
    """Replace the singleton (tests, or a fresh reload)."""
    global _site_context
    if _site_context:
        _site_context.close()
    _site_context = context
