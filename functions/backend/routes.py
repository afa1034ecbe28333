"""
HTTP routes for the site API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.auth import SessionState
from backend.dependencies import get_site_context
from backend.errors import (
    EventNotFoundError,
    NotSignedInError,
    RemoteStoreError,
    SiteError,
    UploadError,
    UploadInProgressError,
    ValidationError,
)
from backend.schemas import (
    AuthResultResponse,
    EventListResponse,
    EventRequest,
    EventResponse,
    GoogleLoginRequest,
    GoogleUrlResponse,
    IdentityResponse,
    LoginRequest,
    NotificationListResponse,
    NotificationResponse,
    SermonListResponse,
    SermonRequest,
    SermonResponse,
    SessionResponse,
    UploadResponse,
)
from backend.site import SiteContext
from backend.uploads import SelectedFile, UploadTask

logger = logging.getLogger(__name__)

router = APIRouter()
bearer_scheme = HTTPBearer(auto_error=False)


def _http_error(error: SiteError) -> HTTPException:
    if isinstance(error, UploadInProgressError):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail=error.message)
    if isinstance(error, EventNotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, NotSignedInError):
        return HTTPException(status_code=401, detail=error.message)
    if isinstance(error, UploadError):
        return HTTPException(status_code=502, detail=f"Upload failed: {error.message}")
    if isinstance(error, RemoteStoreError):
        return HTTPException(status_code=502, detail="Remote store unavailable")
    logger.error("Unhandled site error: %s", error)
    return HTTPException(status_code=500, detail="Unexpected error")


def client_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    site: SiteContext = Depends(get_site_context),
) -> Optional[SessionState]:
    """The caller's session, identified by its bearer session id."""
    if credentials is None:
        return None
    return site.auth.get_session(credentials.credentials)


def require_session(
    session: Optional[SessionState] = Depends(client_session),
) -> SessionState:
    if session is None:
        raise HTTPException(status_code=401, detail="Client session required")
    return session


def require_admin(
    session: Optional[SessionState] = Depends(client_session),
    site: SiteContext = Depends(get_site_context),
) -> SessionState:
    try:
        site.auth.require_identity(session)
    except NotSignedInError as e:
        raise _http_error(e)
    return session


def _delivering(site: SiteContext, session: Optional[SessionState]):
    return site.notifier.deliver_to(session.session_id if session else None)


def _selected_file(file: UploadFile) -> SelectedFile:
    return SelectedFile(
        filename=file.filename or "upload",
        content_type=file.content_type,
        data=file.file.read(),
    )


def _run_upload(task: UploadTask) -> UploadResponse:
    try:
        url = task.result()
    except UploadError as e:
        raise _http_error(e)
    return UploadResponse(
        url=url, path=task.path, progress=task.progress, bytes=task.file.size
    )


@router.get("/events", response_model=EventListResponse)
def list_events(site: SiteContext = Depends(get_site_context)):
    return EventListResponse(
        events=[EventResponse.from_event(event) for event in site.events.events]
    )


@router.post("/events/reload", response_model=EventListResponse)
def reload_events(
    site: SiteContext = Depends(get_site_context),
    session: Optional[SessionState] = Depends(client_session),
):
    with _delivering(site, session):
        events = site.events.load_events()
    return EventListResponse(events=[EventResponse.from_event(e) for e in events])


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    payload: EventRequest,
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_admin),
):
    try:
        with _delivering(site, session):
            event = site.events.save_event(payload.to_fields())
    except SiteError as e:
        raise _http_error(e)
    return EventResponse.from_event(event)


@router.put("/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: str,
    payload: EventRequest,
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_admin),
):
    existing = site.events.get(event_id)
    if existing is None:
        raise _http_error(EventNotFoundError(event_id))
    try:
        with _delivering(site, session):
            event = site.events.save_event(payload.to_fields(), existing=existing)
    except SiteError as e:
        raise _http_error(e)
    return EventResponse.from_event(event)


@router.get("/sermons", response_model=SermonListResponse)
def list_sermons(site: SiteContext = Depends(get_site_context)):
    return SermonListResponse(
        sermons=[SermonResponse.from_sermon(s) for s in site.sermons.sermons]
    )


@router.post("/sermons/reload", response_model=SermonListResponse)
def reload_sermons(
    site: SiteContext = Depends(get_site_context),
    session: Optional[SessionState] = Depends(client_session),
):
    with _delivering(site, session):
        sermons = site.sermons.load_sermons()
    return SermonListResponse(sermons=[SermonResponse.from_sermon(s) for s in sermons])


@router.post("/sermons", response_model=SermonResponse, status_code=201)
def create_sermon(
    payload: SermonRequest,
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_admin),
):
    """Record a sermon whose audio was uploaded through /uploads/audio."""
    try:
        with _delivering(site, session):
            sermon = site.sermons.submit(
                site.uploads, payload.audioUrl, payload.title, payload.description
            )
    except SiteError as e:
        raise _http_error(e)
    return SermonResponse.from_sermon(sermon)


@router.post("/sermons/upload", response_model=SermonResponse, status_code=201)
def upload_sermon(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str = Form(""),
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_admin),
):
    try:
        with _delivering(site, session):
            sermon = site.sermons.upload_and_add(
                site.uploads, _selected_file(file), title, description
            )
    except SiteError as e:
        raise _http_error(e)
    return SermonResponse.from_sermon(sermon)


@router.post("/uploads/audio", response_model=UploadResponse, status_code=201)
def upload_audio(
    file: UploadFile = File(...),
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_admin),
):
    with _delivering(site, session):
        try:
            task = site.uploads.upload_audio(_selected_file(file))
        except ValidationError as e:
            raise _http_error(e)
        return _run_upload(task)


@router.post("/uploads/image", response_model=UploadResponse, status_code=201)
def upload_image(
    file: UploadFile = File(...),
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_admin),
):
    with _delivering(site, session):
        try:
            task = site.uploads.upload_image(_selected_file(file))
        except ValidationError as e:
            raise _http_error(e)
        return _run_upload(task)


def _auth_result(session: SessionState, success: bool) -> AuthResultResponse:
    return AuthResultResponse(
        success=success,
        sessionId=session.session_id,
        identity=IdentityResponse.from_identity(session.identity),
    )


def _session_response(session: Optional[SessionState]) -> SessionResponse:
    if session is None:
        return SessionResponse(loading=False)
    return SessionResponse(
        sessionId=session.session_id,
        identity=IdentityResponse.from_identity(session.identity),
        loading=session.loading,
    )


@router.post("/auth/session", response_model=SessionResponse, status_code=201)
def open_session(site: SiteContext = Depends(get_site_context)):
    return _session_response(site.auth.open_session())


@router.get("/auth/session", response_model=SessionResponse)
def current_session(session: Optional[SessionState] = Depends(client_session)):
    return _session_response(session)


@router.post("/auth/login", response_model=AuthResultResponse)
def login(
    payload: LoginRequest,
    site: SiteContext = Depends(get_site_context),
    session: Optional[SessionState] = Depends(client_session),
):
    """Sign in within the caller's session, opening one if none was presented."""
    session = session or site.auth.open_session()
    with _delivering(site, session):
        success = site.auth.login(session, payload.email, payload.password)
    return _auth_result(session, success)


@router.post("/auth/signup", response_model=AuthResultResponse)
def signup(
    payload: LoginRequest,
    site: SiteContext = Depends(get_site_context),
    session: Optional[SessionState] = Depends(client_session),
):
    session = session or site.auth.open_session()
    with _delivering(site, session):
        success = site.auth.signup(session, payload.email, payload.password)
    return _auth_result(session, success)


@router.get("/auth/google/url", response_model=GoogleUrlResponse)
def google_url(site: SiteContext = Depends(get_site_context)):
    try:
        url = site.auth.google_authorization_url()
    except ValidationError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return GoogleUrlResponse(url=url)


@router.post("/auth/google", response_model=AuthResultResponse)
def login_with_google(
    payload: GoogleLoginRequest,
    site: SiteContext = Depends(get_site_context),
    session: Optional[SessionState] = Depends(client_session),
):
    session = session or site.auth.open_session()
    with _delivering(site, session):
        success = site.auth.login_with_google(
            session, id_token=payload.idToken, error_code=payload.errorCode
        )
    return _auth_result(session, success)


@router.post("/auth/logout", response_model=AuthResultResponse)
def logout(
    site: SiteContext = Depends(get_site_context),
    session: Optional[SessionState] = Depends(client_session),
):
    with _delivering(site, session):
        success = site.auth.logout(session)
    return AuthResultResponse(
        success=success,
        sessionId=session.session_id if session else None,
        identity=IdentityResponse.from_identity(session.identity if session else None),
    )


@router.get("/notifications", response_model=NotificationListResponse)
def notifications(
    site: SiteContext = Depends(get_site_context),
    session: SessionState = Depends(require_session),
):
    """Return and clear the caller's pending notifications."""
    return NotificationListResponse(
        notifications=[
            NotificationResponse.from_notification(n)
            for n in site.notifier.drain(session.session_id)
        ]
    )
