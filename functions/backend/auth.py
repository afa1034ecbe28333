"""
Auth session gate: email/password and Google sign-in, plus the per-client
session state that unlocks admin actions.

Every client session owns a provider instance, and its identity is only ever
changed by that provider's auth-state subscription. The gate's verbs ask the
provider to sign in or out and report a boolean outcome without raising.
"""

from __future__ import annotations

import logging
import secrets
import threading
import uuid
from collections import OrderedDict
from typing import Callable, Optional, Protocol
from urllib.parse import urlencode

import requests

from backend.errors import AuthProviderError, NotSignedInError, ValidationError
from backend.notifications import Notifier
from shared.types import NotificationLevel, SessionIdentity

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
GOOGLE_AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_PROVIDER_ID = "google.com"

AuthStateCallback = Callable[[Optional[SessionIdentity]], None]

# Identity Toolkit REST error messages mapped to the web SDK's error codes.
_REST_ERROR_CODES = {
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "INVALID_EMAIL": "auth/invalid-email",
    "USER_DISABLED": "auth/user-disabled",
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
    "INVALID_IDP_RESPONSE": "auth/invalid-credential",
}

# Google sign-in outcomes reported by the browser popup.
# TODO: product review of whether cancelled-popup-request can hide real failures.
SILENT_GOOGLE_ERROR_CODES = frozenset({"auth/cancelled-popup-request"})
GOOGLE_ERROR_NOTIFICATIONS = {
    "auth/popup-closed-by-user": (
        NotificationLevel.INFO,
        "Google sign-in was cancelled",
    ),
    "auth/popup-blocked": (
        NotificationLevel.ERROR,
        "The sign-in pop-up was blocked. Allow pop-ups for this site and try again.",
    ),
    "auth/unauthorized-domain": (
        NotificationLevel.ERROR,
        "This domain is not authorized for Google sign-in. "
        "Please contact the site administrator.",
    ),
}


class AuthProvider(Protocol):
    """Operations the gate needs from an identity provider."""

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]:
        """Subscribe to identity changes; fires once immediately. Returns unsubscribe."""
        ...

    def sign_in_with_password(self, email: str, password: str) -> SessionIdentity:
        ...

    def create_user(self, email: str, password: str) -> SessionIdentity:
        ...

    def sign_in_with_google(self, id_token: str) -> SessionIdentity:
        ...

    def sign_out(self) -> None:
        ...


AuthProviderFactory = Callable[[], AuthProvider]


class _ObservedIdentity:
    """Holds the provider's current identity and notifies subscribers."""

    def __init__(self):
        self.current_identity: Optional[SessionIdentity] = None
        self._listeners: list[AuthStateCallback] = []

    def on_auth_state_changed(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._listeners.append(callback)
        callback(self.current_identity)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_identity(self, identity: Optional[SessionIdentity]) -> None:
        self.current_identity = identity
        for listener in list(self._listeners):
            listener(identity)


class InMemoryAccounts:
    """Account directory shared by every in-memory provider instance."""

    def __init__(self):
        self.users: dict[str, tuple[str, SessionIdentity]] = {}
        self.google_tokens: dict[str, SessionIdentity] = {}
        self._lock = threading.Lock()

    def add_user(self, email: str, password: str, **profile) -> SessionIdentity:
        identity = SessionIdentity(uid=uuid.uuid4().hex, email=email, **profile)
        with self._lock:
            self.users[email] = (password, identity)
        return identity

    def add_google_token(self, id_token: str, email: str, **profile) -> SessionIdentity:
        identity = SessionIdentity(uid=uuid.uuid4().hex, email=email, **profile)
        with self._lock:
            self.google_tokens[id_token] = identity
        return identity


class InMemoryAuthProvider(_ObservedIdentity):
    """Provider double for development and tests; one instance per client."""

    def __init__(self, accounts: Optional[InMemoryAccounts] = None):
        super().__init__()
        self.accounts = accounts or InMemoryAccounts()

    def sign_in_with_password(self, email: str, password: str) -> SessionIdentity:
        if email not in self.accounts.users:
            raise AuthProviderError("auth/user-not-found")
        stored_password, identity = self.accounts.users[email]
        if stored_password != password:
            raise AuthProviderError("auth/wrong-password")
        self._set_identity(identity)
        return identity

    def create_user(self, email: str, password: str) -> SessionIdentity:
        if "@" not in email:
            raise AuthProviderError("auth/invalid-email")
        if email in self.accounts.users:
            raise AuthProviderError("auth/email-already-in-use")
        if len(password) < 6:
            raise AuthProviderError("auth/weak-password")
        identity = self.accounts.add_user(email, password)
        self._set_identity(identity)
        return identity

    def sign_in_with_google(self, id_token: str) -> SessionIdentity:
        identity = self.accounts.google_tokens.get(id_token)
        if identity is None:
            raise AuthProviderError("auth/invalid-credential")
        self._set_identity(identity)
        return identity

    def sign_out(self) -> None:
        self._set_identity(None)


class FirebaseAuthProvider(_ObservedIdentity):
    """
    Firebase Authentication through the Identity Toolkit REST API.

    Sessions are not persisted: each process starts signed out.
    """

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        request_uri: str = "http://localhost",
    ):
        super().__init__()
        if not api_key:
            raise ValueError("FIREBASE_WEB_API_KEY is required for FirebaseAuthProvider")
        self._api_key = api_key
        self._session = session or requests.Session()
        self._request_uri = request_uri
        self.id_token: Optional[str] = None

    def _post(self, method: str, payload: dict) -> dict:
        try:
            response = self._session.post(
                f"{IDENTITY_TOOLKIT_URL}/accounts:{method}",
                params={"key": self._api_key},
                json=payload,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise AuthProviderError("auth/network-request-failed", str(e)) from e

        if not response.ok:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = response.text or f"HTTP {response.status_code}"
            # Messages look like "WEAK_PASSWORD : Password should be ...".
            reason = message.split(" : ")[0].strip()
            code = _REST_ERROR_CODES.get(reason, "auth/internal-error")
            raise AuthProviderError(code, message)
        return response.json()

    def _signed_in(self, payload: dict) -> SessionIdentity:
        identity = SessionIdentity(
            uid=payload["localId"],
            email=payload.get("email"),
            display_name=payload.get("displayName"),
            photo_url=payload.get("photoUrl"),
        )
        self.id_token = payload.get("idToken")
        self._set_identity(identity)
        return identity

    def sign_in_with_password(self, email: str, password: str) -> SessionIdentity:
        payload = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._signed_in(payload)

    def create_user(self, email: str, password: str) -> SessionIdentity:
        payload = self._post(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return self._signed_in(payload)

    def sign_in_with_google(self, id_token: str) -> SessionIdentity:
        payload = self._post(
            "signInWithIdp",
            {
                "postBody": urlencode(
                    {"id_token": id_token, "providerId": GOOGLE_PROVIDER_ID}
                ),
                "requestUri": self._request_uri,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        return self._signed_in(payload)

    def sign_out(self) -> None:
        self.id_token = None
        self._set_identity(None)


class SessionState:
    """
    One client's view of the signed-in identity.

    Each client session binds its own provider instance, and the identity
    changes only through that provider's subscription.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.identity: Optional[SessionIdentity] = None
        self.loading = True
        self.provider: Optional[AuthProvider] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_signed_in(self) -> bool:
        return self.identity is not None

    def bind(self, provider: AuthProvider) -> None:
        self.unbind()
        self.provider = provider
        self._unsubscribe = provider.on_auth_state_changed(self._on_auth_state_changed)

    def unbind(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_auth_state_changed(self, identity: Optional[SessionIdentity]) -> None:
        self.identity = identity
        self.loading = False


class AuthGate:
    """
    Client sessions and the sign-in verbs that act on them.

    Session ids are opaque bearer secrets. The oldest sessions are closed
    once `max_sessions` are open.
    """

    def __init__(
        self,
        provider_factory: AuthProviderFactory,
        notifier: Notifier,
        *,
        google_client_id: Optional[str] = None,
        google_redirect_uri: Optional[str] = None,
        max_sessions: int = 1000,
    ):
        self._provider_factory = provider_factory
        self._notifier = notifier
        self._google_client_id = google_client_id
        self._google_redirect_uri = google_redirect_uri
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, SessionState] = OrderedDict()
        self._lock = threading.Lock()

    def open_session(self) -> SessionState:
        session = SessionState(secrets.token_urlsafe(32))
        session.bind(self._provider_factory())
        evicted = []
        with self._lock:
            self._sessions[session.session_id] = session
            while len(self._sessions) > self._max_sessions:
                evicted.append(self._sessions.popitem(last=False)[1])
        for stale in evicted:
            self._release(stale)
        return session

    def get_session(self, session_id: Optional[str]) -> Optional[SessionState]:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def close_session(self, session: SessionState) -> None:
        with self._lock:
            self._sessions.pop(session.session_id, None)
        self._release(session)

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            self._release(session)

    def _release(self, session: SessionState) -> None:
        session.unbind()
        self._notifier.forget(session.session_id)

    def require_identity(self, session: Optional[SessionState]) -> SessionIdentity:
        if session is None or session.identity is None:
            raise NotSignedInError()
        return session.identity

    def login(self, session: SessionState, email: str, password: str) -> bool:
        try:
            session.provider.sign_in_with_password(email, password)
        except Exception as e:
            logger.error("Login error: %s", e)
            self._notifier.error("Failed to login")
            return False
        self._notifier.success("Successfully logged in!")
        return True

    def signup(self, session: SessionState, email: str, password: str) -> bool:
        try:
            session.provider.create_user(email, password)
        except Exception as e:
            logger.error("Signup error: %s", e)
            self._notifier.error("Failed to signup")
            return False
        self._notifier.success("Successfully signed up!")
        return True

    def login_with_google(
        self,
        session: SessionState,
        id_token: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> bool:
        """
        Complete a Google sign-in started in the browser.

        The browser reports either the Google ID token or the popup's error
        code. Cancellation and popup problems get their own messages instead
        of the generic failure.
        """
        try:
            if error_code:
                raise AuthProviderError(error_code)
            if not id_token:
                raise AuthProviderError("auth/missing-credential")
            session.provider.sign_in_with_google(id_token)
        except AuthProviderError as e:
            self._handle_google_error(e)
            return False
        except Exception as e:
            logger.error("Google login error: %s", e)
            self._notifier.error("Failed to login with Google")
            return False
        self._notifier.success("Successfully logged in with Google!")
        return True

    def _handle_google_error(self, error: AuthProviderError) -> None:
        if error.code in SILENT_GOOGLE_ERROR_CODES:
            logger.info("Ignoring Google sign-in error %s", error.code)
            return
        if error.code in GOOGLE_ERROR_NOTIFICATIONS:
            level, message = GOOGLE_ERROR_NOTIFICATIONS[error.code]
            logger.info("Google sign-in ended with %s", error.code)
            if level == NotificationLevel.INFO:
                self._notifier.info(message)
            else:
                self._notifier.error(message)
            return
        logger.error("Google login error: %s", error)
        self._notifier.error("Failed to login with Google")

    def logout(self, session: Optional[SessionState]) -> bool:
        if session is None or session.identity is None:
            return True
        try:
            session.provider.sign_out()
        except Exception as e:
            logger.error("Logout error: %s", e)
            self._notifier.error("Failed to logout")
            return False
        return True

    def google_authorization_url(self, state: Optional[str] = None) -> str:
        """Authorization URL for the Google popup, always prompting for an account."""
        if not self._google_client_id or not self._google_redirect_uri:
            raise ValidationError("Google sign-in is not configured")
        state = state or uuid.uuid4().hex
        params = {
            "client_id": self._google_client_id,
            "redirect_uri": self._google_redirect_uri,
            "response_type": "id_token",
            "scope": "openid email profile",
            "prompt": "select_account",
            "nonce": uuid.uuid4().hex,
            "state": state,
        }
        return f"{GOOGLE_AUTHORIZATION_URL}?{urlencode(params)}"
