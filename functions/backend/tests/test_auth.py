import unittest
from functools import partial
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import requests

from backend.auth import (
    AuthGate,
    FirebaseAuthProvider,
    InMemoryAccounts,
    InMemoryAuthProvider,
    SessionState,
)
from backend.errors import AuthProviderError, NotSignedInError, ValidationError
from backend.notifications import InMemoryNotifier
from shared.types import NotificationLevel


class SessionStateTests(unittest.TestCase):
    def test_loading_until_first_callback(self):
        session = SessionState("sid")
        self.assertTrue(session.loading)

        session.bind(InMemoryAuthProvider())

        self.assertFalse(session.loading)
        self.assertIsNone(session.identity)

    def test_follows_provider_changes_until_unbound(self):
        accounts = InMemoryAccounts()
        accounts.add_user("admin@example.test", "secret1")
        provider = InMemoryAuthProvider(accounts)
        session = SessionState("sid")
        session.bind(provider)

        provider.sign_in_with_password("admin@example.test", "secret1")
        self.assertTrue(session.is_signed_in)

        session.unbind()
        provider.sign_out()
        self.assertTrue(session.is_signed_in)


class AuthGateTests(unittest.TestCase):
    def setUp(self):
        self.accounts = InMemoryAccounts()
        self.admin = self.accounts.add_user(
            "admin@example.test", "secret1", display_name="Admin"
        )
        self.notifier = InMemoryNotifier()
        self.gate = AuthGate(
            partial(InMemoryAuthProvider, self.accounts),
            self.notifier,
            google_client_id="client-123",
            google_redirect_uri="https://site.example.test/auth",
        )
        self.session = self.gate.open_session()

    def test_login_success_sets_identity(self):
        self.assertTrue(self.gate.login(self.session, "admin@example.test", "secret1"))

        self.assertEqual(self.session.identity, self.admin)
        self.assertEqual(
            self.gate.require_identity(self.session).display_name, "Admin"
        )
        self.assertEqual(self.notifier.drain()[-1].message, "Successfully logged in!")

    def test_login_failure_returns_false(self):
        self.assertFalse(self.gate.login(self.session, "admin@example.test", "wrong"))

        self.assertIsNone(self.session.identity)
        notifications = self.notifier.drain()
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].level, NotificationLevel.ERROR)
        self.assertEqual(notifications[0].message, "Failed to login")
        with self.assertRaises(NotSignedInError):
            self.gate.require_identity(self.session)

    def test_sessions_sign_in_independently(self):
        other = self.gate.open_session()

        self.gate.login(self.session, "admin@example.test", "secret1")

        self.assertTrue(self.session.is_signed_in)
        self.assertFalse(other.is_signed_in)
        with self.assertRaises(NotSignedInError):
            self.gate.require_identity(other)

        self.gate.login(other, "admin@example.test", "secret1")
        self.assertTrue(self.gate.logout(other))
        self.assertFalse(other.is_signed_in)
        self.assertEqual(self.gate.require_identity(self.session), self.admin)

    def test_require_identity_without_session(self):
        with self.assertRaises(NotSignedInError):
            self.gate.require_identity(None)

    def test_session_lookup(self):
        self.assertIs(self.gate.get_session(self.session.session_id), self.session)
        self.assertIsNone(self.gate.get_session("unknown"))
        self.assertIsNone(self.gate.get_session(None))
        self.assertNotEqual(self.gate.open_session().session_id, self.session.session_id)

    def test_oldest_sessions_are_closed_past_the_cap(self):
        gate = AuthGate(
            partial(InMemoryAuthProvider, self.accounts), self.notifier, max_sessions=2
        )
        first = gate.open_session()
        second = gate.open_session()
        gate.get_session(first.session_id)

        third = gate.open_session()

        self.assertIsNone(gate.get_session(second.session_id))
        self.assertIs(gate.get_session(first.session_id), first)
        self.assertIs(gate.get_session(third.session_id), third)

    def test_closed_session_stops_following_its_provider(self):
        self.gate.close_session(self.session)

        self.session.provider.sign_in_with_password("admin@example.test", "secret1")

        self.assertIsNone(self.gate.get_session(self.session.session_id))
        self.assertFalse(self.session.is_signed_in)

    def test_signup_creates_and_signs_in(self):
        self.assertTrue(self.gate.signup(self.session, "new@example.test", "longenough"))
        self.assertEqual(self.session.identity.email, "new@example.test")
        self.assertIn("new@example.test", self.accounts.users)
        self.assertEqual(self.notifier.drain()[-1].message, "Successfully signed up!")

    def test_signup_rejections(self):
        self.assertFalse(self.gate.signup(self.session, "admin@example.test", "secret1"))
        self.assertFalse(self.gate.signup(self.session, "other@example.test", "short"))
        self.assertFalse(self.gate.signup(self.session, "not-an-email", "longenough"))
        self.assertIsNone(self.session.identity)
        self.assertEqual(
            [n.message for n in self.notifier.drain()], ["Failed to signup"] * 3
        )

    def test_popup_closed_is_a_single_info_notification(self):
        self.assertFalse(
            self.gate.login_with_google(
                self.session, error_code="auth/popup-closed-by-user"
            )
        )

        notifications = self.notifier.drain()
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].level, NotificationLevel.INFO)
        self.assertEqual(notifications[0].message, "Google sign-in was cancelled")
        self.assertIsNone(self.session.identity)

    def test_cancelled_popup_request_is_silent(self):
        self.assertFalse(
            self.gate.login_with_google(
                self.session, error_code="auth/cancelled-popup-request"
            )
        )
        self.assertEqual(self.notifier.drain(), [])

    def test_popup_blocked_explains_the_fix(self):
        self.assertFalse(
            self.gate.login_with_google(self.session, error_code="auth/popup-blocked")
        )

        notifications = self.notifier.drain()
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].level, NotificationLevel.ERROR)
        self.assertIn("pop-up", notifications[0].message)

    def test_unauthorized_domain_message(self):
        self.gate.login_with_google(self.session, error_code="auth/unauthorized-domain")
        self.assertIn("not authorized", self.notifier.drain()[0].message)

    def test_unknown_google_error_uses_generic_message(self):
        self.assertFalse(
            self.gate.login_with_google(self.session, id_token="unknown-token")
        )
        self.assertEqual(
            [n.message for n in self.notifier.drain()], ["Failed to login with Google"]
        )

    def test_google_login_success(self):
        self.accounts.add_google_token("good-token", "friend@example.test")

        self.assertTrue(self.gate.login_with_google(self.session, id_token="good-token"))

        self.assertEqual(self.session.identity.email, "friend@example.test")
        self.assertEqual(
            self.notifier.drain()[-1].message, "Successfully logged in with Google!"
        )

    def test_logout_when_signed_out_is_a_no_op(self):
        provider = MagicMock(wraps=InMemoryAuthProvider(self.accounts))
        session = SessionState("sid")
        session.bind(provider)

        self.assertTrue(self.gate.logout(session))
        self.assertTrue(self.gate.logout(session))
        self.assertTrue(self.gate.logout(None))
        provider.sign_out.assert_not_called()

    def test_logout_clears_identity(self):
        self.gate.login(self.session, "admin@example.test", "secret1")

        self.assertTrue(self.gate.logout(self.session))
        self.assertIsNone(self.session.identity)

    def test_logout_failure_reports(self):
        self.gate.login(self.session, "admin@example.test", "secret1")
        self.notifier.drain()
        self.session.provider = MagicMock()
        self.session.provider.sign_out.side_effect = ConnectionError()

        self.assertFalse(self.gate.logout(self.session))
        self.assertEqual(self.notifier.drain()[-1].message, "Failed to logout")
        self.assertIsNotNone(self.session.identity)

    def test_google_authorization_url_always_prompts(self):
        url = self.gate.google_authorization_url(state="abc")

        query = parse_qs(urlparse(url).query)
        self.assertEqual(query["prompt"], ["select_account"])
        self.assertEqual(query["client_id"], ["client-123"])
        self.assertEqual(query["state"], ["abc"])
        self.assertEqual(query["response_type"], ["id_token"])

    def test_google_authorization_url_requires_configuration(self):
        gate = AuthGate(partial(InMemoryAuthProvider, self.accounts), self.notifier)
        with self.assertRaises(ValidationError):
            gate.google_authorization_url()


def _response(ok=True, status_code=200, payload=None):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = payload or {}
    return response


class FirebaseAuthProviderTests(unittest.TestCase):
    def setUp(self):
        self.http = MagicMock()
        self.provider = FirebaseAuthProvider("web-key", session=self.http)
        self.seen = []
        self.provider.on_auth_state_changed(self.seen.append)

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            FirebaseAuthProvider("")

    def test_sign_in_with_password(self):
        self.http.post.return_value = _response(
            payload={
                "localId": "uid-1",
                "email": "admin@example.test",
                "displayName": "Admin",
                "idToken": "tok",
            }
        )

        identity = self.provider.sign_in_with_password("admin@example.test", "pw")

        self.assertEqual(identity.uid, "uid-1")
        self.assertEqual(identity.display_name, "Admin")
        self.assertEqual(self.provider.id_token, "tok")
        self.assertEqual(self.seen, [None, identity])
        args, kwargs = self.http.post.call_args
        self.assertTrue(args[0].endswith("/accounts:signInWithPassword"))
        self.assertEqual(kwargs["params"], {"key": "web-key"})
        self.assertEqual(kwargs["json"]["email"], "admin@example.test")

    def test_rest_error_maps_to_sdk_code(self):
        self.http.post.return_value = _response(
            ok=False,
            status_code=400,
            payload={"error": {"message": "INVALID_PASSWORD"}},
        )

        with self.assertRaises(AuthProviderError) as ctx:
            self.provider.sign_in_with_password("admin@example.test", "pw")

        self.assertEqual(ctx.exception.code, "auth/wrong-password")
        self.assertEqual(self.seen, [None])

    def test_rest_error_with_detail_suffix(self):
        self.http.post.return_value = _response(
            ok=False,
            status_code=400,
            payload={
                "error": {
                    "message": "WEAK_PASSWORD : Password should be at least 6 characters"
                }
            },
        )

        with self.assertRaises(AuthProviderError) as ctx:
            self.provider.create_user("a@example.test", "pw")

        self.assertEqual(ctx.exception.code, "auth/weak-password")

    def test_transport_failure_is_network_error(self):
        self.http.post.side_effect = requests.ConnectionError("offline")

        with self.assertRaises(AuthProviderError) as ctx:
            self.provider.sign_in_with_google("google-id-token")

        self.assertEqual(ctx.exception.code, "auth/network-request-failed")

    def test_google_sign_in_posts_idp_body(self):
        self.http.post.return_value = _response(
            payload={"localId": "uid-2", "email": "g@example.test", "photoUrl": "p"}
        )

        identity = self.provider.sign_in_with_google("google-id-token")

        self.assertEqual(identity.photo_url, "p")
        payload = self.http.post.call_args.kwargs["json"]
        self.assertIn("id_token=google-id-token", payload["postBody"])
        self.assertIn("providerId=google.com", payload["postBody"])

    def test_sign_out_clears_token(self):
        self.http.post.return_value = _response(payload={"localId": "u", "idToken": "t"})
        self.provider.sign_in_with_password("a@example.test", "pw")

        self.provider.sign_out()

        self.assertIsNone(self.provider.id_token)
        self.assertIsNone(self.seen[-1])


if __name__ == "__main__":
    unittest.main()
