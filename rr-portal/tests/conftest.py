from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from renda_portal.app import create_app
from renda_portal.backend import AuthSession
from renda_portal.config import Settings
from renda_portal.errors import AuthProviderError
from renda_portal.policy.login_status import FailureReport, LoginStatus

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

PASSWORD = "correct-horse"


def json_response(status: int, payload=None) -> MagicMock:
    """Stand-in for a requests.Response carrying a JSON body."""
    resp = MagicMock()
    resp.status_code = status
    body = json.dumps(payload).encode() if payload is not None else b""
    resp.content = body
    resp.text = body.decode()
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


class FakeBackend:
    """In-memory stand-in for the policy engine and auth provider."""

    def __init__(self, max_attempts=5, captcha_after=3, lock_after=4, lock_minutes=15, notify_after=3):
        self.max_attempts = max_attempts
        self.captcha_after = captcha_after
        self.lock_after = lock_after
        self.lock_minutes = lock_minutes
        self.notify_after = notify_after
        self.now = NOW

        self.accounts = {"ana@example.com": PASSWORD}
        self.failed = {}
        self.locked_until = {}
        self.blocked = set()
        self.profiles = {}
        self.session_ttl = None
        self.revoked = set()
        self.calls = []

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    # Policy engine

    def check_login_allowed(self, email):
        self.calls.append(("check_login_allowed", email))
        failed = self.failed.get(email, 0)
        locked_until = self.locked_until.get(email)
        is_blocked = email in self.blocked
        locked = locked_until is not None and locked_until > self.now
        return LoginStatus(
            allowed=not (is_blocked or locked),
            failed_count=failed,
            remaining_attempts=self.max_attempts - failed,
            requires_captcha=failed >= self.captcha_after,
            is_blocked=is_blocked,
            locked_until=locked_until,
        )

    def record_failed_login(self, email, ip=None):
        self.calls.append(("record_failed_login", email, ip))
        failed = self.failed.get(email, 0) + 1
        self.failed[email] = failed
        locked_until = None
        if failed >= self.lock_after:
            locked_until = self.now + timedelta(minutes=self.lock_minutes)
            self.locked_until[email] = locked_until
        return FailureReport(
            failed_count=failed,
            is_blocked=email in self.blocked,
            locked_until=locked_until,
            should_notify=failed >= self.notify_after,
            requires_captcha=failed >= self.captcha_after,
        )

    def reset_login_attempts(self, email):
        self.calls.append(("reset_login_attempts", email))
        self.failed.pop(email, None)
        self.locked_until.pop(email, None)

    def notify_suspicious_login(self, email, failed_count, ip_address, is_blocked):
        self.calls.append(("notify_suspicious_login", email, failed_count, ip_address, is_blocked))

    # Auth provider

    def sign_in_with_password(self, email, password):
        self.calls.append(("sign_in_with_password", email))
        if self.accounts.get(email) != password:
            raise AuthProviderError("Invalid login credentials", http_status=400)
        return self._session("access-", email)

    def _session(self, prefix, email):
        expires_at = self.now + self.session_ttl if self.session_ttl is not None else None
        return AuthSession(
            access_token=prefix + email,
            refresh_token="refresh-" + email,
            user_id="user-" + email,
            email=email,
            expires_at=expires_at,
        )

    def refresh_session(self, refresh_token):
        self.calls.append(("refresh_session", refresh_token))
        if refresh_token in self.revoked:
            raise AuthProviderError("Invalid Refresh Token: Already Used", http_status=400)
        return self._session("fresh-", refresh_token[len("refresh-"):])

    def sign_up(self, email, password, name, redirect_to):
        self.calls.append(("sign_up", email, name, redirect_to))
        if email in self.accounts:
            raise AuthProviderError("User already registered", http_status=422)
        self.accounts[email] = password
        return {"id": "user-" + email}

    def reset_password_for_email(self, email, redirect_to):
        self.calls.append(("reset_password_for_email", email, redirect_to))

    def update_password(self, access_token, password):
        self.calls.append(("update_password", access_token))

    def get_profile(self, user_id, access_token):
        self.calls.append(("get_profile", user_id, access_token))
        return self.profiles.get(user_id)

    def sign_out(self, access_token):
        self.calls.append(("sign_out", access_token))


class FakeChallenge:
    def __init__(self):
        self.calls = []

    def execute(self, response_token, remote_ip=None):
        self.calls.append(response_token)
        token = (response_token or "").strip()
        return token or None


class FakeTimer:
    """threading.Timer replacement; tests fire timers by hand."""

    created: list = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled:
            self.function(*self.args, **self.kwargs)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def challenge():
    return FakeChallenge()


@pytest.fixture
def fake_timers():
    FakeTimer.created = []
    return FakeTimer


@pytest.fixture
def settings():
    return Settings(
        supabase_url="https://test.supabase.co",
        supabase_anon_key="anon",
        site_url="https://portal.test",
        secret_key="test-secret",
        session_cookie_secure=False,
        trust_x_forwarded_for=True,
    )


@pytest.fixture
def app(settings, backend, challenge):
    app = create_app(settings=settings, backend=backend, challenge=challenge)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
