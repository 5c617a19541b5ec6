import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import requests

from .errors import AuthProviderError, BackendError
from .policy.login_status import FailureReport, LoginStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    user_id: str
    email: str
    expires_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "AuthSession":
        user = payload.get("user") or {}
        expires_at = payload.get("expires_at")
        return cls(
            access_token=payload.get("access_token", ""),
            refresh_token=payload.get("refresh_token", ""),
            user_id=user.get("id", ""),
            email=user.get("email", ""),
            expires_at=datetime.fromtimestamp(int(expires_at), tz=timezone.utc) if expires_at else None,
        )


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return r.text or f"HTTP {r.status_code}"
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {r.status_code}"


def _parse(what: str, parser, payload):
    """Malformed RPC payloads surface as backend errors, like a failed call."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise BackendError(f"{what}: unexpected payload {type(payload).__name__}")
    try:
        return parser(payload)
    except (TypeError, ValueError, OverflowError) as e:
        raise BackendError(f"{what}: malformed payload: {e}") from e


class SupabaseClient:
    """
    Thin client for the managed backend: GoTrue auth, PostgREST RPCs and edge functions.
    Lockout counting and policy decisions belong to the backend; nothing is cached here.
    """

    def __init__(self, base_url: str, anon_key: str, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout

    def _headers(self, access_token: Optional[str] = None) -> dict:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, *, access_token=None, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return requests.request(
                method, url, headers=self._headers(access_token), timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise BackendError(f"{method} {path} failed: {e}") from e

    def _backend_json(self, method: str, path: str, **kwargs):
        r = self._request(method, path, **kwargs)
        if r.status_code >= 400:
            raise BackendError(f"{path}: {_error_message(r)}", http_status=r.status_code)
        if not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise BackendError(f"{path}: invalid JSON response") from e

    def _auth_json(self, what: str, method: str, path: str, **kwargs):
        """4xx means the provider rejected the request; 5xx and transport errors are backend errors."""
        r = self._request(method, path, **kwargs)
        if 400 <= r.status_code < 500:
            raise AuthProviderError(_error_message(r), http_status=r.status_code)
        if r.status_code >= 500:
            raise BackendError(f"{what}: {_error_message(r)}", http_status=r.status_code)
        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise BackendError(f"{what}: invalid JSON response") from e

    # Auth provider

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        payload = self._auth_json(
            "sign in",
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = AuthSession.from_payload(payload)
        if not session.access_token:
            raise BackendError("sign in: missing access token")
        return session

    def refresh_session(self, refresh_token: str) -> AuthSession:
        payload = self._auth_json(
            "refresh",
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        session = AuthSession.from_payload(payload)
        if not session.access_token:
            raise BackendError("refresh: missing access token")
        return session

    def sign_up(self, email: str, password: str, name: str, redirect_to: str) -> dict:
        return self._auth_json(
            "sign up",
            "POST",
            "/auth/v1/signup",
            params={"redirect_to": redirect_to},
            json={"email": email, "password": password, "data": {"name": name}},
        )

    def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        self._auth_json("recover", "POST", "/auth/v1/recover", params={"redirect_to": redirect_to},
                        json={"email": email})

    def update_password(self, access_token: str, password: str) -> None:
        self._auth_json("update user", "PUT", "/auth/v1/user", access_token=access_token,
                        json={"password": password})

    def sign_out(self, access_token: str) -> None:
        try:
            self._backend_json("POST", "/auth/v1/logout", access_token=access_token)
        except BackendError as e:
            logger.warning("sign out failed: %s", e)

    # Policy engine RPCs

    def rpc(self, fn: str, params: dict, access_token: Optional[str] = None):
        return self._backend_json("POST", f"/rest/v1/rpc/{fn}", json=params, access_token=access_token)

    def check_login_allowed(self, email: str) -> LoginStatus:
        payload = self.rpc("check_login_allowed", {"p_email": email})
        return _parse("check_login_allowed", LoginStatus.from_payload, payload)

    def record_failed_login(self, email: str, ip_address: Optional[str] = None) -> FailureReport:
        params = {"p_email": email}
        if ip_address:
            params["p_ip_address"] = ip_address
        payload = self.rpc("record_failed_login", params)
        return _parse("record_failed_login", FailureReport.from_payload, payload)

    def reset_login_attempts(self, email: str) -> None:
        self.rpc("reset_login_attempts", {"p_email": email})

    # Edge functions

    def invoke(self, function: str, body: dict, access_token: Optional[str] = None):
        return self._backend_json("POST", f"/functions/v1/{function}", json=body, access_token=access_token)

    def notify_suspicious_login(
        self, email: str, failed_count: int, ip_address: Optional[str], is_blocked: bool
    ) -> None:
        self.invoke(
            "notify-suspicious-login",
            {
                "email": email,
                "failed_count": failed_count,
                "ip_address": ip_address,
                "is_blocked": is_blocked,
            },
        )

    # Tables

    def get_profile(self, user_id: str, access_token: str) -> Optional[dict]:
        rows = self._backend_json(
            "GET",
            "/rest/v1/profiles",
            access_token=access_token,
            params={"id": f"eq.{user_id}", "select": "id,name,email,is_blocked,blocked_message"},
        )
        if not rows:
            return None
        return rows[0]
