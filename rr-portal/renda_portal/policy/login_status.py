from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil.parser import isoparse

from .login_policy import LoginPolicy


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        # PostgREST trims trailing zeros from the fraction; GoTrue may send a trailing Z
        ts = isoparse(str(value))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class LoginStatus:
    """Result of check_login_allowed for one email. Never persisted."""

    allowed: bool = True
    failed_count: int = 0
    remaining_attempts: int = 0
    requires_captcha: bool = False
    is_blocked: bool = False
    locked_until: Optional[datetime] = None
    block_reason: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict, now: Optional[datetime] = None) -> "LoginStatus":
        now = now or utcnow()
        is_blocked = bool(payload.get("is_blocked", False))
        locked_until = _parse_ts(payload.get("locked_until"))
        allowed = bool(payload.get("allowed", True))

        if is_blocked or (locked_until is not None and locked_until > now):
            allowed = False

        return cls(
            allowed=allowed,
            failed_count=max(0, _int(payload.get("failed_count"))),
            remaining_attempts=_int(payload.get("remaining_attempts")),
            requires_captcha=bool(payload.get("requires_captcha", False)),
            is_blocked=is_blocked,
            locked_until=locked_until,
            block_reason=payload.get("block_reason") or None,
        )

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "failed_count": self.failed_count,
            "remaining_attempts": self.remaining_attempts,
            "requires_captcha": self.requires_captcha,
            "is_blocked": self.is_blocked,
            "locked_until": self.locked_until.isoformat() if self.locked_until else None,
            "block_reason": self.block_reason,
        }


@dataclass(frozen=True)
class FailureReport:
    """Result of record_failed_login."""

    failed_count: int = 0
    is_blocked: bool = False
    locked_until: Optional[datetime] = None
    should_notify: bool = False
    requires_captcha: bool = False

    @classmethod
    def from_payload(cls, payload: dict) -> "FailureReport":
        return cls(
            failed_count=max(0, _int(payload.get("failed_count"))),
            is_blocked=bool(payload.get("is_blocked", False)),
            locked_until=_parse_ts(payload.get("locked_until")),
            should_notify=bool(payload.get("should_notify", False)),
            requires_captcha=bool(payload.get("requires_captcha", False)),
        )


# Guard states, resolved once from a LoginStatus

@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class CaptchaRequired:
    pass


@dataclass(frozen=True)
class TemporarilyLocked:
    until: Optional[datetime] = None


@dataclass(frozen=True)
class PermanentlyBlocked:
    reason: Optional[str] = None


GuardState = Union[Allowed, CaptchaRequired, TemporarilyLocked, PermanentlyBlocked]


def resolve_guard_state(status: Optional[LoginStatus], now: Optional[datetime] = None) -> GuardState:
    """
    Precedence: blocked > locked_until in the future > not allowed > captcha > allowed.
    A missing status (never probed, or probe failed) is treated as allowed.
    """
    if status is None:
        return Allowed()
    now = now or utcnow()

    if status.is_blocked:
        return PermanentlyBlocked(reason=status.block_reason)
    if status.locked_until is not None and status.locked_until > now:
        return TemporarilyLocked(until=status.locked_until)
    if not status.allowed:
        return TemporarilyLocked(until=None)
    if status.requires_captcha:
        return CaptchaRequired()
    return Allowed()


# Banner renderer

BANNER_BLOCKED = "blocked"
BANNER_LOCKED = "locked"
BANNER_LOW_ATTEMPTS = "low_attempts"


@dataclass(frozen=True)
class Banner:
    kind: str
    title: str
    message: str
    css_class: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "title": self.title, "message": self.message, "css_class": self.css_class}


def render_warning(
    status: Optional[LoginStatus],
    policy: LoginPolicy,
    now: Optional[datetime] = None,
) -> Optional[Banner]:
    """Pure function of the probed status; recomputed on every render."""
    if status is None:
        return None
    now = now or utcnow()

    if status.is_blocked:
        return Banner(BANNER_BLOCKED, policy.msg_blocked_title, policy.msg_blocked, "danger")

    if status.locked_until is not None and status.locked_until > now:
        return Banner(
            BANNER_LOCKED,
            policy.msg_locked_title,
            policy.msg_locked.format(when=format_relative_pt(status.locked_until, now)),
            "danger",
        )

    if (
        status.failed_count >= policy.warn_from_failures
        and status.remaining_attempts <= policy.warn_at_or_below_remaining
    ):
        return Banner(
            BANNER_LOW_ATTEMPTS,
            policy.msg_low_attempts_title,
            policy.msg_low_attempts.format(n=max(status.remaining_attempts, 0)),
            "warn",
        )

    return None


def denial_for(state: GuardState, policy: LoginPolicy, now: Optional[datetime] = None):
    """Returns (kind, title, message) for a denying state, or None."""
    if isinstance(state, PermanentlyBlocked):
        return BANNER_BLOCKED, policy.msg_blocked_title, policy.msg_blocked
    if isinstance(state, TemporarilyLocked):
        if state.until is None:
            return BANNER_LOCKED, policy.msg_locked_title, policy.msg_locked_unknown
        when = format_relative_pt(state.until, now or utcnow())
        return BANNER_LOCKED, policy.msg_locked_title, policy.msg_locked.format(when=when)
    return None


def format_relative_pt(target: datetime, now: datetime) -> str:
    """
    pt-BR relative distance with suffix ("em 15 minutos", "há 2 horas").
    Minutes are rounded to the nearest whole minute.
    """
    seconds = (target - now).total_seconds()
    future = seconds >= 0
    seconds = abs(seconds)
    minutes = int(round(seconds / 60.0))

    if seconds < 30:
        text = "menos de um minuto"
    elif minutes < 2:
        text = "1 minuto"
    elif minutes < 45:
        text = f"{minutes} minutos"
    elif minutes < 90:
        text = "cerca de 1 hora"
    elif minutes < 1440:
        text = f"cerca de {int(round(minutes / 60.0))} horas"
    elif minutes < 2520:
        text = "1 dia"
    else:
        text = f"{int(round(minutes / 1440.0))} dias"

    return f"em {text}" if future else f"há {text}"
