import logging
import re
from dataclasses import dataclass
from typing import Optional

from .challenge import require_challenge
from .errors import (
    AuthProviderError,
    BackendError,
    FormValidationError,
    LoginDenied,
    SubmissionInProgress,
)
from .policy.login_policy import LoginPolicy
from .policy.login_status import (
    BANNER_BLOCKED,
    BANNER_LOW_ATTEMPTS,
    Banner,
    FailureReport,
    LoginStatus,
    TemporarilyLocked,
    denial_for,
    render_warning,
    resolve_guard_state,
    utcnow,
)
from .prober import LoginStatusProber

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/user/dashboard"

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class LoginSuccess:
    session: object
    redirect_to: str
    remember_email: str
    message: str


@dataclass(frozen=True)
class SignupSuccess:
    title: str
    message: str


class LoginForm:
    """
    One rendered login/signup form: mode, loading flag and the prober-owned status.
    Every network call goes to the backend; this class only orders them.
    """

    def __init__(self, backend, challenge, policy: LoginPolicy, prober: Optional[LoginStatusProber] = None,
                 clock=utcnow, signup_redirect: str = ""):
        self.backend = backend
        self.challenge = challenge
        self.policy = policy
        self.prober = prober or LoginStatusProber(backend)
        self.clock = clock
        self.signup_redirect = signup_redirect
        self.loading = False

    @property
    def is_login(self) -> bool:
        return self.prober.is_login

    @property
    def status(self) -> Optional[LoginStatus]:
        return self.prober.status

    @property
    def show_challenge(self) -> bool:
        return self.is_login and self.prober.show_challenge

    def set_mode(self, is_login: bool) -> None:
        self.prober.set_login_mode(is_login)

    def warning(self) -> Optional[Banner]:
        return render_warning(self.status, self.policy, self.clock())

    # Validation

    def validate(self, email: str, password: str, name: str = "") -> None:
        p = self.policy
        email = (email or "").strip()
        if not email:
            raise FormValidationError("email", p.msg_email_required)
        if len(email) > p.email_max_length:
            raise FormValidationError("email", p.msg_email_too_long.format(n=p.email_max_length))
        if not EMAIL_RE.match(email):
            raise FormValidationError("email", p.msg_email_invalid)

        password = password or ""
        if len(password) < p.password_min_length:
            raise FormValidationError("password", p.msg_password_too_short.format(n=p.password_min_length))
        if len(password) > p.password_max_length:
            raise FormValidationError("password", p.msg_password_too_long.format(n=p.password_max_length))

        if not self.is_login:
            name = (name or "").strip()
            if len(name) < p.name_min_length:
                raise FormValidationError("name", p.msg_name_too_short.format(n=p.name_min_length))
            if len(name) > p.name_max_length:
                raise FormValidationError("name", p.msg_name_too_long.format(n=p.name_max_length))

    def validate_email(self, email: str) -> str:
        email = (email or "").strip()
        p = self.policy
        if not email:
            raise FormValidationError("email", p.msg_email_required)
        if len(email) > p.email_max_length or not EMAIL_RE.match(email):
            raise FormValidationError("email", p.msg_email_invalid)
        return email

    # Submission

    def submit(self, email: str, password: str, *, name: str = "",
               captcha_token: Optional[str] = None, ip: Optional[str] = None):
        if self.loading:
            raise SubmissionInProgress(self.policy.msg_in_progress)
        self.loading = True
        try:
            if self.is_login:
                return self._login(email, password, captcha_token, ip)
            return self._signup(email, password, name)
        finally:
            self.loading = False

    def _login(self, email: str, password: str, captcha_token: Optional[str], ip: Optional[str]) -> LoginSuccess:
        self.validate(email, password)
        email = email.strip()
        p = self.policy
        status = self.status

        denial = denial_for(resolve_guard_state(status, self.clock()), p, self.clock())
        if denial is not None:
            kind, title, message = denial
            raise LoginDenied(message, title=title, kind=kind)

        require_challenge(status, self.challenge, captcha_token, p, remote_ip=ip)

        try:
            session = self.backend.sign_in_with_password(email, password)
        except AuthProviderError as provider_error:
            self._handle_failure(email, ip, status, provider_error)
            raise

        try:
            self.backend.reset_login_attempts(email)
        except BackendError as e:
            logger.warning("reset_login_attempts failed: %s", e)

        logger.info("login succeeded user_id=%s", getattr(session, "user_id", ""))
        return LoginSuccess(
            session=session,
            redirect_to=DASHBOARD_PATH,
            remember_email=email,
            message=p.msg_login_success,
        )

    def _handle_failure(self, email: str, ip: Optional[str], previous: Optional[LoginStatus],
                        provider_error: AuthProviderError) -> None:
        """Record the failure, then raise the most specific denial. Returns only to re-raise the original."""
        p = self.policy
        try:
            report = self.backend.record_failed_login(email, ip)
        except BackendError as e:
            logger.warning("record_failed_login failed: %s", e)
            return

        if report.should_notify:
            self._notify(email, ip, report)

        self.prober.probe_now(email)
        refreshed = self.status

        if report.is_blocked:
            raise LoginDenied(p.msg_blocked, title=p.msg_blocked_title, kind=BANNER_BLOCKED) from provider_error

        if report.locked_until is not None:
            kind, title, message = denial_for(TemporarilyLocked(until=report.locked_until), p, self.clock())
            raise LoginDenied(message, title=title, kind=kind) from provider_error

        if previous is not None and previous.remaining_attempts <= p.low_attempts_after_failure:
            if refreshed is not None and refreshed is not previous:
                remaining = refreshed.remaining_attempts
            else:
                remaining = previous.remaining_attempts - 1
            raise LoginDenied(
                p.msg_low_attempts.format(n=max(remaining, 0)),
                title=p.msg_low_attempts_title,
                kind=BANNER_LOW_ATTEMPTS,
            ) from provider_error

    def _notify(self, email: str, ip: Optional[str], report: FailureReport) -> None:
        try:
            self.backend.notify_suspicious_login(email, report.failed_count, ip, report.is_blocked)
        except BackendError as e:
            logger.warning("suspicious login notification failed: %s", e)

    def _signup(self, email: str, password: str, name: str) -> SignupSuccess:
        self.validate(email, password, name)
        self.backend.sign_up(email.strip(), password, name.strip(), self.signup_redirect)
        logger.info("signup requested")
        return SignupSuccess(title=self.policy.msg_signup_success_title, message=self.policy.msg_signup_success)

    def request_password_reset(self, email: str, redirect_to: str) -> str:
        """Same answer whether or not the account exists."""
        email = self.validate_email(email)
        try:
            self.backend.reset_password_for_email(email, redirect_to)
        except AuthProviderError as e:
            logger.info("password reset rejected by provider: %s", e)
        return self.policy.msg_reset_sent
