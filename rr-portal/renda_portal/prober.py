import logging
import threading
from typing import Callable, Optional

from .errors import BackendError
from .policy.login_status import LoginStatus

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Timer-reset debounce: every call() cancels the pending timer and starts a new one,
    so only the last call within `delay_sec` runs.
    """

    def __init__(self, delay_sec: float, callback: Callable, timer_factory=threading.Timer):
        self.delay_sec = delay_sec
        self.callback = callback
        self._timer_factory = timer_factory
        self._timer = None
        self._pending_args = None
        self._lock = threading.Lock()

    def call(self, *args) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending_args = args
            self._timer = self._timer_factory(self.delay_sec, self._fire, args=args)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, *args) -> None:
        with self._lock:
            if args != self._pending_args:
                return
            self._timer = None
            self._pending_args = None
        self.callback(*args)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending_args = None

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def flush(self) -> None:
        """Run the pending call now, if any."""
        with self._lock:
            args = self._pending_args
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending_args = None
        if args is not None:
            self.callback(*args)


class LoginStatusProber:
    """
    Keeps the probed LoginStatus for one form instance.

    Probes are debounced on email input and only run in login mode. Every probe takes a
    ticket; a response is applied only if it still holds the newest ticket for the same
    email, so a slow response cannot overwrite a fresher one.
    """

    def __init__(self, backend, delay_sec: float = 0.5, timer_factory=threading.Timer):
        self.backend = backend
        self.is_login = True
        self.status: Optional[LoginStatus] = None
        self._email = ""
        self._ticket = 0
        self._lock = threading.Lock()
        self._debouncer = Debouncer(delay_sec, self._probe_ticketed, timer_factory=timer_factory)

    @property
    def show_challenge(self) -> bool:
        return bool(self.status and self.status.requires_captcha)

    def clear(self) -> None:
        self._debouncer.cancel()
        with self._lock:
            self._ticket += 1
            self.status = None

    def set_login_mode(self, is_login: bool) -> None:
        self.is_login = is_login
        if not is_login:
            self.clear()

    def on_email_change(self, email: str) -> None:
        email = (email or "").strip()
        with self._lock:
            self._email = email
        if not email or not self.is_login:
            self.clear()
            return
        with self._lock:
            self._ticket += 1
            ticket = self._ticket
        self._debouncer.call(email, ticket)

    def flush(self) -> None:
        self._debouncer.flush()

    def probe_now(self, email: str) -> Optional[LoginStatus]:
        """Immediate probe, bypassing the debounce. Used by request handlers."""
        email = (email or "").strip()
        self._debouncer.cancel()
        with self._lock:
            self._email = email
            self._ticket += 1
            ticket = self._ticket
        if not email or not self.is_login:
            self.clear()
            return None
        self._probe_ticketed(email, ticket)
        return self.status

    def _probe_ticketed(self, email: str, ticket: int) -> None:
        try:
            status = self.backend.check_login_allowed(email)
        except BackendError as e:
            logger.warning("login status probe failed: %s", e)
            return

        with self._lock:
            if ticket != self._ticket or email != self._email:
                logger.debug("discarding stale login status for ticket %s", ticket)
                return
            self.status = status
