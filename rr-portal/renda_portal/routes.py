import logging
from typing import Optional

from flask import Blueprint, abort, jsonify, redirect, render_template, request, session, url_for

from .errors import AuthProviderError, BackendError, FormValidationError, LoginDenied, PortalError
from .login_form import DASHBOARD_PATH, LoginForm, LoginSuccess
from .navigation import DASHBOARD_NAV, SECTIONS
from .policy.login_status import utcnow
from .prober import LoginStatusProber
from .security import client_ip

logger = logging.getLogger(__name__)

LAST_EMAIL_COOKIE = "last_login_email"
LAST_EMAIL_MAX_AGE = 365 * 24 * 3600
RECOVERY_PATH = "/auth/recovery"
# Refresh the access token this long before the provider expires it
TOKEN_REFRESH_LEEWAY_SEC = 60


def _is_login_mode(value: str) -> bool:
    return (value or "login").strip().lower() != "signup"


def build_blueprint(settings, backend, challenge):
    bp = Blueprint("portal", __name__)
    policy = settings.login_policy

    def _form(is_login: bool) -> LoginForm:
        form = LoginForm(
            backend,
            challenge,
            policy,
            prober=LoginStatusProber(backend),
            signup_redirect=f"{settings.site_url}{DASHBOARD_PATH}",
        )
        form.set_mode(is_login)
        return form

    def _render_auth(form: LoginForm, *, email="", name="", error=None, error_field=None,
                     toast=None, status_code=200):
        return render_template(
            "auth.html",
            settings=settings,
            is_login=form.is_login,
            email=email,
            name=name,
            error=error,
            error_field=error_field,
            toast=toast,
            warning=form.warning() if form.is_login else None,
            captcha_required=form.show_challenge,
        ), status_code

    def _signed_in() -> bool:
        return bool(session.get("logged_in"))

    def _store_tokens(auth_session) -> None:
        session["access_token"] = auth_session.access_token
        session["refresh_token"] = auth_session.refresh_token
        expires_at = auth_session.expires_at
        session["expires_at"] = int(expires_at.timestamp()) if expires_at else None

    def _access_token() -> Optional[str]:
        """
        The signed-in user's access token, refreshed once it is about to expire.
        None means the provider rejected the refresh and the user has to sign in again.
        """
        expires_at = session.get("expires_at")
        if expires_at is None or utcnow().timestamp() < expires_at - TOKEN_REFRESH_LEEWAY_SEC:
            return session.get("access_token", "")

        try:
            fresh = backend.refresh_session(session.get("refresh_token", ""))
        except AuthProviderError as e:
            logger.info("session refresh rejected: %s", e)
            session.clear()
            return None
        except BackendError as e:
            logger.warning("session refresh failed: %s", e)
            return session.get("access_token", "")

        _store_tokens(fresh)
        return fresh.access_token

    @bp.get("/")
    def home():
        if _signed_in():
            return redirect(url_for("portal.dashboard"))
        return redirect(url_for("portal.auth"))

    @bp.get("/auth")
    def auth():
        if _signed_in():
            return redirect(url_for("portal.dashboard"))
        form = _form(_is_login_mode(request.args.get("mode")))
        email = request.cookies.get(LAST_EMAIL_COOKIE, "") if form.is_login else ""
        if email:
            # A remembered account may already be locked or need a challenge
            form.prober.probe_now(email)
        return _render_auth(form, email=email)

    @bp.get("/auth/status")
    def auth_status():
        """JSON probe for the page script; the script debounces keystrokes."""
        is_login = _is_login_mode(request.args.get("mode"))
        email = request.args.get("email", "").strip()
        prober = LoginStatusProber(backend)
        prober.set_login_mode(is_login)

        if not is_login or not email:
            return jsonify(status=None, warning=None, show_challenge=False)

        status = prober.probe_now(email)
        if status is None:
            # Probe failed; the script keeps whatever status it had
            return jsonify(error="unavailable"), 503

        form = LoginForm(backend, challenge, policy, prober=prober)
        warning = form.warning()
        return jsonify(
            status=status.to_dict(),
            warning=warning.to_dict() if warning else None,
            show_challenge=form.show_challenge,
        )

    @bp.post("/auth")
    def auth_submit():
        form = _form(_is_login_mode(request.form.get("mode")))
        email = request.form.get("email", "").strip()
        password = request.form.get("password", "")
        name = request.form.get("name", "").strip()
        ip = client_ip(settings.trust_x_forwarded_for)

        try:
            form.validate(email, password, name)
            if form.is_login:
                form.prober.probe_now(email)
            result = form.submit(
                email,
                password,
                name=name,
                captcha_token=request.form.get("g-recaptcha-response"),
                ip=ip,
            )
        except FormValidationError as e:
            return _render_auth(form, email=email, name=name, error=e.message, error_field=e.field,
                                status_code=e.status_code)
        except LoginDenied as e:
            return _render_auth(form, email=email, toast={"title": e.title, "message": e.message,
                                                          "variant": "destructive"}, status_code=e.status_code)
        except AuthProviderError as e:
            logger.info("auth provider rejected %s: %s", "login" if form.is_login else "signup", e)
            message = policy.msg_invalid_credentials if form.is_login else e.message
            return _render_auth(form, email=email, name=name, toast={"title": policy.msg_error_title,
                                "message": message, "variant": "destructive"}, status_code=e.status_code)
        except BackendError as e:
            logger.error("backend failure during auth submit: %s", e)
            return _render_auth(form, email=email, name=name, toast={"title": policy.msg_error_title,
                                "message": policy.msg_service_unavailable, "variant": "destructive"},
                                status_code=503)
        except PortalError as e:
            return _render_auth(form, email=email, name=name, toast={"title": e.title, "message": e.message,
                                "variant": "destructive"}, status_code=e.status_code)

        if isinstance(result, LoginSuccess):
            s = result.session
            session.clear()
            session["logged_in"] = True
            session["user_id"] = s.user_id
            session["email"] = s.email or result.remember_email
            _store_tokens(s)

            resp = redirect(result.redirect_to)
            resp.set_cookie(
                LAST_EMAIL_COOKIE,
                result.remember_email,
                max_age=LAST_EMAIL_MAX_AGE,
                httponly=True,
                samesite="Lax",
                secure=settings.session_cookie_secure,
            )
            return resp

        return _render_auth(_form(True), email=email, toast={"title": result.title, "message": result.message})

    @bp.post("/auth/forgot")
    def auth_forgot():
        form = _form(True)
        email = request.form.get("email", "").strip()
        try:
            message = form.request_password_reset(email, redirect_to=f"{settings.site_url}{RECOVERY_PATH}")
        except FormValidationError as e:
            return _render_auth(form, email=email, error=e.message, error_field=e.field, status_code=400)
        except BackendError as e:
            logger.error("password reset request failed: %s", e)
            return _render_auth(form, email=email, toast={"title": policy.msg_error_title,
                                "message": policy.msg_service_unavailable, "variant": "destructive"},
                                status_code=503)
        return _render_auth(form, email=email, toast={"title": "", "message": message})

    def _password_error(password: str) -> Optional[str]:
        if len(password) < policy.password_min_length:
            return policy.msg_password_too_short.format(n=policy.password_min_length)
        if len(password) > policy.password_max_length:
            return policy.msg_password_too_long.format(n=policy.password_max_length)
        return None

    def _render_recovery(*, access_token="", error=None, status_code=200):
        return render_template(
            "recovery.html",
            settings=settings,
            access_token=access_token,
            error=error,
        ), status_code

    @bp.get(RECOVERY_PATH)
    def auth_recovery():
        """Landing page of the reset e-mail; its script lifts the token out of the URL fragment."""
        return _render_recovery()

    @bp.post(RECOVERY_PATH)
    def auth_recovery_submit():
        access_token = request.form.get("access_token", "").strip()
        password = request.form.get("password", "")
        if not access_token:
            return _render_recovery(error=policy.msg_recovery_link_invalid, status_code=400)

        error = _password_error(password)
        if error is None and password != request.form.get("confirm", ""):
            error = policy.msg_passwords_mismatch
        if error is not None:
            return _render_recovery(access_token=access_token, error=error, status_code=400)

        try:
            backend.update_password(access_token, password)
        except AuthProviderError as e:
            logger.info("password recovery rejected: %s", e)
            return _render_recovery(error=policy.msg_recovery_link_invalid, status_code=e.status_code)
        except BackendError as e:
            logger.error("password recovery failed: %s", e)
            return _render_recovery(access_token=access_token, error=policy.msg_service_unavailable,
                                    status_code=503)

        # The recovery session is single-use; the user signs in with the new password
        backend.sign_out(access_token)
        session.clear()
        return _render_auth(_form(True), toast={"title": policy.msg_password_reset_done_title,
                                                "message": policy.msg_password_reset_done})

    def _render_dashboard(access_token: str, *, message=None, error=None, status_code=200):
        profile = None
        try:
            profile = backend.get_profile(session.get("user_id", ""), access_token)
        except BackendError as e:
            logger.warning("profile lookup failed: %s", e)

        blocked_message = None
        if profile and profile.get("is_blocked"):
            blocked_message = profile.get("blocked_message") or policy.msg_account_blocked_default

        return render_template(
            "dashboard.html",
            settings=settings,
            email=session.get("email"),
            name=(profile or {}).get("name"),
            nav=DASHBOARD_NAV,
            blocked_message=blocked_message,
            message=message,
            error=error,
        ), status_code

    @bp.get("/user/dashboard")
    def dashboard():
        if not _signed_in():
            return redirect(url_for("portal.auth"))
        access_token = _access_token()
        if access_token is None:
            return redirect(url_for("portal.auth"))
        return _render_dashboard(access_token)

    @bp.get("/user/<section>")
    def section(section):
        item = SECTIONS.get(section)
        if item is None:
            abort(404)
        if not _signed_in() or _access_token() is None:
            return redirect(url_for("portal.auth"))
        return render_template("coming_soon.html", settings=settings, item=item, nav=DASHBOARD_NAV)

    @bp.post("/user/password")
    def update_password():
        if not _signed_in():
            return redirect(url_for("portal.auth"))
        access_token = _access_token()
        if access_token is None:
            return redirect(url_for("portal.auth"))

        password = request.form.get("password", "")
        error = _password_error(password)
        if error is not None:
            return _render_dashboard(access_token, error=error, status_code=400)

        try:
            backend.update_password(access_token, password)
        except AuthProviderError as e:
            return _render_dashboard(access_token, error=e.message, status_code=e.status_code)
        except BackendError as e:
            logger.error("password update failed: %s", e)
            return _render_dashboard(access_token, error=policy.msg_service_unavailable, status_code=503)
        return _render_dashboard(access_token, message=policy.msg_password_updated)

    @bp.post("/logout")
    def logout():
        token = session.get("access_token")
        if token:
            backend.sign_out(token)
        # The last-email cookie survives logout for pre-fill
        session.clear()
        return redirect(url_for("portal.auth"))

    return bp
