import logging

from flask import Flask

from .backend import SupabaseClient
from .challenge import RecaptchaChallenge
from .config import Settings
from .routes import build_blueprint
from .security import add_security_headers, configure_session

logger = logging.getLogger(__name__)


def create_app(settings=None, backend=None, challenge=None) -> Flask:
    """Build the portal. Every collaborator is constructed here and passed down; nothing at import time."""
    settings = settings or Settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    backend = backend or SupabaseClient(
        settings.supabase_url,
        settings.supabase_anon_key,
        timeout=settings.http_timeout_sec,
    )
    challenge = challenge or RecaptchaChallenge(
        settings.recaptcha_site_key,
        settings.recaptcha_secret_key,
        min_score=settings.recaptcha_min_score,
        timeout=settings.http_timeout_sec,
    )

    app = Flask(__name__)
    app.secret_key = settings.secret_key
    configure_session(app, settings.session_cookie_secure)
    add_security_headers(app)

    app.register_blueprint(build_blueprint(settings, backend, challenge))

    if not settings.supabase_anon_key:
        logger.warning("SUPABASE_ANON_KEY is not set; backend calls will be rejected")
    return app


def main() -> None:
    app = create_app()
    app.run("127.0.0.1", 8000, debug=False)


if __name__ == "__main__":
    main()
