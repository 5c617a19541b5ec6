import os
from dataclasses import dataclass, field

from .policy.login_policy import LoginPolicy


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass(frozen=True)
class Settings:
    # Managed backend (auth, RPCs, edge functions)
    supabase_url: str = field(
        default_factory=lambda: _env_str("SUPABASE_URL", "https://example.supabase.co").rstrip("/")
    )
    supabase_anon_key: str = field(default_factory=lambda: _env_str("SUPABASE_ANON_KEY", ""))

    # Public URL of this portal; signup confirmation and password reset links point here
    site_url: str = field(default_factory=lambda: _env_str("SITE_URL", "http://localhost:8000").rstrip("/"))

    # Branding
    brand_name: str = field(default_factory=lambda: _env_str("BRAND_NAME", "APP Renda recorrente"))
    app_version: str = field(default_factory=lambda: _env_str("APP_VERSION", "4.1.70"))

    # Security / sessions
    secret_key: str = field(default_factory=lambda: _env_str("FLASK_SECRET", "CHANGE_ME_LONG_RANDOM"))
    session_cookie_secure: bool = field(default_factory=lambda: _env_bool("SESSION_COOKIE_SECURE", True))

    # Trust X-Forwarded-For from LB/Ingress
    trust_x_forwarded_for: bool = field(default_factory=lambda: _env_bool("TRUST_X_FORWARDED_FOR", True))

    # reCAPTCHA v3; the default site key is Google's public test key
    recaptcha_site_key: str = field(
        default_factory=lambda: _env_str("RECAPTCHA_SITE_KEY", "6LeIxAcTAAAAAJcZVRqyHh71UMIEGNQ_MXjiZKhI")
    )
    recaptcha_secret_key: str = field(default_factory=lambda: _env_str("RECAPTCHA_SECRET_KEY", ""))
    recaptcha_min_score: float = field(default_factory=lambda: _env_float("RECAPTCHA_MIN_SCORE", 0.5))

    # Status probe debounce, applied by the login page script
    probe_debounce_ms: int = field(default_factory=lambda: _env_int("PROBE_DEBOUNCE_MS", 500))

    http_timeout_sec: float = field(default_factory=lambda: _env_float("HTTP_TIMEOUT_SEC", 10))
    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO").upper())

    # Policy object (centralized thresholds/messages)
    login_policy: LoginPolicy = field(default_factory=LoginPolicy)
