import logging
from typing import Optional

import requests

from .errors import ChallengeFailed
from .policy.login_policy import LoginPolicy
from .policy.login_status import LoginStatus

logger = logging.getLogger(__name__)

SITEVERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class RecaptchaChallenge:
    """
    reCAPTCHA v3 (invisible). The browser runs grecaptcha.execute() and posts the token;
    execute() turns that into a verified token or None.
    Without a secret key only the presence of a token is checked.
    """

    def __init__(self, site_key: str, secret_key: str = "", min_score: float = 0.5,
                 action: str = "login", timeout: float = 10):
        self.site_key = site_key
        self.secret_key = secret_key
        self.min_score = min_score
        self.action = action
        self.timeout = timeout

    def execute(self, response_token: Optional[str], remote_ip: Optional[str] = None) -> Optional[str]:
        token = (response_token or "").strip()
        if not token:
            return None
        if not self.secret_key:
            return token

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip
        try:
            r = requests.post(SITEVERIFY_URL, data=data, timeout=self.timeout)
            r.raise_for_status()
            result = r.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("reCAPTCHA verification failed: %s", e)
            return None

        if not result.get("success"):
            logger.info("reCAPTCHA rejected token: %s", result.get("error-codes"))
            return None
        if result.get("action") and result["action"] != self.action:
            logger.info("reCAPTCHA action mismatch: %s", result["action"])
            return None
        if float(result.get("score", 1.0)) < self.min_score:
            logger.info("reCAPTCHA score too low: %s", result.get("score"))
            return None
        return token


def require_challenge(
    status: Optional[LoginStatus],
    widget,
    response_token: Optional[str],
    policy: LoginPolicy,
    remote_ip: Optional[str] = None,
) -> Optional[str]:
    """
    Precondition for submitting credentials. Returns the verified token (or None when no
    challenge is needed); raises ChallengeFailed when one is needed and none was produced.
    """
    if status is None or not status.requires_captcha:
        return None

    token = widget.execute(response_token, remote_ip=remote_ip)
    if not token:
        if not (response_token or "").strip():
            raise ChallengeFailed(policy.msg_captcha_required)
        raise ChallengeFailed(policy.msg_captcha_failed)
    return token
