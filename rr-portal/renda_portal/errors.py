from typing import Optional


class PortalError(Exception):
    """Base error rendered to the user as a toast or inline message."""

    status_code: int = 400
    title: str = "Erro"

    def __init__(self, message: str, title: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if title is not None:
            self.title = title
        if status_code is not None:
            self.status_code = status_code


class FormValidationError(PortalError):
    """Malformed field; recovered locally, never reaches the network."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class LoginDenied(PortalError):
    """Blocked, locked or low-attempts outcome derived from the policy engine."""

    status_code = 423

    def __init__(self, message: str, title: str, kind: str):
        super().__init__(message, title=title)
        self.kind = kind


class ChallengeFailed(PortalError):
    status_code = 403


class SubmissionInProgress(PortalError):
    status_code = 429


class AuthProviderError(PortalError):
    """The auth provider rejected the request (wrong password, unknown account...)."""

    status_code = 401

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status


class BackendError(PortalError):
    """Transport failure or unexpected response from the managed backend."""

    status_code = 502

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status
