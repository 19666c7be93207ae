from __future__ import annotations

from usage_monitor.core.usage.types import UsageStatus


class AppError(Exception):
    """Base exception for all domain errors."""

    code: str = "internal_error"
    message: str = "Unexpected error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.__class__.message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class UsageRequestError(AppError):
    """A source request failed with a status already mapped onto the usage taxonomy."""

    code = "usage_request_failed"
    message = "Usage request failed"

    def __init__(self, message: str, *, status: UsageStatus, http_status: int = 0) -> None:
        self.status = status
        self.http_status = http_status
        super().__init__(message)


class CredentialsError(AppError):
    code = "credentials_unavailable"
    message = "Credentials are unavailable"
