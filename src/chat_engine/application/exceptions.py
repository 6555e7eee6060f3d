from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    code = "app_error"
    status_code = 400

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    code = "not_found"
    status_code = 404


class UnauthorizedError(AppError):
    """Caller is not a participant of the named conversation."""

    code = "unauthorized"
    status_code = 403


class ValidationError(AppError):
    code = "validation_error"
    status_code = 422


class NotJoinedError(AppError):
    code = "not_joined"
    status_code = 409


class PersistenceError(AppError):
    code = "persistence_failed"
    status_code = 503


class RateLimitedError(AppError):
    code = "rate_limited"
    status_code = 429

    def __init__(self, detail: str = "", *, retry_after_seconds: int) -> None:
        super().__init__(detail)
        self.retry_after_seconds = retry_after_seconds
