"""
Domain errors raised by the service layer.

Services never raise ``HTTPException``; they raise one of the classes
below and the endpoints translate them into status codes (404, 403,
400, 429).  ``NotFoundError`` and ``ValidationError`` derive from
``ValueError`` and ``PermissionDeniedError`` from ``PermissionError`` so
callers that only care about the broad category can catch the builtin.
"""

from typing import Optional


class NotFoundError(ValueError):
    """A referenced entity does not exist (HTTP 404)."""


class PermissionDeniedError(PermissionError):
    """The caller is authenticated but lacks the required role (HTTP 403)."""


class ValidationError(ValueError):
    """Input is well formed but violates a business rule (HTTP 400)."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class RateLimitedError(Exception):
    """Quota exceeded for an identifier (HTTP 429)."""

    def __init__(self, message: str, retry_after_ms: int) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


def to_http_exception(exc: Exception):
    """Translate a service error into the matching ``HTTPException``."""
    from fastapi import HTTPException, status

    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc) or "Forbidden")
    if isinstance(exc, RateLimitedError):
        retry_after = max(1, exc.retry_after_ms // 1000)
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(retry_after)},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
