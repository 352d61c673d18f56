"""Custom exception classes for the resolution tracker.

Each error carries a ``detail`` string and an HTTP-like ``status_code`` so
that the error-handling layer embedding the tracker can map failures onto
its own responses.
"""
from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str, status_code: int = 500) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class ValidationError(AppError):
    """Validation error (422)."""

    def __init__(self, detail: str = "Validation error") -> None:
        super().__init__(detail=detail, status_code=422)


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, detail: str = "Resource not found") -> None:
        super().__init__(detail=detail, status_code=404)


class ResolutionNotFoundError(NotFoundError):
    """No resolution record exists for an error signature (404)."""

    def __init__(self, error_signature: str) -> None:
        self.error_signature = error_signature
        super().__init__(
            detail=f"No existing resolution found for error signature: {error_signature}"
        )


class PersistenceError(AppError):
    """Snapshot could not be read or written (500)."""

    def __init__(self, detail: str = "Persistence error") -> None:
        super().__init__(detail=detail, status_code=500)


class TrackerShutdownError(AppError):
    """Operation attempted after the tracker was shut down (503)."""

    def __init__(self, detail: str = "Resolution tracker has been shut down") -> None:
        super().__init__(detail=detail, status_code=503)
