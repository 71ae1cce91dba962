"""Service-level error taxonomy.

Services raise these; the global handler in ``middleware.error_handler`` maps
each to its HTTP status with a ``{"detail": ...}`` body.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that carry an HTTP status."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(ServiceError):
    """Malformed or missing input, or an invalid state transition."""

    status_code = 400


class UnauthorizedError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    """Role or ownership mismatch."""

    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """Uniqueness violation (duplicate match, vote, view, participation)."""

    status_code = 409
