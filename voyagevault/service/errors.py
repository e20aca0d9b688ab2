from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the service layer."""

    VALIDATION = "validation_error"
    UNAUTHORIZED = "unauthorized"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM_FAILURE = "upstream_failure"
    INTERNAL = "server_error"


STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 400,
    ErrorKind.UPSTREAM_FAILURE: 500,
    ErrorKind.INTERNAL: 500,
}


def status_for_kind(kind: ErrorKind) -> int:
    return STATUS_FOR_KIND[ErrorKind(kind)]


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass pins an ``ErrorKind``; the HTTP status is derived from the
    kind so the mapping stays in one place.
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        kind: Optional[ErrorKind] = None,
        detail: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = ErrorKind(kind)
        self.detail = detail or {}

    @property
    def status_code(self) -> int:
        return status_for_kind(self.kind)

    @property
    def error_code(self) -> str:
        return self.kind.value


class ValidationError(ServiceError):
    """Missing or malformed input (400)."""
    kind = ErrorKind.VALIDATION


class UnauthorizedError(ServiceError):
    """Bad or expired one-time code or identity assertion (401)."""
    kind = ErrorKind.UNAUTHORIZED


class UnauthenticatedError(ServiceError):
    """No usable session credential on the request (401)."""
    kind = ErrorKind.UNAUTHENTICATED


class NotFoundError(ServiceError):
    """No such account (404)."""
    kind = ErrorKind.NOT_FOUND


class ConflictError(ServiceError):
    """Account already exists or is already verified (400)."""
    kind = ErrorKind.CONFLICT


class UpstreamFailureError(ServiceError):
    """Mail transport or identity provider failure (500)."""
    kind = ErrorKind.UPSTREAM_FAILURE


__all__ = [
    "ErrorKind",
    "STATUS_FOR_KIND",
    "status_for_kind",
    "ServiceError",
    "ValidationError",
    "UnauthorizedError",
    "UnauthenticatedError",
    "NotFoundError",
    "ConflictError",
    "UpstreamFailureError",
]
