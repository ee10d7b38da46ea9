"""
auth/errors.py -- Typed service errors raised by the auth core.

Every error carries the HTTP status it maps to and a stable error code. The
single translator in api/main.py turns these into the JSON envelope; nothing
in auth/ builds HTTP responses itself.

Layer rule: stdlib only.
"""

from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[list[dict]] = None,
        data: Optional[dict] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        # [{"field": ..., "message": ...}] for input errors
        self.errors = errors
        # Extra payload returned alongside the error (e.g. userId for unverified login)
        self.data = data


class ValidationError(ServiceError):
    """Malformed or missing input, bad or expired OTP (400)."""

    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Bad credentials, invalid or expired token (401)."""

    status_code = 401
    error_code = "unauthorized"


class AuthorizationError(ServiceError):
    """Authenticated but not allowed: role, ownership, deactivated (403)."""

    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    """Duplicate email (409)."""

    status_code = 409
    error_code = "conflict"


class ServerError(ServiceError):
    status_code = 500
    error_code = "server_error"


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "ServerError",
]
