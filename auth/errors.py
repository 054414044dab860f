"""
auth/errors.py -- Error kinds surfaced by the auth service.

Each kind fixes an HTTP status and a machine-readable code; the message is
human-readable and errors is an optional field -> message map. api/main.py
registers one exception handler that renders any AuthError into the shared
ErrorResponse envelope, so route handlers never build error bodies by hand.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class ValidationFailed(AuthError):
    status_code = 400
    code = "validation_error"


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"


class Forbidden(AuthError):
    status_code = 403
    code = "forbidden"


class NotFound(AuthError):
    status_code = 404
    code = "not_found"


class Conflict(AuthError):
    status_code = 409
    code = "conflict"


class InternalError(AuthError):
    status_code = 500
    code = "internal_error"
