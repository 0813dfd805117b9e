"""
Error taxonomy.

Every error is an ``HTTPException`` so services can raise it directly and the
boundary handler renders it as ``{"message": ..., "code": ...}``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=message or self.default_message,
            headers=headers,
        )


# 400
class BadRequest(ServiceError):
    status_code = 400
    code = "BAD_REQUEST"
    default_message = "Bad request"


class NotWorkspaceMember(BadRequest):
    code = "NOT_WORKSPACE_MEMBER"
    default_message = "User must be a workspace member first"


# 401
class Unauthorized(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class InvalidToken(Unauthorized):
    """Forged, malformed, foreign or already-consumed token."""
    default_message = "Invalid or expired token"


class TokenExpired(InvalidToken):
    """The server-side record lapsed. Rendered identically to ``InvalidToken``."""


# 403
class Forbidden(ServiceError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Forbidden"


class EmailNotVerified(Forbidden):
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Please verify your email first"


# 404
class NotFound(ServiceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


# 409
class Conflict(ServiceError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class AlreadyMember(Conflict):
    code = "ALREADY_MEMBER"
    default_message = "User already a member of this workspace"


class AlreadyVerified(Conflict):
    code = "ALREADY_VERIFIED"
    default_message = "Email already verified"


class DuplicateRequest(Conflict):
    code = "DUPLICATE_REQUEST"
    default_message = "Request already sent"


class EmailAlreadyRegistered(Conflict):
    code = "EMAIL_ALREADY_REGISTERED"
    default_message = "Email address already in use"


# 5xx
class DependencyFailure(ServiceError):
    status_code = 502
    code = "DEPENDENCY_FAILURE"
    default_message = "Upstream dependency failed"


STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def error_code(exc: HTTPException) -> str:
    """Stable machine-readable code for any HTTP error."""
    if isinstance(exc, ServiceError):
        return exc.code
    return STATUS_CODES.get(exc.status_code, "INTERNAL_ERROR")
