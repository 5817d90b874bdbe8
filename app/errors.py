"""
Tandem — Error taxonomy.

Every failure the core reports to a caller is one of the ``ChatError``
subclasses below.  Each carries a stable ``kind`` string (used in API
responses) and the HTTP status the API layer maps it to.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all typed failures raised by the chat core."""

    kind: str = "internal"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class UnauthenticatedError(ChatError):
    kind = "unauthenticated"
    status_code = 401


class InvalidArgumentError(ChatError):
    kind = "invalid_argument"
    status_code = 400


class NotFoundError(ChatError):
    kind = "not_found"
    status_code = 404


class PermissionDeniedError(ChatError):
    kind = "permission_denied"
    status_code = 403


class InternalError(ChatError):
    """Underlying store failure unrelated to caller input."""

    kind = "internal"
    status_code = 500
