# File: civicsync/core/errors.py
"""Domain errors raised by the issue store, query engine and collaborators.

Each error knows the HTTP status it maps to; the handler registered in
``civicsync.main`` renders them into the ``{success, message}`` envelope.
"""
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class CivicSyncError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CivicSyncError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: List[FieldError], message: Optional[str] = None):
        super().__init__(message)
        self.errors = list(errors)

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationError":
        return cls([FieldError(field, message)])


class NotFoundError(CivicSyncError):
    status_code = 404
    default_message = "Not found"


class AuthorizationError(CivicSyncError):
    status_code = 403
    default_message = "Not authorized"


class ConflictError(CivicSyncError):
    status_code = 409
    default_message = "Conflict"


class DependencyError(CivicSyncError):
    status_code = 502
    default_message = "Upstream service failed"
