"""
Error taxonomy for the library server

Every error carries the HTTP status the route registrar responds with and
renders to the same structured dict used for validation errors:
    {"error": True, "code": "...", "message": "...", ...extra}
"""

from typing import Any, Optional


class LibraryError(Exception):
    """Base class for errors surfaced at the HTTP boundary."""

    code = "INTERNAL_ERROR"
    http_status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra

    def to_dict(self) -> dict:
        err = {"error": True, "code": self.code, "message": self.message}
        err.update(self.extra)
        return err


class InvalidValue(LibraryError):
    """A raw value is not convertible to a column's domain."""

    code = "INVALID_VALUE"
    http_status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, **extra: Any):
        if field is not None:
            extra["field"] = field
        super().__init__(message, **extra)
        self.field = field


class InvalidKey(LibraryError):
    code = "INVALID_KEY"
    http_status_code = 400


class UnknownField(LibraryError):
    code = "UNKNOWN_FIELD"
    http_status_code = 400


class ValidationError(LibraryError):
    """One or more fields of a write are missing or invalid."""

    code = "VALIDATION_ERROR"
    http_status_code = 400

    def __init__(self, errors: list[dict], message: str = "Invalid or missing fields"):
        super().__init__(message, errors=errors)
        self.errors = errors

    @property
    def fields(self) -> list[str]:
        return [e["field"] for e in self.errors]


class EntityNotFound(LibraryError):
    code = "ENTITY_NOT_FOUND"
    http_status_code = 404


class Unauthorized(LibraryError):
    code = "NOT_AUTHORIZED"
    http_status_code = 401


class Conflict(LibraryError):
    """A custom operation is not allowed in the entity's current state."""

    code = "CONFLICT"
    http_status_code = 409


class StoreError(LibraryError):
    """Query execution failed in the relational store."""

    code = "STORE_ERROR"
    http_status_code = 500


def field_error(field: str, code: str, message: str, **extra) -> dict:
    """Build one entry of a ValidationError's error list."""
    err = {"field": field, "code": code, "message": message}
    err.update(extra)
    return err
