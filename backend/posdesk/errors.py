# Overview: API error taxonomy; every error maps to an HTTP status.

from __future__ import annotations


class ApiError(Exception):
    """Base class for errors that are reported to the client."""
    status_code = 500

    def __init__(self, message: str, errors: list[dict] | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []
        self.details = details or {}


class ValidationError(ApiError, ValueError):
    """400-level input problem; errors lists offending fields."""
    status_code = 400

    def __init__(self, message: str = "Validation error", errors: list[dict] | None = None, details: dict | None = None):
        super().__init__(message, errors=errors, details=details)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class NotFoundError(ApiError, LookupError):
    """Referenced entity does not exist."""
    status_code = 404


class ConflictError(ApiError, ValueError):
    """Duplicate unique key (barcode, username, email, category name)."""
    status_code = 400


class BusinessRuleError(ApiError):
    """A rule of the domain forbids the operation."""
    status_code = 400


class UnauthorizedError(ApiError):
    status_code = 401


class ForbiddenError(ApiError):
    status_code = 403
