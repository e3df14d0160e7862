"""
core/errors.py -- Typed error conditions raised by the store, policy and
service layers.

Each class carries the HTTP status and machine-readable code the API layer
uses when it turns the exception into an ErrorResponse envelope. Lower
layers raise these and never build HTTP responses themselves; api/main.py
registers a single handler for CredVaultError.

Layer rule: no imports. Everything else may import from here.
"""

from __future__ import annotations


class CredVaultError(Exception):
    """Base class for every expected failure in CredVault."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class NotFoundError(CredVaultError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class ConflictError(CredVaultError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class UnauthorizedError(CredVaultError):
    """Insufficient role or category permission for the requested operation."""

    status_code = 403
    code = "unauthorized"
    default_message = "Not authorized to perform this action."


class AuthenticationError(UnauthorizedError):
    """Bad credentials. Same message for unknown email and wrong password."""

    status_code = 401
    code = "bad_credentials"
    default_message = "Invalid email or password."


class ValidationError(CredVaultError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid input."


class InternalError(CredVaultError):
    """The backing store is unreachable or failed mid-request."""

    default_message = "The credential store is unavailable."
