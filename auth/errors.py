"""
auth/errors.py -- Typed failures raised by the account and session core.

Every core operation reports failure by raising one of these. The HTTP layer
(api/main.py) owns the mapping from exception class to status code; nothing
in auth/ knows about HTTP.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the core raises on purpose."""

    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class InvalidInput(AuthError):
    """Registration payload is missing a field or a field is malformed.

    fields lists the offending field names so the caller can point at them.
    """

    message = "Invalid registration data."

    def __init__(self, fields: list[str], message: str | None = None) -> None:
        self.fields = list(fields)
        super().__init__(message or f"Invalid or missing fields: {', '.join(self.fields)}.")


class DuplicateEmail(AuthError):
    message = "A user with that email already exists."


class InvalidCredentials(AuthError):
    """Login failed.

    Raised for an unknown email and for a wrong password alike. Never subclass
    or annotate it with which one happened.
    """

    message = "Invalid email or password."


class Unauthenticated(AuthError):
    message = "Authentication required."


class Forbidden(AuthError):
    message = "You do not have permission to perform this action."
