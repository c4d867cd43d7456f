"""
auth/errors.py -- Domain-level exceptions for the credential and token lifecycle.

These exceptions are framework-agnostic: no FastAPI, no HTTP status codes.
The store and the token issuer raise them; api/main.py translates each one
into a response through a single exception handler.

AuthenticationError deliberately carries one message for both "no such email"
and "wrong password" so callers cannot leak which one failed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


class AuthServiceError(Exception):
    """Base class for every error raised by auth/."""


@dataclass(frozen=True)
class FieldError:
    """One field-level validation message, e.g. ("email", "Please include a valid email")."""

    field: str
    message: str


class ValidationError(AuthServiceError):
    """Raised when user input is malformed. Carries one FieldError per bad field."""

    def __init__(self, fields: list[FieldError]) -> None:
        self.fields = list(fields)
        super().__init__("; ".join(f"{f.field}: {f.message}" for f in self.fields))


class DuplicateUserError(AuthServiceError):
    """Raised when an email is already registered (UNIQUE constraint on users.email)."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("User already exists")


class AuthenticationError(AuthServiceError):
    """Raised on bad credentials. Same message whatever the cause."""

    def __init__(self) -> None:
        super().__init__("Incorrect email or password.")


class InvalidTokenError(AuthServiceError):
    """Raised when a bearer token is absent, malformed, forged, expired or revoked.

    The reason is kept for logging only; the HTTP layer always answers with
    the same generic 401 body.
    """

    def __init__(self, reason: str = "invalid token") -> None:
        self.reason = reason
        super().__init__(reason)


class PersistenceError(AuthServiceError):
    """Raised when the store is unreachable or a write fails."""


class UserNotFoundError(AuthServiceError):
    """Raised by operations that address a user by id when no such user exists."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")
