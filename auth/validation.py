"""
auth/validation.py -- Input rules shared by the store and the API request models.

The API layer validates request bodies through pydantic, and UserStore
validates again so the CLI and any other caller get the same rules. Both
use the predicates and messages defined here.

Passwords are never stripped or otherwise rewritten; they are checked and
hashed exactly as given.
"""

from __future__ import annotations

import re

from auth.errors import FieldError, ValidationError

MIN_PASSWORD_LENGTH = 6
# bcrypt refuses input longer than 72 bytes (UTF-8), so that is the ceiling.
MAX_PASSWORD_BYTES = 72

# Deliberately loose: one "@", no whitespace, a dot in the domain part.
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

NAME_REQUIRED = "Name is required"
INVALID_EMAIL = "Please include a valid email"
PASSWORD_TOO_SHORT = f"Please enter a password with {MIN_PASSWORD_LENGTH} or more characters"
PASSWORD_TOO_LONG = f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
PASSWORD_REQUIRED = "Password is required"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def password_problem(password: str) -> str | None:
    """Return the message for an unacceptable password, or None if it is fine."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return PASSWORD_TOO_SHORT
    if password_too_long(password):
        return PASSWORD_TOO_LONG
    return None


def check_password(password: str) -> None:
    """Raise ValidationError if the plaintext password is too short or too long."""
    problem = password_problem(password)
    if problem:
        raise ValidationError([FieldError("password", problem)])


def check_registration(name: str, email: str, password: str) -> None:
    """Validate every registration field, reporting all failures at once."""
    errors: list[FieldError] = []
    if not name or not name.strip():
        errors.append(FieldError("name", NAME_REQUIRED))
    if not is_valid_email(normalize_email(email)):
        errors.append(FieldError("email", INVALID_EMAIL))
    problem = password_problem(password)
    if problem:
        errors.append(FieldError("password", problem))
    if errors:
        raise ValidationError(errors)
