"""
API request and response models for the user authentication endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclass in auth/models.py, which owns the
internal record (including the password hash and token list, neither of
which is ever serialized). Route handlers map between the two.

Request field validators raise ValueError with the user-facing message; the
RequestValidationError handler in api/main.py lifts that message into the
400 response's field list.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from auth.validation import (
    INVALID_EMAIL,
    NAME_REQUIRED,
    PASSWORD_REQUIRED,
    PASSWORD_TOO_LONG,
    is_valid_email,
    normalize_email,
    password_problem,
    password_too_long,
)

# ---------------------------------------------------------------------------
# Request models
#
# No model-level whitespace stripping: passwords must reach the store exactly
# as typed. Name, email and gender are trimmed by their own validators.
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/users."""

    name: str = Field(max_length=255)
    email: str = Field(max_length=255)
    password1: str
    password2: str
    gender: Optional[str] = Field(default=None, max_length=50)

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError(NAME_REQUIRED)
        return value

    @field_validator("email")
    @classmethod
    def email_well_formed(cls, value: str) -> str:
        value = normalize_email(value)
        if not is_valid_email(value):
            raise ValueError(INVALID_EMAIL)
        return value

    @field_validator("gender")
    @classmethod
    def gender_trimmed(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("password1")
    @classmethod
    def password_acceptable(cls, value: str) -> str:
        problem = password_problem(value)
        if problem:
            raise ValueError(problem)
        return value

    @field_validator("password2")
    @classmethod
    def confirmation_not_too_long(cls, value: str) -> str:
        if password_too_long(value):
            raise ValueError(PASSWORD_TOO_LONG)
        return value


class LoginRequest(BaseModel):
    """Request body for POST /api/users/login."""

    email: str = Field(max_length=255)
    password: str

    @field_validator("email")
    @classmethod
    def email_well_formed(cls, value: str) -> str:
        value = normalize_email(value)
        if not is_valid_email(value):
            raise ValueError(INVALID_EMAIL)
        return value

    @field_validator("password")
    @classmethod
    def password_present(cls, value: str) -> str:
        if not value:
            raise ValueError(PASSWORD_REQUIRED)
        if password_too_long(value):
            raise ValueError(PASSWORD_TOO_LONG)
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public representation of a user. No password hash, no tokens."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    gender: Optional[str] = None
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build the public view from the internal record."""
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            gender=user.gender,
            created_at=user.created_at or "",
        )


class RegisterResponse(BaseModel):
    """Response body for POST /api/users (201)."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str


class LoginResponse(BaseModel):
    """Response body for POST /api/users/login (200)."""

    model_config = ConfigDict(frozen=True)

    msg: str
    user: UserResponse
    token: str


class MessageResponse(BaseModel):
    """Plain acknowledgement, e.g. the logout response."""

    model_config = ConfigDict(frozen=True)

    msg: str


class FieldErrorDetail(BaseModel):
    """One field-level validation message."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[list[FieldErrorDetail]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
