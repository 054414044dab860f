"""
API request and response models for Storefront REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Sanitized output: UserResponse is the only shape a User leaves the API in.
It has no field for the password hash, the one-time code, or its expiry,
so those can never be serialized by accident.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import Session, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Applies the one-time-code length rule wherever the type is used.
_Code = Annotated[str, Field(min_length=6, max_length=6, description="Six-digit one-time code.")]


class _EmailBody(BaseModel):
    """Base for request bodies that carry an email.

    Emails are stripped and lowercased before EmailStr (email-validator)
    checks the syntax, so the stored value, the cache key and every lookup
    agree on one spelling.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return str(value).strip().lower()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_EmailBody):
    name: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=128)


class LoginRequest(_EmailBody):
    password: str = Field(min_length=6, max_length=128)


class VerifyRequest(_EmailBody):
    verification_code: _Code


class CheckCodeRequest(_EmailBody):
    verification_code: _Code


class EmailRequest(_EmailBody):
    """Body for forgot-password and resend-verification-code."""


class ResetPasswordRequest(_EmailBody):
    verification_code: _Code
    new_password: str = Field(min_length=6, max_length=128)


class UpdateProfileRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=3, max_length=50)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=6, max_length=128)
    new_password: str = Field(min_length=6, max_length=128)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Sanitized identity."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    roles: list[str]
    is_verified: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            roles=list(user.roles),
            is_verified=user.is_verified,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class SessionResponse(BaseModel):
    """One session row. The token hash is never returned."""

    model_config = ConfigDict(frozen=True)

    id: str
    ip_address: str
    user_agent: str
    expire_at: datetime
    created_at: Optional[datetime] = None
    current: bool = False

    @classmethod
    def from_session(cls, session: Session, current_token_hash: Optional[str] = None) -> "SessionResponse":
        return cls(
            id=session.id,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            expire_at=session.expire_at,
            created_at=session.created_at,
            current=current_token_hash is not None and session.token_hash == current_token_hash,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


class SessionListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    sessions: list[SessionResponse]


class RevokeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    revoked: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload. errors maps field paths to messages."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    errors: dict[str, str] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
