"""Authentication schemas."""

from uuid import UUID

from pydantic import EmailStr, Field

from askhub.schemas.base import BaseSchema
from askhub.schemas.profiles import ProfileRead


class SignUpRequest(BaseSchema):
    """Request schema for creating credentials."""

    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class SignInRequest(BaseSchema):
    """
    Request schema for password sign-in.

    username is used to create the profile when this identity has none yet.
    """

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    username: str | None = Field(None, min_length=3, max_length=50)


class TokenResponse(BaseSchema):
    """Response schema for successful authentication."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiry in seconds")


class SessionRead(BaseSchema):
    """The current identity and its profile, if one exists."""

    user_id: UUID
    email: str
    profile: ProfileRead | None = None
