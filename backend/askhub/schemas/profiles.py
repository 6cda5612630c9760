"""Profile schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from askhub.schemas.base import BaseSchema, IDMixin, TimestampMixin


class ProfileSummary(BaseSchema):
    """Display info embedded in questions, answers and conversations."""

    id: UUID
    username: str
    display_name: str | None = None
    avatar_url: str | None = None


class ProfileCreate(BaseSchema):
    """Schema for creating the caller's profile."""

    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")


class ProfileUpdate(BaseSchema):
    """Editable profile fields. Balance, reputation and username are not editable."""

    display_name: str | None = Field(None, max_length=100)
    bio: str | None = None
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    college: str | None = Field(None, max_length=255)
    job_position: str | None = Field(None, max_length=255)
    location: str | None = Field(None, max_length=255)
    website: str | None = None
    github_url: str | None = None
    linkedin_url: str | None = None
    twitter_url: str | None = None
    skills: list[str] | None = None
    experience_years: int | None = Field(None, ge=0, le=80)


class ProfileRead(BaseSchema, IDMixin, TimestampMixin):
    """Full profile."""

    username: str
    display_name: str | None
    bio: str | None
    reputation: int
    tokens: int
    avatar_url: str | None
    first_name: str | None
    last_name: str | None
    college: str | None
    job_position: str | None
    location: str | None
    website: str | None
    github_url: str | None
    linkedin_url: str | None
    twitter_url: str | None
    skills: list[str] | None
    experience_years: int
    is_verified: bool
    last_seen: datetime


class UserStats(BaseSchema):
    """Dashboard counters for one profile."""

    questions_asked: int
    answers_given: int
    accepted_answers: int
    total_votes: int
    total_views: int
