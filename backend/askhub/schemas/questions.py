"""Question, answer and tag schemas."""

from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from askhub.schemas.base import BaseSchema, IDMixin, TimestampMixin
from askhub.schemas.profiles import ProfileSummary


class QuestionCreate(BaseSchema):
    """
    Ask-question form.

    Length rules are checked by the service so every field error can be
    reported at once.
    """

    title: str = ""
    content: str = ""
    tags: list[str] = Field(default_factory=list)


class AnswerCreate(BaseSchema):
    """Answer form."""

    content: str = ""


class TagRead(BaseSchema, IDMixin):
    name: str
    description: str | None = None
    question_count: int


class QuestionRead(BaseSchema, IDMixin, TimestampMixin):
    """Question with author and tags."""

    title: str
    content: str
    author_id: UUID
    votes: int
    answer_count: int
    view_count: int
    is_answered: bool
    author: ProfileSummary | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def tag_names(cls, v: Any) -> list[str]:
        """Accept Tag rows as well as plain names."""
        return [t if isinstance(t, str) else t.name for t in v or []]


class AnswerRead(BaseSchema, IDMixin, TimestampMixin):
    content: str
    question_id: UUID
    author_id: UUID
    votes: int
    is_accepted: bool
    author: ProfileSummary | None = None


class QuestionDetail(QuestionRead):
    """Question page: the question plus its ordered answers."""

    answers: list[AnswerRead] = Field(default_factory=list)


class QuestionListResponse(BaseSchema):
    items: list[QuestionRead]
    total: int
    page: int
    page_size: int
    total_pages: int
