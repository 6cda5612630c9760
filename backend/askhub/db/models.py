"""
SQLAlchemy 2.0 Models for AskHub.

Uses modern declarative syntax with Mapped[] type annotations.
All models use UUID primary keys. Column types are portable (Postgres in
production, SQLite in tests); Postgres-only types are attached as variants.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    ARRAY,
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from askhub.db.base import Base


def utcnow() -> datetime:
    """Timezone-aware 'now' used for Python-side timestamp defaults."""
    return datetime.now(timezone.utc)


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


# =============================================================================
# ENUMS
# =============================================================================


class VoteTarget(str, PyEnum):
    """Kind of row a vote points at."""

    QUESTION = "question"
    ANSWER = "answer"


class QuestionSort(str, PyEnum):
    """Listing order for the question feed."""

    NEWEST = "newest"
    VOTES = "votes"
    UNANSWERED = "unanswered"


class NotificationType(str, PyEnum):
    """Notification categories."""

    CHAT_REQUEST = "chat_request"


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """
    Authentication identity.

    Holds credentials only; everything shown to other people lives on Profile,
    which is created lazily after the first sign-in.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = _created_at()
    last_sign_in_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    profile: Mapped[Optional["Profile"]] = relationship(
        "Profile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )


class Profile(Base):
    """Application-level user record: display info, reputation and token balance."""

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("tokens >= 0", name="non_negative_tokens"),
        CheckConstraint("experience_years >= 0", name="non_negative_experience"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reputation: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    college: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_position: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tokens: Mapped[int] = mapped_column(nullable=False, default=100, server_default="100")
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    linkedin_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    twitter_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    skills: Mapped[Optional[list[str]]] = mapped_column(
        ARRAY(String()).with_variant(JSON(), "sqlite"), nullable=True
    )
    experience_years: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    is_verified: Mapped[bool] = mapped_column(nullable=False, default=False, server_default="false")
    last_seen: Mapped[datetime] = _created_at()
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    user: Mapped["User"] = relationship("User", back_populates="profile")

    @property
    def name(self) -> str:
        """Name shown to other people."""
        return self.display_name or self.username


question_tags_table_name = "question_tags"


class QuestionTag(Base):
    """Link between a question and one of its tags."""

    __tablename__ = question_tags_table_name

    question_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    tag_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True
    )


class Question(Base):
    """
    A question asked by a profile.

    votes/answer_count/view_count are denormalized counters maintained with
    in-place increments by the services.
    """

    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_questions_created_at", "created_at"),
        Index("idx_questions_votes", "votes"),
        Index("idx_questions_author_id", "author_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    votes: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    answer_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    view_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    is_answered: Mapped[bool] = mapped_column(nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    author: Mapped["Profile"] = relationship("Profile")
    tags: Mapped[list["Tag"]] = relationship(
        "Tag", secondary=question_tags_table_name, back_populates="questions"
    )
    answers: Mapped[list["Answer"]] = relationship(
        "Answer", back_populates="question", cascade="all, delete-orphan", passive_deletes=True
    )


class Answer(Base):
    """An answer to a question. At most one answer per question is accepted."""

    __tablename__ = "answers"
    __table_args__ = (
        Index("idx_answers_question_id", "question_id"),
        Index("idx_answers_author_id", "author_id"),
        # At most one accepted answer per question
        Index(
            "idx_answers_one_accepted",
            "question_id",
            unique=True,
            postgresql_where=text("is_accepted"),
            sqlite_where=text("is_accepted"),
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    question_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    votes: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    is_accepted: Mapped[bool] = mapped_column(nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    question: Mapped["Question"] = relationship("Question", back_populates="answers")
    author: Mapped["Profile"] = relationship("Profile")


class Tag(Base):
    """Topic label. Names are stored lower-cased and are unique."""

    __tablename__ = "tags"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    question_count: Mapped[int] = mapped_column(nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = _created_at()

    questions: Mapped[list["Question"]] = relationship(
        "Question", secondary=question_tags_table_name, back_populates="tags"
    )


class Vote(Base):
    """One directional vote by a user on a question or answer."""

    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("user_id", "target_id", "target_type", name="unique_user_target_vote"),
        CheckConstraint("vote_type IN (1, -1)", name="valid_vote_type"),
        CheckConstraint("target_type IN ('question', 'answer')", name="valid_vote_target_type"),
        Index("idx_votes_target", "target_type", "target_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    target_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    vote_type: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = _created_at()


class Conversation(Base):
    """
    Paid private conversation between two profiles about a question.

    Created only through the create_chat_conversation procedure, which debits
    tokens_charged from the initiator in the same transaction.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "initiator_id", "recipient_id", "question_id", name="unique_conversation_triple"
        ),
        CheckConstraint("initiator_id <> recipient_id", name="distinct_participants"),
        CheckConstraint("tokens_charged > 0", name="positive_tokens_charged"),
        Index("idx_conversations_initiator_id", "initiator_id"),
        Index("idx_conversations_recipient_id", "recipient_id"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    initiator_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    recipient_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="SET NULL"), nullable=True
    )
    tokens_charged: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    initiator: Mapped["Profile"] = relationship("Profile", foreign_keys=[initiator_id])
    recipient: Mapped["Profile"] = relationship("Profile", foreign_keys=[recipient_id])
    question: Mapped[Optional["Question"]] = relationship("Question")
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )


class Message(Base):
    """Append-only chat message."""

    __tablename__ = "messages"
    __table_args__ = (Index("idx_messages_conversation_id", "conversation_id", "created_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    conversation_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text", server_default="text")
    created_at: Mapped[datetime] = _created_at()

    conversation: Mapped["Conversation"] = relationship("Conversation", back_populates="messages")
    sender: Mapped["Profile"] = relationship("Profile")


class Notification(Base):
    """Side record telling a user something happened (e.g. a chat request)."""

    __tablename__ = "notifications"
    __table_args__ = (Index("idx_notifications_user_created", "user_id", "created_at"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    related_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    is_read: Mapped[bool] = mapped_column(nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = _created_at()
