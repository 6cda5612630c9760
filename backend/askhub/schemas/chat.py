"""Pydantic schemas for token-gated chat."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from askhub.schemas.base import BaseSchema, IDMixin, TimestampMixin
from askhub.schemas.profiles import ProfileSummary


# Request schemas
class StartChatRequest(BaseSchema):
    """Offer a stake of tokens to open a conversation with a question's author."""

    recipient_id: UUID
    question_id: UUID | None = None
    tokens: int | None = None  # defaults to the configured stake
    message: str | None = Field(None, max_length=10000)


class MessageCreate(BaseSchema):
    """Request to send a chat message."""

    content: str = Field(..., max_length=10000)


# Response schemas
class StartChatResponse(BaseSchema):
    """Result of a successful chat start."""

    conversation_id: UUID
    tokens_charged: int
    balance: int
    message_sent: bool
    notification_sent: bool


class MessageRead(BaseSchema, IDMixin):
    """Chat message."""

    conversation_id: UUID
    sender_id: UUID
    content: str
    message_type: str
    created_at: datetime
    sender: ProfileSummary | None = None


class ConversationRead(BaseSchema, IDMixin, TimestampMixin):
    """Conversation with participants, question title and messages."""

    initiator_id: UUID
    recipient_id: UUID
    question_id: UUID | None
    tokens_charged: int
    initiator: ProfileSummary
    recipient: ProfileSummary
    counterpart: ProfileSummary
    question_title: str | None = None
    messages: list[MessageRead] = Field(default_factory=list)
    last_message: MessageRead | None = None
    unread_count: int = 0


class ConversationListResponse(BaseSchema):
    """List of conversations."""

    conversations: list[ConversationRead]
    total: int
    unread_total: int
