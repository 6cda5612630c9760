"""Token-gated chat: starting paid conversations, listing them and messaging."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from askhub.config import Settings
from askhub.db import procedures
from askhub.db.models import (
    Conversation,
    Message,
    Notification,
    NotificationType,
    Profile,
    Question,
)
from askhub.services.errors import (
    ActionFailedError,
    DuplicateConversationError,
    FormValidationError,
    InsufficientTokensError,
    NotFoundError,
    SelfChatError,
)
from askhub.services.realtime import ChangeFeed

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_unread(message: Message, viewer_id: UUID, now: datetime, window: timedelta) -> bool:
    """
    Recency heuristic, not a read receipt.

    A message counts as unread when someone else sent it within the window
    ending at ``now``.
    """
    if message.sender_id == viewer_id:
        return False
    return _as_utc(message.created_at) > _as_utc(now) - window


@dataclass
class StartChatResult:
    conversation_id: UUID
    tokens_charged: int
    balance: int
    message_sent: bool
    notification_sent: bool


@dataclass
class ConversationView:
    """A conversation as seen by one participant."""

    conversation: Conversation
    counterpart: Profile
    question_title: str | None
    last_message: Message | None
    unread_count: int


class TokenChatService:
    """Starts paid conversations and serves them to their participants."""

    def __init__(self, settings: Settings, feed: ChangeFeed, clock: Clock = utc_now):
        self.settings = settings
        self.feed = feed
        self.clock = clock

    @property
    def unread_window(self) -> timedelta:
        return timedelta(hours=self.settings.unread_window_hours)

    # -------------------------------------------------------------------------
    # Starting a chat
    # -------------------------------------------------------------------------

    async def start_chat(
        self,
        db: AsyncSession,
        initiator: Profile,
        *,
        recipient_id: UUID,
        question_id: UUID | None,
        tokens: int | None = None,
        opening_message: str | None = None,
    ) -> StartChatResult:
        """
        Charge the initiator and open a conversation with the recipient.

        Local checks run first and reject without touching the database's
        state. The debit and conversation insert happen in one procedure call;
        the opening message and the recipient's notification follow as
        best-effort writes that never undo the charge.
        """
        if tokens is None:
            tokens = self.settings.default_chat_stake
        if not isinstance(tokens, int) or isinstance(tokens, bool) or tokens <= 0:
            raise FormValidationError({"tokens": "Please enter a valid number of tokens."})
        if initiator.id == recipient_id:
            raise SelfChatError("You cannot start a chat with yourself.")

        recipient = await db.get(Profile, recipient_id)
        if recipient is None:
            raise NotFoundError("User not found.")
        question = None
        if question_id is not None:
            question = await db.get(Question, question_id)
            if question is None:
                raise NotFoundError("Question not found.")

        if initiator.tokens < tokens:
            raise InsufficientTokensError(
                f"You only have {initiator.tokens} tokens available. Please reduce the amount."
            )

        existing = await db.execute(
            select(Conversation.id).where(
                Conversation.initiator_id == initiator.id,
                Conversation.recipient_id == recipient_id,
                Conversation.question_id.is_(None)
                if question_id is None
                else Conversation.question_id == question_id,
            )
        )
        if existing.first() is not None:
            raise DuplicateConversationError(
                "You already have an active conversation for this question."
            )

        # Keep what the follow-up writes need; a failed procedure expires the session
        initiator_id = initiator.id
        initiator_name = initiator.name
        question_title = question.title if question is not None else None

        try:
            conversation_id = await procedures.create_chat_conversation(
                db,
                p_initiator_id=initiator_id,
                p_recipient_id=recipient_id,
                p_question_id=question_id,
                p_tokens_to_charge=tokens,
            )
        except procedures.InsufficientTokensError as e:
            raise InsufficientTokensError("You don't have enough tokens for this chat.") from e
        except procedures.DuplicateConversationError as e:
            raise DuplicateConversationError(
                "You already have an active conversation for this question."
            ) from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.exception("Failed to start chat %s -> %s", initiator_id, recipient_id)
            raise ActionFailedError("Failed to start chat. Please try again.") from e

        logger.info(
            "Chat %s started: %s -> %s for %d tokens",
            conversation_id, initiator_id, recipient_id, tokens,
        )

        await db.refresh(initiator)
        balance = initiator.tokens
        await self.feed.publish_row("UPDATE", initiator)

        conversation = await db.get(Conversation, conversation_id)
        if conversation is not None:
            await self.feed.publish_row("INSERT", conversation)

        message_sent = False
        text = (opening_message or "").strip()
        if text:
            message_sent = await self._post_opening_message(db, conversation_id, initiator_id, text)

        notification_sent = await self._notify_recipient(
            db,
            recipient_id=recipient_id,
            conversation_id=conversation_id,
            content=chat_request_text(initiator_name, question_title, tokens),
        )

        return StartChatResult(
            conversation_id=conversation_id,
            tokens_charged=tokens,
            balance=balance,
            message_sent=message_sent,
            notification_sent=notification_sent,
        )

    async def _post_opening_message(
        self, db: AsyncSession, conversation_id: UUID, sender_id: UUID, content: str
    ) -> bool:
        message = Message(conversation_id=conversation_id, sender_id=sender_id, content=content)
        db.add(message)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.warning(
                "Opening message for conversation %s was not saved", conversation_id, exc_info=True
            )
            return False
        await self.feed.publish_row("INSERT", message)
        return True

    async def _notify_recipient(
        self, db: AsyncSession, *, recipient_id: UUID, conversation_id: UUID, content: str
    ) -> bool:
        notification = Notification(
            user_id=recipient_id,
            type=NotificationType.CHAT_REQUEST.value,
            title="New Chat Request",
            content=content,
            related_id=conversation_id,
        )
        db.add(notification)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.warning(
                "Chat request notification for conversation %s was not saved",
                conversation_id, exc_info=True,
            )
            return False
        await self.feed.publish_row("INSERT", notification)
        return True

    # -------------------------------------------------------------------------
    # Listing and messaging
    # -------------------------------------------------------------------------

    @staticmethod
    def _conversation_options():
        return (
            selectinload(Conversation.initiator),
            selectinload(Conversation.recipient),
            selectinload(Conversation.question),
            selectinload(Conversation.messages).selectinload(Message.sender),
        )

    def _view(self, conversation: Conversation, viewer_id: UUID, now: datetime) -> ConversationView:
        counterpart = (
            conversation.recipient
            if conversation.initiator_id == viewer_id
            else conversation.initiator
        )
        messages = conversation.messages
        unread = sum(1 for m in messages if is_unread(m, viewer_id, now, self.unread_window))
        return ConversationView(
            conversation=conversation,
            counterpart=counterpart,
            question_title=conversation.question.title if conversation.question else None,
            last_message=messages[-1] if messages else None,
            unread_count=unread,
        )

    async def list_conversations(self, db: AsyncSession, viewer_id: UUID) -> list[ConversationView]:
        """Every conversation the viewer takes part in, most recent activity first."""
        result = await db.execute(
            select(Conversation)
            .options(*self._conversation_options())
            .where(
                or_(
                    Conversation.initiator_id == viewer_id,
                    Conversation.recipient_id == viewer_id,
                )
            )
            .order_by(Conversation.updated_at.desc())
            .execution_options(populate_existing=True)
        )
        now = self.clock()
        return [self._view(c, viewer_id, now) for c in result.scalars().all()]

    async def get_conversation(
        self, db: AsyncSession, viewer_id: UUID, conversation_id: UUID
    ) -> ConversationView:
        """
        One conversation with its messages.

        Raises NotFoundError both when it does not exist and when the viewer
        is not a participant.
        """
        result = await db.execute(
            select(Conversation)
            .options(*self._conversation_options())
            .where(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        conversation = result.scalar_one_or_none()
        if conversation is None or viewer_id not in (
            conversation.initiator_id,
            conversation.recipient_id,
        ):
            raise NotFoundError("Conversation not found.")
        return self._view(conversation, viewer_id, self.clock())

    async def send_message(
        self, db: AsyncSession, sender_id: UUID, conversation_id: UUID, content: str
    ) -> Message:
        content = content.strip()
        if not content:
            raise FormValidationError({"content": "Message cannot be empty"})

        conversation = await db.get(Conversation, conversation_id)
        if conversation is None or sender_id not in (
            conversation.initiator_id,
            conversation.recipient_id,
        ):
            raise NotFoundError("Conversation not found.")

        message = Message(conversation_id=conversation_id, sender_id=sender_id, content=content)
        db.add(message)
        await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        result = await db.execute(
            select(Message).options(selectinload(Message.sender)).where(Message.id == message.id)
        )
        message = result.scalar_one()
        await self.feed.publish_row("INSERT", message)
        return message


def chat_request_text(sender_name: str, question_title: str | None, tokens: int) -> str:
    """Body of the notification a recipient gets when someone pays to chat."""
    about = question_title if question_title is not None else "your profile"
    return f'{sender_name} wants to chat with you about "{about}" for {tokens} tokens.'
