"""
Atomic database procedures.

These are the only multi-row writes that must succeed or fail as a unit.
Callers invoke them as a single call and never reproduce their steps with
separate writes.
"""

import logging
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from askhub.db.models import Conversation, Profile

logger = logging.getLogger(__name__)


class ProcedureError(Exception):
    """Base class for errors raised by a procedure."""


class InsufficientTokensError(ProcedureError):
    """The initiator's balance does not cover the requested charge."""

    def __init__(self, profile_id: UUID, tokens: int):
        super().__init__(f"Insufficient tokens: profile {profile_id} cannot pay {tokens}")
        self.profile_id = profile_id
        self.tokens = tokens


class DuplicateConversationError(ProcedureError):
    """A conversation already exists for this (initiator, recipient, question)."""


async def create_chat_conversation(
    db: AsyncSession,
    *,
    p_initiator_id: UUID,
    p_recipient_id: UUID,
    p_question_id: UUID | None,
    p_tokens_to_charge: int,
) -> UUID:
    """
    Debit the initiator and create the conversation in one transaction.

    The debit is a conditional in-place decrement (``tokens >= charge``), so
    concurrent callers can never drive a balance negative. The conversation
    insert relies on the unique (initiator, recipient, question) constraint;
    if it fails, the debit is rolled back with it.

    The session must carry no pending writes when this is called: it commits
    on success and rolls the whole session transaction back on failure.
    Raises InsufficientTokensError or DuplicateConversationError.
    """
    if p_tokens_to_charge <= 0:
        raise ValueError("Token charge must be positive")

    try:
        result = await db.execute(
            update(Profile)
            .where(Profile.id == p_initiator_id, Profile.tokens >= p_tokens_to_charge)
            .values(tokens=Profile.tokens - p_tokens_to_charge)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientTokensError(p_initiator_id, p_tokens_to_charge)

        conversation = Conversation(
            initiator_id=p_initiator_id,
            recipient_id=p_recipient_id,
            question_id=p_question_id,
            tokens_charged=p_tokens_to_charge,
        )
        db.add(conversation)
        await db.flush()
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(
            "Duplicate conversation rejected: initiator=%s recipient=%s question=%s",
            p_initiator_id, p_recipient_id, p_question_id,
        )
        raise DuplicateConversationError(
            "A conversation already exists for this question."
        ) from e
    except InsufficientTokensError:
        await db.rollback()
        raise

    return conversation.id
