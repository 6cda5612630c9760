"""Up/down voting on questions and answers."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from askhub.db.models import Answer, Question, Vote, VoteTarget
from askhub.services.errors import ActionFailedError, NotFoundError
from askhub.services.realtime import ChangeFeed

logger = logging.getLogger(__name__)

_TARGET_MODELS: dict[VoteTarget, type[Question] | type[Answer]] = {
    VoteTarget.QUESTION: Question,
    VoteTarget.ANSWER: Answer,
}


@dataclass
class VoteOutcome:
    target_type: VoteTarget
    target_id: UUID
    user_vote: int | None
    delta: int
    votes: int


async def get_my_vote(
    db: AsyncSession, user_id: UUID, target_type: VoteTarget, target_id: UUID
) -> int | None:
    result = await db.execute(
        select(Vote.vote_type).where(
            Vote.user_id == user_id,
            Vote.target_id == target_id,
            Vote.target_type == target_type.value,
        )
    )
    return result.scalar_one_or_none()


async def cast_vote(
    db: AsyncSession,
    feed: ChangeFeed,
    user_id: UUID,
    target_type: VoteTarget,
    target_id: UUID,
    value: int,
) -> VoteOutcome:
    """
    Record a vote with toggle semantics.

    Voting the same way twice removes the vote; voting the other way flips
    it. The target's counter moves by the resulting delta in place and the
    stored total is read back afterwards.
    """
    if value not in (1, -1):
        raise ValueError("Vote value must be 1 or -1")

    model = _TARGET_MODELS[target_type]
    if await db.get(model, target_id) is None:
        raise NotFoundError(f"{target_type.value.capitalize()} not found.")

    try:
        result = await db.execute(
            select(Vote).where(
                Vote.user_id == user_id,
                Vote.target_id == target_id,
                Vote.target_type == target_type.value,
            )
        )
        existing = result.scalar_one_or_none()

        if existing is None:
            db.add(Vote(
                user_id=user_id,
                target_id=target_id,
                target_type=target_type.value,
                vote_type=value,
            ))
            delta, user_vote = value, value
        elif existing.vote_type == value:
            await db.delete(existing)
            delta, user_vote = -existing.vote_type, None
        else:
            delta = value - existing.vote_type
            existing.vote_type = value
            user_vote = value

        await db.execute(
            update(model)
            .where(model.id == target_id)
            .values(votes=model.votes + delta)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Vote by %s on %s %s failed", user_id, target_type.value, target_id)
        raise ActionFailedError("Failed to vote. Please try again.") from e

    target = await db.get(model, target_id, populate_existing=True)
    await feed.publish_row("UPDATE", target)
    return VoteOutcome(
        target_type=target_type,
        target_id=target_id,
        user_vote=user_vote,
        delta=delta,
        votes=target.votes,
    )
