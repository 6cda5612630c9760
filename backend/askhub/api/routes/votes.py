"""
Vote Routes

Endpoints:
- POST /votes - Cast, flip or withdraw a vote
- GET /votes/{target_type}/{target_id} - The caller's current vote on a target
"""

from uuid import UUID

from fastapi import APIRouter

from askhub.api.deps import CurrentProfile, DbSession, Feed
from askhub.db.models import VoteTarget
from askhub.schemas.votes import VoteRequest, VoteResult
from askhub.services import voting

router = APIRouter(prefix="/votes", tags=["votes"])


@router.post("", response_model=VoteResult)
async def cast_vote(
    data: VoteRequest,
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
) -> VoteResult:
    """Voting the same way twice withdraws the vote."""
    outcome = await voting.cast_vote(
        db, feed, profile.id, data.target_type, data.target_id, data.value
    )
    return VoteResult.model_validate(outcome)


@router.get("/{target_type}/{target_id}")
async def get_my_vote(
    target_type: VoteTarget,
    target_id: UUID,
    profile: CurrentProfile,
    db: DbSession,
) -> dict[str, int | None]:
    return {"user_vote": await voting.get_my_vote(db, profile.id, target_type, target_id)}
