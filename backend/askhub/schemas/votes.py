"""Vote schemas."""

from typing import Literal
from uuid import UUID

from askhub.db.models import VoteTarget
from askhub.schemas.base import BaseSchema


class VoteRequest(BaseSchema):
    target_type: VoteTarget
    target_id: UUID
    value: Literal[1, -1]


class VoteResult(BaseSchema):
    """
    Outcome of a vote.

    delta is the change the caller can apply to a displayed total; votes is
    the stored total read back after the write.
    """

    target_type: VoteTarget
    target_id: UUID
    user_vote: int | None
    delta: int
    votes: int
