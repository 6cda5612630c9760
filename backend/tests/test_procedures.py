"""Tests for the atomic chat-creation procedure."""

import pytest
from sqlalchemy import func, select

from askhub.db import procedures
from askhub.db.models import Conversation, Profile


async def _balance(db, profile_id) -> int:
    result = await db.execute(select(Profile.tokens).where(Profile.id == profile_id))
    return result.scalar_one()


async def _conversation_count(db) -> int:
    result = await db.execute(select(func.count(Conversation.id)))
    return result.scalar_one()


async def test_debits_exact_stake_and_creates_one_conversation(db, make_profile, make_question):
    alice = await make_profile("alice", tokens=100)
    bob = await make_profile("bob")
    question = await make_question(bob)
    alice_id, bob_id, question_id = alice.id, bob.id, question.id

    conversation_id = await procedures.create_chat_conversation(
        db,
        p_initiator_id=alice_id,
        p_recipient_id=bob_id,
        p_question_id=question_id,
        p_tokens_to_charge=15,
    )

    assert await _balance(db, alice_id) == 85
    assert await _conversation_count(db) == 1
    conversation = await db.get(Conversation, conversation_id)
    assert conversation.tokens_charged == 15
    assert conversation.initiator_id == alice_id


async def test_insufficient_balance_leaves_balance_unchanged(db, make_profile):
    alice = await make_profile("alice", tokens=5)
    bob = await make_profile("bob")
    alice_id, bob_id = alice.id, bob.id

    with pytest.raises(procedures.InsufficientTokensError) as exc_info:
        await procedures.create_chat_conversation(
            db,
            p_initiator_id=alice_id,
            p_recipient_id=bob_id,
            p_question_id=None,
            p_tokens_to_charge=10,
        )

    assert "Insufficient tokens" in str(exc_info.value)
    assert await _balance(db, alice_id) == 5
    assert await _conversation_count(db) == 0


async def test_duplicate_triple_rolls_back_the_debit(db, make_profile, make_question):
    alice = await make_profile("alice", tokens=100)
    bob = await make_profile("bob")
    question = await make_question(bob)
    ids = dict(
        p_initiator_id=alice.id,
        p_recipient_id=bob.id,
        p_question_id=question.id,
    )

    await procedures.create_chat_conversation(db, **ids, p_tokens_to_charge=10)
    with pytest.raises(procedures.DuplicateConversationError):
        await procedures.create_chat_conversation(db, **ids, p_tokens_to_charge=10)

    assert await _balance(db, ids["p_initiator_id"]) == 90
    assert await _conversation_count(db) == 1


async def test_rejects_non_positive_charge(db, make_profile):
    alice = await make_profile("alice")
    bob = await make_profile("bob")

    with pytest.raises(ValueError):
        await procedures.create_chat_conversation(
            db,
            p_initiator_id=alice.id,
            p_recipient_id=bob.id,
            p_question_id=None,
            p_tokens_to_charge=0,
        )
