"""Tests for profile edits, avatar replacement and dashboard stats."""

import boto3
import pytest
from botocore.stub import ANY, Stubber
from sqlalchemy import select

from askhub.config import Settings
from askhub.db.models import Answer, Profile
from askhub.services import accounts
from askhub.services.storage import AvatarStorage


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def storage(s3_client) -> AvatarStorage:
    settings = Settings(jwt_secret_key="test", aws_s3_bucket="avatars", aws_s3_region="us-east-2")
    return AvatarStorage(settings, client=s3_client)


def _stub_upload(stubber):
    stubber.add_response(
        "put_object",
        {},
        {
            "Bucket": "avatars",
            "Key": ANY,
            "Body": b"\x89PNG",
            "ContentType": "image/png",
            "CacheControl": "max-age=3600",
        },
    )


async def _reload(db, profile_id) -> Profile:
    result = await db.execute(
        select(Profile).where(Profile.id == profile_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# =============================================================================
# update_profile
# =============================================================================


async def test_update_profile_ignores_protected_fields(db, feed, make_profile):
    ada = await make_profile("ada", tokens=100)

    await accounts.update_profile(
        db,
        feed,
        ada,
        {
            "display_name": "Ada L.",
            "bio": "Engines, mostly.",
            "tokens": 999,
            "reputation": 50,
            "username": "someone_else",
            "avatar_url": "https://elsewhere.example.com/avatars/x.png",
            "is_verified": True,
        },
    )

    stored = await _reload(db, ada.id)
    assert stored.display_name == "Ada L."
    assert stored.bio == "Engines, mostly."
    assert stored.tokens == 100
    assert stored.reputation == 0
    assert stored.username == "ada"
    assert stored.avatar_url is None
    assert stored.is_verified is False


async def test_update_profile_dedupes_skills(db, feed, make_profile):
    ada = await make_profile("ada")

    await accounts.update_profile(
        db, feed, ada, {"skills": [" python", "python", "", "SQL", "  "]}
    )

    assert (await _reload(db, ada.id)).skills == ["python", "SQL"]


async def test_update_profile_publishes_change(db, feed, make_profile):
    ada = await make_profile("ada")
    seen = []

    async def collect(change):
        seen.append(change)

    feed.subscribe("profiles", collect, filter=f"id=eq.{ada.id}", event="UPDATE")

    await accounts.update_profile(db, feed, ada, {"location": "London"})

    assert [c.record["location"] for c in seen] == ["London"]


def test_normalize_skills_keeps_first_seen_order():
    assert accounts.normalize_skills(["b", "a", "b "]) == ["b", "a"]
    assert accounts.normalize_skills(None) == []


# =============================================================================
# replace_avatar
# =============================================================================


async def test_replace_avatar_deletes_previous_own_object(db, feed, storage, s3_client, make_profile):
    ada = await make_profile("ada")
    old_key = f"avatars/{ada.id}-1.png"
    ada.avatar_url = storage.public_url(old_key)
    await db.commit()

    with Stubber(s3_client) as stubber:
        _stub_upload(stubber)
        stubber.add_response("delete_object", {}, {"Bucket": "avatars", "Key": old_key})

        profile = await accounts.replace_avatar(
            db, feed, storage, ada, filename="me.png", content_type="image/png", data=b"\x89PNG"
        )

        stubber.assert_no_pending_responses()

    assert profile.avatar_url != storage.public_url(old_key)
    assert storage.owned_key(profile.avatar_url, ada.id) is not None


async def test_replace_avatar_leaves_other_users_objects(
    db, feed, storage, s3_client, make_profile, monkeypatch
):
    alice = await make_profile("alice")
    mallory = await make_profile("mallory")
    alice_url = storage.public_url(f"avatars/{alice.id}-1.png")
    alice.avatar_url = alice_url
    # Profile edits cannot point an avatar elsewhere
    await accounts.update_profile(db, feed, mallory, {"avatar_url": alice_url})
    assert (await _reload(db, mallory.id)).avatar_url is None

    # Even a stored foreign URL is never deleted
    mallory.avatar_url = alice_url
    await db.commit()
    deleted = []

    async def record_delete(key):
        deleted.append(key)

    monkeypatch.setattr(storage, "delete_avatar", record_delete)

    with Stubber(s3_client) as stubber:
        _stub_upload(stubber)
        await accounts.replace_avatar(
            db, feed, storage, mallory, filename="me.png", content_type="image/png", data=b"\x89PNG"
        )

    assert deleted == []
    assert (await _reload(db, alice.id)).avatar_url == alice_url


def test_owned_key_requires_matching_user(storage):
    url = storage.public_url("avatars/abc-1.png")

    assert storage.owned_key(url, "abc") == "avatars/abc-1.png"
    assert storage.owned_key(url, "xyz") is None
    assert storage.owned_key("https://elsewhere.example.com/avatars/abc-1.png", "abc") is None


# =============================================================================
# user_stats
# =============================================================================


async def test_user_stats_counts_questions_and_answers(db, make_profile, make_question):
    ada = await make_profile("ada")
    bob = await make_profile("bob")
    first = await make_question(ada, title="First question about async")
    second = await make_question(ada, title="Second question about async")
    first.votes, first.view_count = 3, 10
    second.votes, second.view_count = -1, 5
    theirs = await make_question(bob, title="Bob's question about SQL")
    db.add_all([
        Answer(content="<p>a</p>", question_id=theirs.id, author_id=ada.id, votes=4, is_accepted=True),
        Answer(content="<p>b</p>", question_id=first.id, author_id=ada.id, votes=1),
        Answer(content="<p>c</p>", question_id=first.id, author_id=bob.id, votes=7),
    ])
    await db.commit()

    stats = await accounts.user_stats(db, ada.id)

    assert stats == {
        "questions_asked": 2,
        "answers_given": 2,
        "accepted_answers": 1,
        "total_votes": 3 - 1 + 4 + 1,
        "total_views": 15,
    }


async def test_user_stats_for_new_profile_are_zero(db, make_profile):
    ada = await make_profile("ada")

    stats = await accounts.user_stats(db, ada.id)

    assert set(stats.values()) == {0}
