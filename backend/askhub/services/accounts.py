"""Identity and profile management."""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from askhub.db.models import Answer, Profile, Question, User
from askhub.services.errors import AskHubError, AuthenticationError, ConflictError
from askhub.services.realtime import ChangeFeed
from askhub.services.storage import AvatarStorage

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Fields a profile owner may change. Balance, reputation and username are
# maintained elsewhere.
EDITABLE_PROFILE_FIELDS = frozenset({
    "display_name",
    "bio",
    "first_name",
    "last_name",
    "college",
    "job_position",
    "location",
    "website",
    "github_url",
    "linkedin_url",
    "twitter_url",
    "skills",
    "experience_years",
})


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


# =============================================================================
# IDENTITY
# =============================================================================


async def sign_up(db: AsyncSession, email: str, password: str) -> User:
    """Create credentials. The profile is created later, at first sign-in."""
    email = email.strip().lower()
    result = await db.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise ConflictError("An account with this email already exists.")

    user = User(email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("An account with this email already exists.") from e
    logger.info("Created identity %s", user.id)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """Check credentials and record the sign-in time."""
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password.")

    user.last_sign_in_at = datetime.now(timezone.utc)
    await db.commit()
    return user


# =============================================================================
# PROFILES
# =============================================================================


async def get_profile(db: AsyncSession, profile_id: UUID) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.id == profile_id))
    return result.scalar_one_or_none()


async def create_profile(
    db: AsyncSession,
    feed: ChangeFeed,
    user_id: UUID,
    username: str,
    *,
    initial_tokens: int,
) -> Profile:
    """
    Create the profile for an identity.

    username doubles as the initial display name.
    """
    username = username.strip()
    if await get_profile(db, user_id) is not None:
        raise ConflictError("Profile already exists.")

    taken = await db.execute(
        select(Profile.id).where(func.lower(Profile.username) == username.lower())
    )
    if taken.scalar_one_or_none() is not None:
        raise ConflictError("Username is already taken.")

    profile = Profile(
        id=user_id,
        username=username,
        display_name=username,
        tokens=initial_tokens,
    )
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Username is already taken.") from e

    logger.info("Created profile %s (%s)", user_id, username)
    await feed.publish_row("INSERT", profile)
    return profile


async def ensure_profile(
    db: AsyncSession,
    feed: ChangeFeed,
    user: User,
    username: str | None,
    *,
    initial_tokens: int,
) -> Profile | None:
    """
    Return the identity's profile, creating it when missing and a username is given.

    Creation here is a side effect of signing in: a failure is logged and
    reported as "no profile" rather than failing the sign-in.
    """
    user_id = user.id
    profile = await get_profile(db, user_id)
    if profile is not None or not username:
        return profile
    try:
        return await create_profile(db, feed, user_id, username, initial_tokens=initial_tokens)
    except AskHubError as e:
        logger.warning("Profile creation at sign-in failed for %s: %s", user_id, e.message)
        return None


def normalize_skills(skills: list[str] | None) -> list[str]:
    """Trim, drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for skill in skills or []:
        skill = skill.strip()
        if skill and skill not in seen:
            seen.append(skill)
    return seen


async def update_profile(
    db: AsyncSession,
    feed: ChangeFeed,
    profile: Profile,
    changes: dict[str, Any],
) -> Profile:
    """Apply owner edits. Unknown or protected fields are ignored."""
    for field, value in changes.items():
        if field not in EDITABLE_PROFILE_FIELDS:
            continue
        if field == "skills":
            value = normalize_skills(value)
        setattr(profile, field, value)
    profile.updated_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(profile)
    await feed.publish_row("UPDATE", profile)
    return profile


async def replace_avatar(
    db: AsyncSession,
    feed: ChangeFeed,
    storage: AvatarStorage,
    profile: Profile,
    *,
    filename: str,
    content_type: str | None,
    data: bytes,
) -> Profile:
    """Upload a new avatar, point the profile at it, and drop the old object."""
    profile_id = profile.id
    previous_url = profile.avatar_url
    url = await storage.upload_avatar(profile_id, filename, content_type, data)

    profile.avatar_url = url
    profile.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(profile)
    await feed.publish_row("UPDATE", profile)

    old_key = storage.owned_key(previous_url, profile_id) if previous_url else None
    if old_key and old_key != storage.key_from_url(url):
        await storage.delete_avatar(old_key)
    return profile


async def user_stats(db: AsyncSession, profile_id: UUID) -> dict[str, int]:
    """Dashboard counters for one profile."""
    questions = await db.execute(
        select(
            func.count(Question.id),
            func.coalesce(func.sum(Question.votes), 0),
            func.coalesce(func.sum(Question.view_count), 0),
        ).where(Question.author_id == profile_id)
    )
    questions_asked, question_votes, total_views = questions.one()

    answers = await db.execute(
        select(
            func.count(Answer.id),
            func.coalesce(func.sum(Answer.votes), 0),
        ).where(Answer.author_id == profile_id)
    )
    answers_given, answer_votes = answers.one()

    accepted = await db.execute(
        select(func.count(Answer.id)).where(
            Answer.author_id == profile_id, Answer.is_accepted.is_(True)
        )
    )

    return {
        "questions_asked": int(questions_asked or 0),
        "answers_given": int(answers_given or 0),
        "accepted_answers": int(accepted.scalar() or 0),
        "total_votes": int(question_votes or 0) + int(answer_votes or 0),
        "total_views": int(total_views or 0),
    }
