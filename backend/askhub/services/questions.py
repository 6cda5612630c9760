"""Question and answer authoring, tag resolution and browsing."""

import logging
import math
import re
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from askhub.config import Settings
from askhub.db.models import Answer, Profile, Question, QuestionSort, QuestionTag, Tag
from askhub.services.errors import FormValidationError, NotFoundError, PermissionDeniedError
from askhub.services.realtime import ChangeFeed

logger = logging.getLogger(__name__)

_HTML_TAG = re.compile(r"<[^>]*>")

# What the rich-text editor submits when the user typed nothing
EMPTY_EDITOR_VALUE = "<p><br></p>"


# =============================================================================
# VALIDATION
# =============================================================================


def visible_text(html: str) -> str:
    """Text left after removing HTML tags."""
    return _HTML_TAG.sub("", html)


def is_blank_rich_text(html: str | None) -> bool:
    return not html or not html.strip() or html == EMPTY_EDITOR_VALUE


def normalize_tag_names(names: list[str]) -> list[str]:
    """Trim and lower-case, dropping blanks and duplicates."""
    result: list[str] = []
    for name in names:
        name = name.strip().lower()
        if name and name not in result:
            result.append(name)
    return result


def validate_question_form(
    title: str,
    content: str,
    tags: list[str],
    settings: Settings,
) -> dict[str, str]:
    """Return a field -> message map; empty when the form is valid."""
    errors: dict[str, str] = {}

    title = title.strip()
    if not title:
        errors["title"] = "Title is required"
    elif len(title) < settings.question_title_min_chars:
        errors["title"] = f"Title must be at least {settings.question_title_min_chars} characters"

    if is_blank_rich_text(content):
        errors["content"] = "Description is required"
    elif len(visible_text(content)) < settings.question_content_min_chars:
        errors["content"] = (
            f"Description must be at least {settings.question_content_min_chars} characters"
        )

    names = normalize_tag_names(tags)
    if not names:
        errors["tags"] = "At least one tag is required"
    elif len(names) > settings.max_tags_per_question:
        errors["tags"] = f"You can add at most {settings.max_tags_per_question} tags"

    return errors


# =============================================================================
# TAGS
# =============================================================================


async def resolve_tags(db: AsyncSession, names: list[str]) -> list[Tag]:
    """
    Find each tag by name, creating the missing ones.

    New tags are committed one at a time so that losing a creation race to a
    concurrent request only costs a re-read of the winner's row. The session
    must carry no pending writes.
    """
    for name in names:
        result = await db.execute(select(Tag.id).where(Tag.name == name))
        if result.scalar_one_or_none() is not None:
            continue
        db.add(Tag(name=name))
        try:
            await db.commit()
            logger.info("Created tag %r", name)
        except IntegrityError:
            await db.rollback()
            logger.info("Tag %r was created concurrently", name)

    result = await db.execute(
        select(Tag).where(Tag.name.in_(names)).execution_options(populate_existing=True)
    )
    by_name = {tag.name: tag for tag in result.scalars().all()}
    return [by_name[name] for name in names]


async def list_tags(db: AsyncSession, limit: int | None = None) -> list[Tag]:
    """Tags ordered by popularity."""
    stmt = select(Tag).order_by(Tag.question_count.desc(), Tag.name.asc())
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


# =============================================================================
# QUESTIONS
# =============================================================================


def _question_options():
    return (selectinload(Question.author), selectinload(Question.tags))


async def get_question_or_404(db: AsyncSession, question_id: UUID) -> Question:
    result = await db.execute(
        select(Question)
        .options(*_question_options())
        .where(Question.id == question_id)
        .execution_options(populate_existing=True)
    )
    question = result.scalar_one_or_none()
    if question is None:
        raise NotFoundError("Question not found.")
    return question


async def create_question(
    db: AsyncSession,
    feed: ChangeFeed,
    author: Profile,
    *,
    title: str,
    content: str,
    tags: list[str],
    settings: Settings,
) -> Question:
    """
    Validate the form, create the question and link its tags.

    Each linked tag's question_count is bumped in place.
    """
    errors = validate_question_form(title, content, tags, settings)
    if errors:
        raise FormValidationError(errors)

    author_id = author.id
    tag_rows = await resolve_tags(db, normalize_tag_names(tags))

    question = Question(title=title.strip(), content=content, author_id=author_id)
    db.add(question)
    await db.flush()

    for tag in tag_rows:
        db.add(QuestionTag(question_id=question.id, tag_id=tag.id))
        await db.execute(
            update(Tag)
            .where(Tag.id == tag.id)
            .values(question_count=Tag.question_count + 1)
            .execution_options(synchronize_session=False)
        )
    await db.commit()

    question = await get_question_or_404(db, question.id)
    await feed.publish_row("INSERT", question)
    return question


async def list_questions(
    db: AsyncSession,
    *,
    search: str | None = None,
    sort: QuestionSort = QuestionSort.NEWEST,
    tag: str | None = None,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[Question], int, int]:
    """
    One page of the question feed.

    Returns (questions, total matching, total pages). total pages is at least 1.
    """
    stmt = select(Question)
    if search and search.strip():
        term = search.strip()
        stmt = stmt.where(
            Question.title.icontains(term, autoescape=True)
            | Question.content.icontains(term, autoescape=True)
        )
    if tag and tag.strip():
        stmt = stmt.where(Question.tags.any(Tag.name == tag.strip().lower()))
    if sort == QuestionSort.UNANSWERED:
        stmt = stmt.where(Question.is_answered.is_(False))

    total_result = await db.execute(select(func.count()).select_from(stmt.subquery()))
    total = total_result.scalar() or 0

    if sort == QuestionSort.VOTES:
        stmt = stmt.order_by(Question.votes.desc(), Question.created_at.desc())
    else:
        stmt = stmt.order_by(Question.created_at.desc())

    stmt = stmt.options(*_question_options()).offset((page - 1) * page_size).limit(page_size)
    result = await db.execute(stmt)
    total_pages = max(1, math.ceil(total / page_size))
    return list(result.scalars().all()), total, total_pages


async def list_answers(db: AsyncSession, question_id: UUID) -> list[Answer]:
    """Accepted answer first, then by votes, then oldest first."""
    result = await db.execute(
        select(Answer)
        .options(selectinload(Answer.author))
        .where(Answer.question_id == question_id)
        .order_by(Answer.is_accepted.desc(), Answer.votes.desc(), Answer.created_at.asc())
    )
    return list(result.scalars().all())


async def record_view(db: AsyncSession, question_id: UUID) -> None:
    """Bump a question's view counter. Failures are logged and ignored."""
    try:
        await db.execute(
            update(Question)
            .where(Question.id == question_id)
            .values(view_count=Question.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.warning("Failed to record view for question %s", question_id, exc_info=True)


# =============================================================================
# ANSWERS
# =============================================================================


async def create_answer(
    db: AsyncSession,
    feed: ChangeFeed,
    author: Profile,
    question_id: UUID,
    content: str,
) -> Answer:
    if is_blank_rich_text(content):
        raise FormValidationError({"content": "Please provide an answer"})

    exists = await db.execute(select(Question.id).where(Question.id == question_id))
    if exists.scalar_one_or_none() is None:
        raise NotFoundError("Question not found.")

    answer = Answer(content=content, question_id=question_id, author_id=author.id)
    db.add(answer)
    await db.execute(
        update(Question)
        .where(Question.id == question_id)
        .values(answer_count=Question.answer_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    result = await db.execute(
        select(Answer).options(selectinload(Answer.author)).where(Answer.id == answer.id)
    )
    answer = result.scalar_one()
    await feed.publish_row("INSERT", answer)
    return answer


async def accept_answer(
    db: AsyncSession,
    feed: ChangeFeed,
    actor: Profile,
    answer_id: UUID,
) -> Answer:
    """
    Mark an answer as the accepted one, or un-accept it if it already is.

    Every answer of the question is cleared first, so at most one stays
    accepted. Only the question's author may do this.
    """
    result = await db.execute(
        select(Answer)
        .options(selectinload(Answer.question))
        .where(Answer.id == answer_id)
        .execution_options(populate_existing=True)
    )
    answer = result.scalar_one_or_none()
    if answer is None:
        raise NotFoundError("Answer not found.")
    if answer.question.author_id != actor.id:
        raise PermissionDeniedError("Only the question's author can accept an answer.")

    question_id = answer.question_id
    was_accepted = answer.is_accepted

    await db.execute(
        update(Answer)
        .where(Answer.question_id == question_id)
        .values(is_accepted=False)
        .execution_options(synchronize_session=False)
    )
    if not was_accepted:
        await db.execute(
            update(Answer)
            .where(Answer.id == answer_id)
            .values(is_accepted=True)
            .execution_options(synchronize_session=False)
        )
    await db.execute(
        update(Question)
        .where(Question.id == question_id)
        .values(is_answered=not was_accepted)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    result = await db.execute(
        select(Answer)
        .options(selectinload(Answer.author))
        .where(Answer.id == answer_id)
        .execution_options(populate_existing=True)
    )
    answer = result.scalar_one()
    await feed.publish_row("UPDATE", answer)
    return answer
