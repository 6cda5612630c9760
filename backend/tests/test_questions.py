"""Tests for question authoring, tags, answers and browsing."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from askhub.db.models import Answer, Question, QuestionSort, QuestionTag, Tag
from askhub.services import questions as svc
from askhub.services.errors import FormValidationError, NotFoundError, PermissionDeniedError

CONTENT = "<p>The items keep sticking to the left edge of the container.</p>"


async def _tag(db, name) -> Tag:
    result = await db.execute(
        select(Tag).where(Tag.name == name).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# =============================================================================
# Validation
# =============================================================================


def test_form_errors_are_reported_together(settings):
    errors = svc.validate_question_form("Too short", "<p><br></p>", [], settings)

    assert errors == {
        "title": "Title must be at least 10 characters",
        "content": "Description is required",
        "tags": "At least one tag is required",
    }


def test_content_length_ignores_markup(settings):
    content = "<p><strong>short</strong></p>" + "<br>" * 20

    errors = svc.validate_question_form("A long enough title", content, ["css"], settings)

    assert errors == {"content": "Description must be at least 20 characters"}


def test_blank_title_is_required(settings):
    errors = svc.validate_question_form("     ", CONTENT, ["css"], settings)

    assert errors == {"title": "Title is required"}


def test_too_many_tags(settings):
    errors = svc.validate_question_form(
        "A long enough title", CONTENT, ["a", "b", "c", "d", "e", "f"], settings
    )

    assert errors == {"tags": "You can add at most 5 tags"}


def test_tag_names_are_normalized():
    assert svc.normalize_tag_names([" CSS", "css", "", "Flexbox "]) == ["css", "flexbox"]


# =============================================================================
# Creating questions and tags
# =============================================================================


async def test_round_trip_question(db, feed, settings, make_profile):
    author = await make_profile("author")
    await svc.resolve_tags(db, ["css"])

    question = await svc.create_question(
        db,
        feed,
        author,
        title="  How do I center a div in CSS flexbox?  ",
        content=CONTENT,
        tags=["css", "flexbox"],
        settings=settings,
    )

    assert question.title == "How do I center a div in CSS flexbox?"
    assert question.answer_count == 0
    assert question.is_answered is False
    assert question.votes == 0
    assert question.view_count == 0
    assert sorted(t.name for t in question.tags) == ["css", "flexbox"]
    links = await db.execute(
        select(func.count()).select_from(QuestionTag).where(QuestionTag.question_id == question.id)
    )
    assert links.scalar_one() == 2
    assert (await _tag(db, "css")).question_count == 1
    assert (await _tag(db, "flexbox")).question_count == 1


async def test_same_new_tag_on_two_questions_creates_one_row(db, feed, settings, make_profile):
    author = await make_profile("author")

    first = await svc.create_question(
        db, feed, author, title="First question about hooks",
        content=CONTENT, tags=["react"], settings=settings,
    )
    second = await svc.create_question(
        db, feed, author, title="Second question about hooks",
        content=CONTENT, tags=["React "], settings=settings,
    )

    rows = await db.execute(select(Tag).where(Tag.name == "react"))
    tags = rows.scalars().all()
    assert len(tags) == 1
    tag = await _tag(db, "react")
    assert tag.question_count == 2
    linked = await db.execute(select(QuestionTag.question_id).where(QuestionTag.tag_id == tag.id))
    assert set(linked.scalars().all()) == {first.id, second.id}


async def test_invalid_question_writes_nothing(db, feed, settings, make_profile):
    author = await make_profile("author")

    with pytest.raises(FormValidationError) as exc_info:
        await svc.create_question(
            db, feed, author, title="short", content=CONTENT, tags=["css"], settings=settings
        )

    assert set(exc_info.value.errors) == {"title"}
    count = await db.execute(select(func.count(Question.id)))
    assert count.scalar_one() == 0
    tags = await db.execute(select(func.count(Tag.id)))
    assert tags.scalar_one() == 0


# =============================================================================
# Answers
# =============================================================================


async def test_answer_bumps_answer_count(db, feed, make_profile, make_question):
    author = await make_profile("author")
    helper = await make_profile("helper")
    question = await make_question(author)

    answer = await svc.create_answer(db, feed, helper, question.id, "<p>Try py-spy.</p>")

    assert answer.author.username == "helper"
    count = await db.execute(select(Question.answer_count).where(Question.id == question.id))
    assert count.scalar_one() == 1


@pytest.mark.parametrize("content", ["", "   ", "<p><br></p>"])
async def test_blank_answer_is_rejected(db, feed, make_profile, make_question, content):
    author = await make_profile("author")
    question = await make_question(author)

    with pytest.raises(FormValidationError) as exc_info:
        await svc.create_answer(db, feed, author, question.id, content)

    assert exc_info.value.errors == {"content": "Please provide an answer"}


async def test_answer_to_missing_question(db, feed, make_profile):
    author = await make_profile("author")

    with pytest.raises(NotFoundError):
        await svc.create_answer(db, feed, author, uuid.uuid4(), "<p>Hello</p>")


async def _two_answers(db, feed, make_profile, make_question):
    author = await make_profile("author")
    helper = await make_profile("helper")
    question = await make_question(author)
    x = await svc.create_answer(db, feed, helper, question.id, "<p>Answer X</p>")
    y = await svc.create_answer(db, feed, helper, question.id, "<p>Answer Y</p>")
    return author, helper, question, x, y


async def _accepted_ids(db, question_id) -> set:
    result = await db.execute(
        select(Answer.id).where(Answer.question_id == question_id, Answer.is_accepted.is_(True))
    )
    return set(result.scalars().all())


async def _is_answered(db, question_id) -> bool:
    result = await db.execute(select(Question.is_answered).where(Question.id == question_id))
    return result.scalar_one()


async def test_accepting_another_answer_moves_acceptance(db, feed, make_profile, make_question):
    author, _, question, x, y = await _two_answers(db, feed, make_profile, make_question)

    await svc.accept_answer(db, feed, author, x.id)
    assert await _accepted_ids(db, question.id) == {x.id}
    assert await _is_answered(db, question.id) is True

    accepted = await svc.accept_answer(db, feed, author, y.id)
    assert accepted.is_accepted is True
    assert await _accepted_ids(db, question.id) == {y.id}


async def test_accepting_twice_toggles_off(db, feed, make_profile, make_question):
    author, _, question, x, _ = await _two_answers(db, feed, make_profile, make_question)

    await svc.accept_answer(db, feed, author, x.id)
    result = await svc.accept_answer(db, feed, author, x.id)

    assert result.is_accepted is False
    assert await _accepted_ids(db, question.id) == set()
    assert await _is_answered(db, question.id) is False


async def test_only_question_author_can_accept(db, feed, make_profile, make_question):
    _, helper, question, x, _ = await _two_answers(db, feed, make_profile, make_question)

    with pytest.raises(PermissionDeniedError):
        await svc.accept_answer(db, feed, helper, x.id)

    assert await _accepted_ids(db, question.id) == set()


# =============================================================================
# Browsing
# =============================================================================


async def _seed_feed(db, feed, settings, author):
    older = await svc.create_question(
        db, feed, author, title="Centering text vertically",
        content=CONTENT, tags=["css"], settings=settings,
    )
    newer = await svc.create_question(
        db, feed, author, title="Async generators in Python",
        content="<p>How do I close an async generator cleanly?</p>",
        tags=["python"], settings=settings,
    )
    older.created_at = newer.created_at - timedelta(hours=1)
    older.votes = 5
    await db.commit()
    return older, newer


async def test_list_questions_sorts_and_filters(db, feed, settings, make_profile):
    author = await make_profile("author")
    older, newer = await _seed_feed(db, feed, settings, author)

    items, total, pages = await svc.list_questions(db)
    assert [q.id for q in items] == [newer.id, older.id]
    assert (total, pages) == (2, 1)

    items, _, _ = await svc.list_questions(db, sort=QuestionSort.VOTES)
    assert [q.id for q in items] == [older.id, newer.id]

    items, total, _ = await svc.list_questions(db, search="GENERATOR")
    assert [q.id for q in items] == [newer.id]

    items, total, _ = await svc.list_questions(db, tag="CSS")
    assert [q.id for q in items] == [older.id]
    assert total == 1


async def test_unanswered_sort_hides_answered(db, feed, settings, make_profile):
    author = await make_profile("author")
    older, newer = await _seed_feed(db, feed, settings, author)
    newer.is_answered = True
    await db.commit()

    items, total, _ = await svc.list_questions(db, sort=QuestionSort.UNANSWERED)

    assert [q.id for q in items] == [older.id]
    assert total == 1


async def test_empty_feed_still_has_one_page(db):
    items, total, pages = await svc.list_questions(db, search="nothing matches")

    assert items == []
    assert (total, pages) == (0, 1)


async def test_pagination(db, feed, settings, make_profile):
    author = await make_profile("author")
    for i in range(3):
        await svc.create_question(
            db, feed, author, title=f"Question number {i} about pagination",
            content=CONTENT, tags=["paging"], settings=settings,
        )

    items, total, pages = await svc.list_questions(db, page=2, page_size=2)

    assert len(items) == 1
    assert (total, pages) == (3, 2)


async def test_answers_are_ordered_accepted_then_votes(db, feed, make_profile, make_question):
    author, _, question, x, y = await _two_answers(db, feed, make_profile, make_question)
    y.votes = 3
    await db.commit()

    assert [a.id for a in await svc.list_answers(db, question.id)] == [y.id, x.id]

    await svc.accept_answer(db, feed, author, x.id)
    assert [a.id for a in await svc.list_answers(db, question.id)] == [x.id, y.id]


async def test_record_view_increments(db, make_profile, make_question):
    author = await make_profile("author")
    question = await make_question(author)

    await svc.record_view(db, question.id)
    await svc.record_view(db, question.id)

    views = await db.execute(select(Question.view_count).where(Question.id == question.id))
    assert views.scalar_one() == 2


async def test_list_tags_by_popularity(db, feed, settings, make_profile):
    author = await make_profile("author")
    for title, tags in [
        ("Grid or flexbox for layout?", ["css", "layout"]),
        ("Flexbox gap not working here", ["css"]),
    ]:
        await svc.create_question(
            db, feed, author, title=title, content=CONTENT, tags=tags, settings=settings
        )

    tags = await svc.list_tags(db)

    assert [(t.name, t.question_count) for t in tags] == [("css", 2), ("layout", 1)]
    assert [t.name for t in await svc.list_tags(db, limit=1)] == ["css"]
