"""
Question, Answer and Tag Routes

Endpoints:
- GET /questions - Paged feed with search, sort and tag filter
- POST /questions - Ask a question
- GET /questions/{question_id} - Question page (counts a view)
- POST /questions/{question_id}/answers - Answer a question
- POST /answers/{answer_id}/accept - Toggle the accepted answer
- GET /tags - Tags by popularity
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from askhub.api.deps import AppSettings, CurrentProfile, DbSession, Feed
from askhub.db.models import QuestionSort
from askhub.schemas.questions import (
    AnswerCreate,
    AnswerRead,
    QuestionCreate,
    QuestionDetail,
    QuestionListResponse,
    QuestionRead,
    TagRead,
)
from askhub.services import questions as question_service

router = APIRouter(prefix="/questions", tags=["questions"])
answers_router = APIRouter(prefix="/answers", tags=["answers"])
tags_router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=QuestionListResponse)
async def list_questions(
    db: DbSession,
    settings: AppSettings,
    search: str | None = Query(None, max_length=200),
    sort: QuestionSort = QuestionSort.NEWEST,
    tag: str | None = Query(None, max_length=50),
    page: int = Query(1, ge=1),
) -> QuestionListResponse:
    page_size = settings.questions_page_size
    items, total, total_pages = await question_service.list_questions(
        db, search=search, sort=sort, tag=tag, page=page, page_size=page_size
    )
    return QuestionListResponse(
        items=[QuestionRead.model_validate(q) for q in items],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.post("", response_model=QuestionRead, status_code=status.HTTP_201_CREATED)
async def create_question(
    data: QuestionCreate,
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
    settings: AppSettings,
) -> QuestionRead:
    question = await question_service.create_question(
        db,
        feed,
        profile,
        title=data.title,
        content=data.content,
        tags=data.tags,
        settings=settings,
    )
    return QuestionRead.model_validate(question)


@router.get("/{question_id}", response_model=QuestionDetail)
async def get_question(question_id: UUID, db: DbSession) -> QuestionDetail:
    """Question page. The view counter is bumped before the page is read."""
    await question_service.record_view(db, question_id)
    question = await question_service.get_question_or_404(db, question_id)
    answers = await question_service.list_answers(db, question_id)

    return QuestionDetail(
        **QuestionRead.model_validate(question).model_dump(),
        answers=[AnswerRead.model_validate(a) for a in answers],
    )


@router.post(
    "/{question_id}/answers",
    response_model=AnswerRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_answer(
    question_id: UUID,
    data: AnswerCreate,
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
) -> AnswerRead:
    answer = await question_service.create_answer(db, feed, profile, question_id, data.content)
    return AnswerRead.model_validate(answer)


@answers_router.post("/{answer_id}/accept", response_model=AnswerRead)
async def accept_answer(
    answer_id: UUID,
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
) -> AnswerRead:
    """Accept the answer, or un-accept it if it is already accepted."""
    answer = await question_service.accept_answer(db, feed, profile, answer_id)
    return AnswerRead.model_validate(answer)


@tags_router.get("", response_model=list[TagRead])
async def list_tags(
    db: DbSession,
    limit: int | None = Query(None, ge=1, le=100),
) -> list[TagRead]:
    tags = await question_service.list_tags(db, limit)
    return [TagRead.model_validate(t) for t in tags]
