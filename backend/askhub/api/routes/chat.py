"""
Chat Routes

Endpoints:
- POST /chats - Pay tokens to start a conversation
- GET /chats - The caller's conversations, most recent activity first
- GET /chats/{conversation_id} - One conversation with its messages
- POST /chats/{conversation_id}/messages - Send a message
"""

from uuid import UUID

from fastapi import APIRouter, status

from askhub.api.deps import ChatService, CurrentProfile, DbSession
from askhub.schemas.chat import (
    ConversationListResponse,
    ConversationRead,
    MessageCreate,
    MessageRead,
    StartChatRequest,
    StartChatResponse,
)
from askhub.schemas.profiles import ProfileSummary
from askhub.services.chat_service import ConversationView

router = APIRouter(prefix="/chats", tags=["chats"])


def _conversation_read(view: ConversationView) -> ConversationRead:
    conversation = view.conversation
    messages = [MessageRead.model_validate(m) for m in conversation.messages]
    return ConversationRead(
        id=conversation.id,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
        initiator_id=conversation.initiator_id,
        recipient_id=conversation.recipient_id,
        question_id=conversation.question_id,
        tokens_charged=conversation.tokens_charged,
        initiator=ProfileSummary.model_validate(conversation.initiator),
        recipient=ProfileSummary.model_validate(conversation.recipient),
        counterpart=ProfileSummary.model_validate(view.counterpart),
        question_title=view.question_title,
        messages=messages,
        last_message=messages[-1] if messages else None,
        unread_count=view.unread_count,
    )


@router.post("", response_model=StartChatResponse, status_code=status.HTTP_201_CREATED)
async def start_chat(
    data: StartChatRequest,
    profile: CurrentProfile,
    db: DbSession,
    chat: ChatService,
) -> StartChatResponse:
    """
    Start a paid conversation.

    Error codes: validation_error (422), self_chat (400), not_found (404),
    insufficient_tokens (402), duplicate_conversation (409).
    """
    result = await chat.start_chat(
        db,
        profile,
        recipient_id=data.recipient_id,
        question_id=data.question_id,
        tokens=data.tokens,
        opening_message=data.message,
    )
    return StartChatResponse.model_validate(result)


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    profile: CurrentProfile,
    db: DbSession,
    chat: ChatService,
) -> ConversationListResponse:
    views = await chat.list_conversations(db, profile.id)
    return ConversationListResponse(
        conversations=[_conversation_read(v) for v in views],
        total=len(views),
        unread_total=sum(v.unread_count for v in views),
    )


@router.get("/{conversation_id}", response_model=ConversationRead)
async def get_conversation(
    conversation_id: UUID,
    profile: CurrentProfile,
    db: DbSession,
    chat: ChatService,
) -> ConversationRead:
    view = await chat.get_conversation(db, profile.id, conversation_id)
    return _conversation_read(view)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: UUID,
    data: MessageCreate,
    profile: CurrentProfile,
    db: DbSession,
    chat: ChatService,
) -> MessageRead:
    message = await chat.send_message(db, profile.id, conversation_id, data.content)
    return MessageRead.model_validate(message)
