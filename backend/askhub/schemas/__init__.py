"""Pydantic schemas for API request/response validation."""

from askhub.schemas.auth import (
    SessionRead,
    SignInRequest,
    SignUpRequest,
    TokenResponse,
)
from askhub.schemas.chat import (
    ConversationListResponse,
    ConversationRead,
    MessageCreate,
    MessageRead,
    StartChatRequest,
    StartChatResponse,
)
from askhub.schemas.notifications import NotificationRead
from askhub.schemas.profiles import (
    ProfileCreate,
    ProfileRead,
    ProfileSummary,
    ProfileUpdate,
    UserStats,
)
from askhub.schemas.questions import (
    AnswerCreate,
    AnswerRead,
    QuestionCreate,
    QuestionDetail,
    QuestionListResponse,
    QuestionRead,
    TagRead,
)
from askhub.schemas.votes import VoteRequest, VoteResult

__all__ = [
    # Auth
    "SessionRead",
    "SignInRequest",
    "SignUpRequest",
    "TokenResponse",
    # Chat
    "ConversationListResponse",
    "ConversationRead",
    "MessageCreate",
    "MessageRead",
    "StartChatRequest",
    "StartChatResponse",
    # Notifications
    "NotificationRead",
    # Profiles
    "ProfileCreate",
    "ProfileRead",
    "ProfileSummary",
    "ProfileUpdate",
    "UserStats",
    # Questions
    "AnswerCreate",
    "AnswerRead",
    "QuestionCreate",
    "QuestionDetail",
    "QuestionListResponse",
    "QuestionRead",
    "TagRead",
    # Votes
    "VoteRequest",
    "VoteResult",
]
