"""API routes package."""

from askhub.api.routes import (
    auth,
    chat,
    notifications,
    profiles,
    questions,
    realtime,
    votes,
)

__all__ = [
    "auth",
    "chat",
    "notifications",
    "profiles",
    "questions",
    "realtime",
    "votes",
]
