"""Notification schemas."""

from datetime import datetime
from uuid import UUID

from askhub.schemas.base import BaseSchema, IDMixin


class NotificationRead(BaseSchema, IDMixin):
    user_id: UUID
    type: str
    title: str
    content: str
    related_id: UUID | None
    is_read: bool
    created_at: datetime
