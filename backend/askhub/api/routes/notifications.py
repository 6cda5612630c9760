"""
Notification Routes

Endpoints:
- GET /notifications - The caller's notifications, newest first
- POST /notifications/{notification_id}/read - Mark one as read
- POST /notifications/read-all - Mark all as read
"""

from uuid import UUID

from fastapi import APIRouter

from askhub.api.deps import CurrentProfile, DbSession, Feed
from askhub.schemas.notifications import NotificationRead
from askhub.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=list[NotificationRead])
async def list_notifications(
    profile: CurrentProfile,
    db: DbSession,
    unread_only: bool = False,
) -> list[NotificationRead]:
    items = await notification_service.list_notifications(db, profile.id, unread_only=unread_only)
    return [NotificationRead.model_validate(n) for n in items]


@router.post("/read-all")
async def mark_all_read(profile: CurrentProfile, db: DbSession) -> dict[str, int]:
    updated = await notification_service.mark_all_read(db, profile.id)
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: UUID,
    profile: CurrentProfile,
    db: DbSession,
    feed: Feed,
) -> NotificationRead:
    notification = await notification_service.mark_read(db, feed, profile.id, notification_id)
    return NotificationRead.model_validate(notification)
