"""Notification inbox."""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from askhub.db.models import Notification
from askhub.services.errors import NotFoundError
from askhub.services.realtime import ChangeFeed


async def list_notifications(
    db: AsyncSession, user_id: UUID, *, unread_only: bool = False, limit: int = 50
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    result = await db.execute(stmt.order_by(Notification.created_at.desc()).limit(limit))
    return list(result.scalars().all())


async def unread_count(db: AsyncSession, user_id: UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id, Notification.is_read.is_(False)
        )
    )
    return result.scalar() or 0


async def mark_read(
    db: AsyncSession, feed: ChangeFeed, user_id: UUID, notification_id: UUID
) -> Notification:
    """Mark one of the user's notifications as read."""
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found.")
    if not notification.is_read:
        notification.is_read = True
        await db.commit()
        await feed.publish_row("UPDATE", notification)
    return notification


async def mark_all_read(db: AsyncSession, user_id: UUID) -> int:
    """Returns how many notifications changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0
