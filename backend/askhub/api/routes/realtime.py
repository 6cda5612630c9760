"""
Realtime WebSocket

Endpoint:
- WS /realtime?token=<jwt>

Client messages:
    {"action": "subscribe", "id": "<ref>", "table": "messages",
     "filter": "conversation_id=eq.<uuid>", "event": "INSERT"}
    {"action": "unsubscribe", "id": "<ref>"}

Server messages:
    {"type": "subscribed" | "unsubscribed", "id": "<ref>"}
    {"type": "change", "id": "<ref>", "table", "event", "record"}
    {"type": "error", "id": "<ref>", "message"}

Visibility:
- questions, answers: public
- messages: only with a conversation_id filter on a conversation the viewer is in
- conversations: only rows where the viewer is initiator or recipient
- notifications, profiles: only the viewer's own rows

Every subscription opened over a socket is closed when the socket goes away.
"""

import asyncio
import json
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from askhub.api.deps import decode_access_token, get_change_feed
from askhub.db.models import Conversation, User
from askhub.db.session import get_db
from askhub.services.realtime import ChangeEvent, ChangeFeed, RowFilter, Subscription

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

SUBSCRIBABLE_TABLES = frozenset({
    "conversations",
    "messages",
    "notifications",
    "profiles",
    "questions",
    "answers",
})

# Tables whose rows only their owner may follow, keyed to the owner column
OWNER_COLUMNS = {
    "notifications": "user_id",
    "profiles": "id",
}


class SubscriptionDenied(Exception):
    """The viewer may not follow the requested rows."""


class RealtimeSession:
    """Subscriptions belonging to one WebSocket connection."""

    def __init__(self, websocket: WebSocket, feed: ChangeFeed, viewer_id: UUID, db: AsyncSession):
        self.websocket = websocket
        self.feed = feed
        self.viewer_id = viewer_id
        self.db = db
        self.subscriptions: dict[str, Subscription] = {}
        self._send_lock = asyncio.Lock()

    async def send(self, payload: dict[str, Any]) -> None:
        async with self._send_lock:
            await self.websocket.send_json(payload)

    async def handle(self, message: dict[str, Any]) -> None:
        action = message.get("action")
        ref = str(message.get("id", ""))
        if action == "subscribe":
            await self.subscribe(ref, message)
        elif action == "unsubscribe":
            self.unsubscribe(ref)
            await self.send({"type": "unsubscribed", "id": ref})
        else:
            await self.send({"type": "error", "id": ref, "message": f"Unknown action: {action!r}"})

    async def authorize(self, table: str, filter: str | None) -> str | None:
        """Return the filter to subscribe with, or raise SubscriptionDenied."""
        row_filter = RowFilter.parse(filter) if filter else None
        viewer = str(self.viewer_id)

        owner_column = OWNER_COLUMNS.get(table)
        if owner_column is not None:
            if row_filter is not None and row_filter != RowFilter(owner_column, viewer):
                raise SubscriptionDenied(f"You can only follow your own {table}.")
            return f"{owner_column}=eq.{viewer}"

        if table == "messages":
            if row_filter is None or row_filter.column != "conversation_id":
                raise SubscriptionDenied("Messages require a conversation_id filter.")
            if not await self.is_participant(row_filter.value):
                raise SubscriptionDenied("Conversation not found.")
        return filter

    async def is_participant(self, conversation_id: str) -> bool:
        try:
            conversation_uuid = UUID(conversation_id)
        except ValueError:
            return False
        result = await self.db.execute(
            select(Conversation.id).where(
                Conversation.id == conversation_uuid,
                or_(
                    Conversation.initiator_id == self.viewer_id,
                    Conversation.recipient_id == self.viewer_id,
                ),
            )
        )
        found = result.scalar_one_or_none() is not None
        # Release the connection between checks
        await self.db.rollback()
        return found

    def can_see(self, change: ChangeEvent) -> bool:
        if change.table != "conversations":
            return True
        viewer = str(self.viewer_id)
        return viewer in (
            str(change.record.get("initiator_id")),
            str(change.record.get("recipient_id")),
        )

    async def subscribe(self, ref: str, message: dict[str, Any]) -> None:
        table = message.get("table")
        if table not in SUBSCRIBABLE_TABLES:
            await self.send({"type": "error", "id": ref, "message": f"Unknown table: {table!r}"})
            return

        async def forward(change: ChangeEvent) -> None:
            if not self.can_see(change):
                return
            await self.send({
                "type": "change",
                "id": ref,
                "table": change.table,
                "event": change.event,
                "record": change.record,
            })

        try:
            expression = await self.authorize(table, message.get("filter"))
            subscription = self.feed.subscribe(
                table,
                forward,
                filter=expression,
                event=message.get("event") or "*",
            )
        except (ValueError, SubscriptionDenied) as e:
            await self.send({"type": "error", "id": ref, "message": str(e)})
            return

        # Re-using a ref replaces the earlier subscription
        self.unsubscribe(ref)
        self.subscriptions[ref] = subscription
        await self.send({"type": "subscribed", "id": ref})

    def unsubscribe(self, ref: str) -> None:
        subscription = self.subscriptions.pop(ref, None)
        if subscription is not None:
            subscription.close()

    def close(self) -> None:
        for ref in list(self.subscriptions):
            self.unsubscribe(ref)


async def authenticate_socket(db: AsyncSession, token: str | None) -> UUID | None:
    """The user id behind a token, or None when the token or the user is gone."""
    user_id = decode_access_token(token) if token else None
    if user_id is None:
        return None
    result = await db.execute(select(User.id).where(User.id == user_id))
    found = result.scalar_one_or_none()
    await db.rollback()
    return found


@router.websocket("/realtime")
async def realtime(
    websocket: WebSocket,
    feed: ChangeFeed = Depends(get_change_feed),
    db: AsyncSession = Depends(get_db),
    token: str | None = None,
) -> None:
    user_id = await authenticate_socket(db, token)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = RealtimeSession(websocket, feed, user_id, db)
    logger.debug("Realtime connection opened for %s", user_id)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except json.JSONDecodeError:
                await session.send({"type": "error", "id": "", "message": "Invalid JSON"})
                continue
            if not isinstance(message, dict):
                await session.send({"type": "error", "id": "", "message": "Expected an object"})
                continue
            await session.handle(message)
    except WebSocketDisconnect:
        logger.debug("Realtime connection closed for %s", user_id)
    finally:
        session.close()
