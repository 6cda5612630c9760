"""
In-process realtime change feed.

Services publish row changes after they commit; subscribers register for a
table, optionally narrowed by a ``column=eq.value`` predicate and an event
kind, and receive each matching change through an async callback. Closing a
subscription stops delivery immediately, including for events already being
fanned out.
"""

import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Literal

from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect

from askhub.db.base import Base

logger = logging.getLogger(__name__)

ChangeKind = Literal["INSERT", "UPDATE", "DELETE"]
EVENT_KINDS = ("INSERT", "UPDATE", "DELETE", "*")


@dataclass(frozen=True)
class ChangeEvent:
    """A committed change to one row."""

    table: str
    event: ChangeKind
    record: dict[str, Any]


@dataclass(frozen=True)
class RowFilter:
    """Equality predicate on one column, written as ``column=eq.value``."""

    column: str
    value: str

    @classmethod
    def parse(cls, expression: str) -> "RowFilter":
        column, sep, rest = expression.partition("=")
        op, dot, value = rest.partition(".")
        if not sep or not dot or op != "eq" or not column or not value:
            raise ValueError(f"Unsupported filter expression: {expression!r}")
        return cls(column=column.strip(), value=value.strip())

    def matches(self, record: dict[str, Any]) -> bool:
        if self.column not in record:
            return False
        return str(record[self.column]) == self.value


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class Subscription:
    """Handle returned by ChangeFeed.subscribe."""

    def __init__(
        self,
        feed: "ChangeFeed",
        table: str,
        callback: ChangeCallback,
        row_filter: RowFilter | None = None,
        event: str = "*",
    ):
        if event not in EVENT_KINDS:
            raise ValueError(f"Unsupported event kind: {event!r}")
        self._feed = feed
        self.table = table
        self.callback = callback
        self.row_filter = row_filter
        self.event = event
        self.active = True

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event != "*" and change.event != self.event:
            return False
        return self.row_filter is None or self.row_filter.matches(change.record)

    async def deliver(self, change: ChangeEvent) -> None:
        if not self.active:
            return
        await self.callback(change)

    def close(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._discard(self)


class ChangeFeed:
    """Fan-out of committed row changes to subscribers."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        filter: str | None = None,
        event: str = "*",
    ) -> Subscription:
        row_filter = RowFilter.parse(filter) if filter else None
        subscription = Subscription(self, table, callback, row_filter, event)
        self._subscriptions[table].append(subscription)
        logger.debug("Subscribed to %s (filter=%s, event=%s)", table, filter, event)
        return subscription

    def subscriber_count(self, table: str | None = None) -> int:
        if table is not None:
            return len(self._subscriptions.get(table, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _discard(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.table)
        if subs and subscription in subs:
            subs.remove(subscription)

    async def publish(self, table: str, event: ChangeKind, record: dict[str, Any]) -> int:
        """
        Deliver a change to every matching subscriber.

        A failing subscriber is logged and skipped; it never affects the
        publisher or the other subscribers. Returns the number of deliveries.
        """
        change = ChangeEvent(table=table, event=event, record=jsonable_encoder(record))
        delivered = 0
        for subscription in list(self._subscriptions.get(table, [])):
            if not subscription.matches(change):
                continue
            try:
                await subscription.deliver(change)
                delivered += 1
            except Exception:
                logger.exception("Realtime subscriber for %s failed", table)
        return delivered

    async def publish_row(self, event: ChangeKind, row: Base) -> int:
        """Publish an ORM row using its column values as the record."""
        return await self.publish(row.__tablename__, event, row_to_record(row))

    def close_all(self) -> None:
        for subs in list(self._subscriptions.values()):
            for subscription in list(subs):
                subscription.close()


def row_to_record(row: Base) -> dict[str, Any]:
    """Column values of an ORM instance, keyed by column name."""
    mapper = inspect(row).mapper
    return {attr.columns[0].name: getattr(row, attr.key) for attr in mapper.column_attrs}
