"""In-process change feed for the tables the boards watch.

Writes made through an ORM session are staged on ``session.info`` while the unit of work runs and
are handed to the feed only once the transaction commits; a rollback discards them. Subscribers
therefore never see uncommitted or rolled back rows, and rows of one table arrive in commit order.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from orderflow_api.core.settings import settings

TRACKED_TABLES = frozenset(
    {"orders", "order_item_redemptions", "kitchen_item_tracking", "notifications"}
)

_STAGED_KEY = "orderflow.staged_changes"


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChannelStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


class ChangeFeedUnavailableError(RuntimeError):
    """Raised when subscribing while the feed is marked unavailable."""


@dataclass(slots=True)
class ChangeEvent:
    table: str
    event_type: ChangeEventType
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)
    committed_at: datetime | None = None
    sequence: int = 0

    @property
    def row(self) -> dict[str, Any]:
        """The row the event is about: ``new`` unless the row was deleted."""

        return self.old if self.event_type == ChangeEventType.DELETE else self.new

    def as_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "eventType": self.event_type.value,
            "new": dict(self.new),
            "old": dict(self.old),
            "committed_at": self.committed_at.isoformat() if self.committed_at else None,
            "sequence": self.sequence,
        }


@dataclass(frozen=True, slots=True)
class ChangeBinding:
    """One table (plus column equality filters) a subscription listens to."""

    table: str
    filters: Mapping[str, Any] = field(default_factory=dict)
    events: frozenset[str] = frozenset({"*"})

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if "*" not in self.events and change.event_type.value not in self.events:
            return False
        row = change.row
        for column, expected in self.filters.items():
            if expected is None:
                continue
            if str(row.get(column)) != str(expected):
                return False
        return True


_CLOSED = object()


class Subscription:
    """Bounded queue of matching events; closing it ends iteration with a recorded status."""

    def __init__(self, name: str, bindings: Sequence[ChangeBinding], queue_size: int) -> None:
        self.name = name
        self.bindings = tuple(bindings)
        self.close_status: ChannelStatus | None = None
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size + 1)
        self._capacity = queue_size

    @property
    def closed(self) -> bool:
        return self.close_status is not None

    def matches(self, change: ChangeEvent) -> bool:
        return any(binding.matches(change) for binding in self.bindings)

    def deliver(self, change: ChangeEvent) -> bool:
        if self.closed:
            return False
        if self._queue.qsize() >= self._capacity:
            logger.warning("Change feed subscriber fell behind", subscription=self.name)
            self.close(ChannelStatus.TIMED_OUT)
            return False
        self._queue.put_nowait(change)
        return True

    def close(self, status: ChannelStatus = ChannelStatus.CLOSED) -> None:
        if self.closed:
            return
        self.close_status = status
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def next_event(self, timeout: float | None = None) -> ChangeEvent | None:
        """Wait for the next event; ``None`` on timeout, ``StopAsyncIteration`` once closed."""

        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item


class ChangeFeed:
    """Fan committed changes out to subscriptions whose bindings match."""

    def __init__(self, *, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or settings.realtime_queue_size
        self._subscriptions: list[Subscription] = []
        self._sequence = itertools.count(1)
        self._available = True

    @property
    def available(self) -> bool:
        return self._available

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    def set_available(self, available: bool) -> None:
        """Toggle availability; going down errors every open subscription."""

        self._available = available
        if available:
            return
        for subscription in list(self._subscriptions):
            subscription.close(ChannelStatus.CHANNEL_ERROR)
        self._subscriptions.clear()
        logger.warning("Change feed marked unavailable")

    def subscribe(self, bindings: Iterable[ChangeBinding], *, name: str = "anonymous") -> Subscription:
        if not self._available:
            raise ChangeFeedUnavailableError("Change feed is unavailable")
        bindings = tuple(bindings)
        if not bindings:
            raise ValueError("A subscription needs at least one table binding")
        subscription = Subscription(name, bindings, self._queue_size)
        self._subscriptions.append(subscription)
        logger.debug(
            "Change feed subscription opened",
            subscription=name,
            tables=[binding.table for binding in bindings],
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        subscription.close(ChannelStatus.CLOSED)

    def publish(self, changes: Iterable[ChangeEvent]) -> int:
        """Number and deliver ``changes`` in order; returns how many deliveries were made."""

        delivered = 0
        committed_at = datetime.now(timezone.utc)
        for change in changes:
            change.sequence = next(self._sequence)
            if change.committed_at is None:
                change.committed_at = committed_at
            for subscription in list(self._subscriptions):
                if subscription.closed:
                    self._subscriptions.remove(subscription)
                    continue
                if subscription.matches(change) and subscription.deliver(change):
                    delivered += 1
        return delivered

    def reset(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close(ChannelStatus.CLOSED)
        self._subscriptions.clear()
        self._available = True


_FEED = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    return _FEED


def _json_value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def row_snapshot(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _json_value(value) for key, value in values.items()}


def _tracked_table(instance: Any) -> str | None:
    table = getattr(instance, "__tablename__", None)
    return table if table in TRACKED_TABLES else None


def instance_values(instance: Any) -> dict[str, Any]:
    """Loaded column values of a mapped instance, read without triggering any load."""

    state = inspect(instance)
    return {
        attr.key: state.dict[attr.key]
        for attr in state.mapper.column_attrs
        if attr.key in state.dict
    }


def _previous_values(instance: Any) -> dict[str, Any]:
    state = inspect(instance)
    values: dict[str, Any] = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            values[attr.key] = history.deleted[0]
        elif history.unchanged:
            values[attr.key] = history.unchanged[0]
        elif attr.key in state.dict:
            values[attr.key] = state.dict[attr.key]
    return values


def stage_change(
    session: Any,
    table: str,
    event_type: ChangeEventType,
    *,
    new: Mapping[str, Any] | None = None,
    old: Mapping[str, Any] | None = None,
) -> None:
    """Queue a change on ``session`` (sync or async) for publication after commit."""

    staged = session.info.setdefault(_STAGED_KEY, [])
    staged.append(
        ChangeEvent(
            table=table,
            event_type=event_type,
            new=row_snapshot(new or {}),
            old=row_snapshot(old or {}),
        )
    )


@event.listens_for(Session, "after_flush")
def _stage_flushed_changes(session: Session, flush_context: Any) -> None:
    for instance in session.new:
        table = _tracked_table(instance)
        if table:
            stage_change(session, table, ChangeEventType.INSERT, new=instance_values(instance))
    for instance in session.dirty:
        table = _tracked_table(instance)
        if table and session.is_modified(instance, include_collections=False):
            stage_change(
                session,
                table,
                ChangeEventType.UPDATE,
                new=instance_values(instance),
                old=_previous_values(instance),
            )
    for instance in session.deleted:
        table = _tracked_table(instance)
        if table:
            stage_change(session, table, ChangeEventType.DELETE, old=instance_values(instance))


@event.listens_for(Session, "after_commit")
def _publish_committed_changes(session: Session) -> None:
    staged = session.info.pop(_STAGED_KEY, None)
    if staged:
        get_change_feed().publish(staged)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back_changes(session: Session) -> None:
    session.info.pop(_STAGED_KEY, None)


__all__ = [
    "ChangeBinding",
    "ChangeEvent",
    "ChangeEventType",
    "ChangeFeed",
    "ChangeFeedUnavailableError",
    "ChannelStatus",
    "Subscription",
    "TRACKED_TABLES",
    "get_change_feed",
    "instance_values",
    "row_snapshot",
    "stage_change",
]
