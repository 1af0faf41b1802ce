"""Kitchen display session: the board, its alerts and the client-side notify guard."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Protocol
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow_api.domain.orders.collection import collection_number
from orderflow_api.models.notification import Notification
from orderflow_api.models.order import KitchenStatusEnum, Order, PaymentStatusEnum
from orderflow_api.services.kitchen.exceptions import (
    AlreadyNotifiedError,
    KitchenBoardError,
    OrderNotReadyError,
)
from orderflow_api.services.kitchen.service import (
    DateFilter,
    KitchenBoardService,
    KitchenBoardView,
    KitchenTicket,
    StatusFilter,
)
from orderflow_api.services.realtime.change_feed import ChangeEvent, ChangeEventType, ChangeFeed
from orderflow_api.services.realtime.channel import RealtimeChannel

from .base import LiveBoard, Sleeper

NEW_ORDER_SOUND = "new_order"
NOTIFY_SUCCESS_SOUND = "notify_success"


class AlertSink(Protocol):
    def play(self, sound: str) -> None:
        ...


class RecordingAlertSink:
    """Alert sink that remembers what it played."""

    def __init__(self) -> None:
        self.played: list[str] = []

    def play(self, sound: str) -> None:
        self.played.append(sound)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _became_paid(change: ChangeEvent) -> bool:
    paid = PaymentStatusEnum.PAID.value
    if change.new.get("payment_status") != paid:
        return False
    if change.event_type == ChangeEventType.INSERT:
        return True
    return change.event_type == ChangeEventType.UPDATE and change.old.get("payment_status") != paid


class KitchenBoardSession(LiveBoard):
    name = "kitchen"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        outlet_id: UUID | None = None,
        alerts: AlertSink | None = None,
        date_filter: DateFilter = DateFilter.TODAY,
        status_filter: StatusFilter = StatusFilter.ALL,
        feed: ChangeFeed | None = None,
        sleep: Sleeper = asyncio.sleep,
        max_retries: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.outlet_id = outlet_id
        self.alerts: AlertSink = alerts or RecordingAlertSink()
        self.date_filter = date_filter
        self.status_filter = status_filter
        self._clock = clock
        self.view = KitchenBoardView(tickets=[])
        self.tickets: dict[UUID, KitchenTicket] = {}
        self.notified: set[tuple[UUID, int]] = set()
        self.notifying: set[UUID] = set()
        self.new_order_banner: str | None = None
        super().__init__(session_factory, feed=feed, sleep=sleep, max_retries=max_retries)

    def _bind(self, channel: RealtimeChannel) -> None:
        channel.on("orders", self._on_order_change, filters={"outlet_id": self.outlet_id})
        channel.on("kitchen_item_tracking", self._on_change)

    def _service(self, session: AsyncSession) -> KitchenBoardService:
        return KitchenBoardService(session, clock=self._clock)

    async def _load(self, session: AsyncSession) -> None:
        view = await self._service(session).list_board(
            outlet_id=self.outlet_id,
            date_filter=self.date_filter,
            status_filter=self.status_filter,
        )
        self.view = view
        self.tickets = {ticket.order_id: ticket for ticket in view.tickets}

    async def _on_order_change(self, change: ChangeEvent) -> None:
        if _became_paid(change):
            number = collection_number(change.new.get("order_number"))
            self.new_order_banner = f"New order #{number}"
            self.alerts.play(NEW_ORDER_SOUND)
            logger.info("New kitchen order", board=self.name, collection_number=number)
        await self.resync()

    async def apply_filters(
        self, *, date_filter: DateFilter | None = None, status_filter: StatusFilter | None = None
    ) -> None:
        if date_filter is not None:
            self.date_filter = date_filter
        if status_filter is not None:
            self.status_filter = status_filter
        await self.resync()

    def can_notify(self, order_id: UUID) -> bool:
        ticket = self.tickets.get(order_id)
        if ticket is None or not ticket.can_notify:
            return False
        if order_id in self.notifying:
            return False
        return (order_id, ticket.ready_episode) not in self.notified

    async def toggle_item(self, order_id: UUID, item_index: int, *, staff_id: UUID | None = None) -> None:
        async with self._session_factory() as session:
            await self._service(session).toggle_item_prepared(order_id, item_index, staff_id=staff_id)
        await self.resync()

    async def mark_all_prepared(self, order_id: UUID, *, staff_id: UUID | None = None) -> Order:
        async with self._session_factory() as session:
            order = await self._service(session).mark_all_prepared(order_id, staff_id=staff_id)
        await self.resync()
        return order

    async def update_status(self, order_id: UUID, status: KitchenStatusEnum) -> Order:
        async with self._session_factory() as session:
            order = await self._service(session).update_status(order_id, status)
        await self.resync()
        return order

    async def notify(self, order_id: UUID) -> Notification:
        """Notify the customer once per ready episode; repeats are refused before any write."""

        ticket = self.tickets.get(order_id)
        if ticket is None:
            raise KitchenBoardError(f"Order {order_id} is not on the board")
        if ticket.kitchen_status != KitchenStatusEnum.READY:
            raise OrderNotReadyError(f"Order {ticket.order_number} is not ready for collection")
        if not self.can_notify(order_id):
            raise AlreadyNotifiedError(ticket.order_number)

        self.notifying.add(order_id)
        try:
            async with self._session_factory() as session:
                notification = await self._service(session).notify_customer(order_id)
        finally:
            self.notifying.discard(order_id)

        self.notified.add((order_id, ticket.ready_episode))
        self.alerts.play(NOTIFY_SUCCESS_SOUND)
        await self.resync()
        return notification


__all__ = [
    "AlertSink",
    "KitchenBoardSession",
    "NEW_ORDER_SOUND",
    "NOTIFY_SUCCESS_SOUND",
    "RecordingAlertSink",
]
