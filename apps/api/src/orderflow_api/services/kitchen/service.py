"""Kitchen board: item preparation, ticket status and the ready notification."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.core.settings import settings
from orderflow_api.domain.kitchen.transitions import TERMINAL_KITCHEN_STATUSES, can_transition
from orderflow_api.domain.kitchen.waiting import WaitingTime, waiting_time
from orderflow_api.domain.orders.collection import collection_number
from orderflow_api.domain.orders.financials import formatted_modifiers
from orderflow_api.models.kitchen import KitchenItemTracking
from orderflow_api.models.notification import Notification
from orderflow_api.models.order import KitchenStatusEnum, Order
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.repositories.interfaces import KitchenTrackingRepository, OrderRepository
from orderflow_api.repositories.kitchen import SqlAlchemyKitchenTrackingRepository
from orderflow_api.repositories.orders import SqlAlchemyOrderRepository
from orderflow_api.services.notifications.service import NotificationDeliveryError, NotificationService
from orderflow_api.services.orders.state_machine import OrderNotFoundError

from .cancellations import CancellationRegistry, CancellationRequest, get_cancellation_registry
from .exceptions import (
    AlreadyNotifiedError,
    CancellationConfirmationRequiredError,
    CancellationRequestError,
    InvalidKitchenTransitionError,
    KitchenBoardError,
    KitchenItemNotFoundError,
    OrderNotReadyError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DateFilter(str, Enum):
    TODAY = "today"
    ALL = "all"


class StatusFilter(str, Enum):
    ALL = "all"
    PREPARING = "preparing"
    READY = "ready"
    COLLECTED = "collected"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TicketItem:
    item_index: int
    product_name: str
    quantity: int
    modifiers: list[str]
    is_prepared: bool


@dataclass(slots=True)
class KitchenTicket:
    order_id: UUID
    order_number: str
    collection_number: str
    outlet_name: str | None
    kitchen_status: KitchenStatusEnum
    created_at: datetime
    waiting: WaitingTime
    items: list[TicketItem]
    ready_episode: int
    notified_episode: int

    @property
    def prepared_count(self) -> int:
        return sum(1 for item in self.items if item.is_prepared)

    @property
    def notified(self) -> bool:
        return self.ready_episode > 0 and self.notified_episode >= self.ready_episode

    @property
    def can_notify(self) -> bool:
        return self.kitchen_status == KitchenStatusEnum.READY and not self.notified

    def as_dict(self) -> dict[str, Any]:
        return {
            "order_id": str(self.order_id),
            "order_number": self.order_number,
            "collection_number": self.collection_number,
            "outlet_name": self.outlet_name,
            "kitchen_status": self.kitchen_status.value,
            "created_at": self.created_at.isoformat(),
            "waiting": {
                "elapsed_seconds": self.waiting.elapsed_seconds,
                "label": self.waiting.label,
                "severity": self.waiting.severity.value,
                "frozen": self.waiting.frozen,
            },
            "items": [
                {
                    "item_index": item.item_index,
                    "product_name": item.product_name,
                    "quantity": item.quantity,
                    "modifiers": item.modifiers,
                    "is_prepared": item.is_prepared,
                }
                for item in self.items
            ],
            "prepared_count": self.prepared_count,
            "ready_episode": self.ready_episode,
            "notified": self.notified,
            "can_notify": self.can_notify,
        }


@dataclass(slots=True)
class KitchenBoardView:
    tickets: list[KitchenTicket]
    counts: dict[str, int] = field(default_factory=dict)


def _matches_status(status: KitchenStatusEnum, status_filter: StatusFilter) -> bool:
    if status_filter == StatusFilter.ALL:
        return status != KitchenStatusEnum.CANCELLED
    return status.value == status_filter.value


def build_ticket(
    order: Order,
    tracking: dict[int, KitchenItemTracking],
    *,
    now: datetime,
    thresholds: Sequence[int],
) -> KitchenTicket:
    items = []
    for index, item in enumerate(order.items or []):
        row = tracking.get(index)
        items.append(
            TicketItem(
                item_index=index,
                product_name=item.get("product_name") or "Item",
                quantity=int(item.get("quantity") or 1),
                modifiers=formatted_modifiers(item),
                is_prepared=bool(row.is_prepared) if row is not None else False,
            )
        )
    return KitchenTicket(
        order_id=order.id,
        order_number=order.order_number,
        collection_number=collection_number(order.order_number),
        outlet_name=order.outlet_name,
        kitchen_status=order.kitchen_status,
        created_at=order.created_at,
        waiting=waiting_time(
            order.created_at,
            order.fnbstatus,
            now=now,
            stopped_at=order.preparation_ended_at,
            thresholds=thresholds,
        ),
        items=items,
        ready_episode=order.ready_episode or 0,
        notified_episode=order.notified_episode or 0,
    )


class KitchenBoardService:
    """Kitchen-side mutations and the board listing.

    Plain status changes apply immediately. Cancellation is the exception: it needs a
    ``request_cancellation`` followed by a separate ``confirm_cancellation``.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        orders: OrderRepository | None = None,
        tracking: KitchenTrackingRepository | None = None,
        notifications: NotificationService | None = None,
        cancellations: CancellationRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._orders = orders or SqlAlchemyOrderRepository(session)
        self._tracking = tracking or SqlAlchemyKitchenTrackingRepository(session)
        self._notifications = notifications or NotificationService(session)
        self._cancellations = cancellations or get_cancellation_registry()
        self._clock = clock

    async def _require(self, order_id: UUID) -> Order:
        order = await self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    async def _commit(self, action: str) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise BackendRejectionError.from_sqlalchemy(exc, action=action) from exc

    def _set_status(self, order: Order, target: KitchenStatusEnum, now: datetime) -> None:
        current = order.kitchen_status
        if not can_transition(current, target):
            raise InvalidKitchenTransitionError(current, target)
        if target == KitchenStatusEnum.PREPARING:
            order.preparation_ended_at = None
        elif current == KitchenStatusEnum.PREPARING:
            order.preparation_ended_at = now
        order.fnbstatus = target
        order.fnbstatus_updated_at = now
        if target == KitchenStatusEnum.READY:
            order.ready_episode = (order.ready_episode or 0) + 1

    async def toggle_item_prepared(
        self, order_id: UUID, item_index: int, *, staff_id: UUID | None = None
    ) -> KitchenItemTracking:
        order = await self._require(order_id)
        if item_index < 0 or item_index >= len(order.items or []):
            raise KitchenItemNotFoundError(item_index)
        if order.kitchen_status in TERMINAL_KITCHEN_STATUSES:
            raise KitchenBoardError(
                f"Order {order.order_number} is {order.kitchen_status.value} and can no longer change"
            )
        current = await self._tracking.get(order.id, item_index)
        prepared = not (current.is_prepared if current is not None else False)
        row = await self._tracking.set_prepared(
            order.id, item_index, prepared=prepared, staff_id=staff_id, at=self._clock()
        )
        await self._commit("update the item")
        get_redemption_store().record_kitchen_action("item_toggled")
        logger.info(
            "Kitchen item toggled",
            order_id=str(order.id),
            item_index=item_index,
            prepared=prepared,
        )
        return row

    async def mark_all_prepared(self, order_id: UUID, *, staff_id: UUID | None = None) -> Order:
        """Mark every item prepared and move the ticket to ``ready``."""

        order = await self._require(order_id)
        now = self._clock()
        if order.kitchen_status != KitchenStatusEnum.READY:
            self._set_status(order, KitchenStatusEnum.READY, now)
        for index in range(len(order.items or [])):
            await self._tracking.set_prepared(order.id, index, prepared=True, staff_id=staff_id, at=now)
        await self._commit("mark all items prepared")
        get_redemption_store().record_kitchen_action("all_prepared")
        logger.info("Kitchen ticket prepared", order_id=str(order.id), ready_episode=order.ready_episode)
        return order

    async def update_status(
        self,
        order_id: UUID,
        target: KitchenStatusEnum,
        *,
        staff_name: str | None = None,
    ) -> Order:
        if target == KitchenStatusEnum.CANCELLED:
            raise CancellationConfirmationRequiredError()
        order = await self._require(order_id)
        previous = order.kitchen_status
        self._set_status(order, target, self._clock())
        if staff_name:
            order.staff_name_last_action = staff_name
        await self._commit("update the kitchen status")
        get_redemption_store().record_kitchen_action(f"status:{target.value}")
        logger.info(
            "Kitchen status changed",
            order_id=str(order.id),
            from_status=previous.value,
            to_status=target.value,
        )
        return order

    async def request_cancellation(
        self, order_id: UUID, *, staff_name: str | None = None
    ) -> CancellationRequest:
        order = await self._require(order_id)
        if not can_transition(order.kitchen_status, KitchenStatusEnum.CANCELLED):
            raise InvalidKitchenTransitionError(order.kitchen_status, KitchenStatusEnum.CANCELLED)
        request = self._cancellations.issue(order.id, requested_by=staff_name, now=self._clock())
        logger.info("Kitchen cancellation requested", order_id=str(order.id))
        return request

    async def confirm_cancellation(
        self,
        order_id: UUID,
        token: str,
        *,
        staff_name: str | None = None,
    ) -> Order:
        order = await self._require(order_id)
        if self._cancellations.consume(order.id, token, now=self._clock()) is None:
            raise CancellationRequestError("Cancellation was not requested or has expired")
        self._set_status(order, KitchenStatusEnum.CANCELLED, self._clock())
        if staff_name:
            order.staff_name_last_action = staff_name
        await self._commit("cancel the kitchen ticket")
        get_redemption_store().record_kitchen_action("cancelled")
        logger.info("Kitchen ticket cancelled", order_id=str(order.id))
        return order

    async def notify_customer(self, order_id: UUID, *, staff_name: str | None = None) -> Notification:
        """Record one ready notification per ready episode; the order is marked in the same commit."""

        order = await self._require(order_id)
        if order.kitchen_status != KitchenStatusEnum.READY:
            raise OrderNotReadyError(f"Order {order.order_number} is not ready for collection")
        if (order.notified_episode or 0) >= (order.ready_episode or 0):
            raise AlreadyNotifiedError(order.order_number)

        store = get_redemption_store()
        try:
            notification = await self._notifications.send_order_ready(order)
            order.notified_episode = order.ready_episode
            if staff_name:
                order.staff_name_last_action = staff_name
            await self._session.commit()
        except NotificationDeliveryError:
            await self._session.rollback()
            store.record_kitchen_action("notify_failed")
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            store.record_kitchen_action("notify_failed")
            logger.exception("Ready notification commit failed", order_id=str(order_id))
            raise NotificationDeliveryError("Failed to send notification to customer") from exc

        store.record_kitchen_action("notified")
        logger.info(
            "Customer notified",
            order_id=str(order.id),
            ready_episode=order.ready_episode,
        )
        return notification

    async def list_board(
        self,
        *,
        outlet_id: UUID | None = None,
        date_filter: DateFilter = DateFilter.TODAY,
        status_filter: StatusFilter = StatusFilter.ALL,
        now: datetime | None = None,
    ) -> KitchenBoardView:
        """Paid orders newest first, with per-status counts over the date window."""

        now = now or self._clock()
        created_after = None
        if date_filter == DateFilter.TODAY:
            created_after = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        orders = await self._orders.list_orders(
            outlet_id=outlet_id, paid_only=True, created_after=created_after
        )
        counts = {status.value: 0 for status in KitchenStatusEnum}
        for order in orders:
            counts[order.kitchen_status.value] += 1
        counts["all"] = sum(
            value for key, value in counts.items() if key != KitchenStatusEnum.CANCELLED.value
        )

        visible = [order for order in orders if _matches_status(order.kitchen_status, status_filter)]
        tracking = await self._tracking.list_for_orders(order.id for order in visible)
        thresholds = settings.kitchen_waiting_thresholds_minutes
        tickets = [
            build_ticket(order, tracking.get(order.id, {}), now=now, thresholds=thresholds)
            for order in visible
        ]
        return KitchenBoardView(tickets=tickets, counts=counts)


__all__ = [
    "DateFilter",
    "KitchenBoardService",
    "KitchenBoardView",
    "KitchenTicket",
    "StatusFilter",
    "TicketItem",
    "build_ticket",
]
