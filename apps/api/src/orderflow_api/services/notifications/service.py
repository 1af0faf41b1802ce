"""Customer notifications recorded as rows the customer app subscribes to."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.core.settings import settings
from orderflow_api.domain.orders.collection import collection_number, render_ready_message
from orderflow_api.models.notification import Notification, NotificationTypeEnum
from orderflow_api.models.order import Order
from orderflow_api.repositories.interfaces import NotificationRepository
from orderflow_api.repositories.notifications import SqlAlchemyNotificationRepository

ORDER_READY_TITLE = "Order Ready"


class NotificationDeliveryError(RuntimeError):
    """Raised when a notification cannot be recorded for its recipient."""


@dataclass
class NotificationEvent:
    """Representation of a notification that was recorded."""

    user_id: UUID
    notification_type: str
    title: str
    message: str
    metadata: dict[str, Any]


class NotificationService:
    """Write notification rows; the caller owns the transaction."""

    def __init__(
        self,
        db_session: AsyncSession,
        repository: NotificationRepository | None = None,
    ) -> None:
        self._db = db_session
        self._repository = repository or SqlAlchemyNotificationRepository(db_session)
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        return self._events

    async def send_order_ready(self, order: Order) -> Notification:
        """Record the ready-for-collection notice for the order's customer (flushed, not committed)."""

        if order.user_id is None:
            raise NotificationDeliveryError(
                f"Order {order.order_number} has no customer to notify"
            )
        outlet = order.outlet_name or settings.default_outlet_name
        message = render_ready_message(order.order_number, outlet)
        notification = Notification(
            user_id=order.user_id,
            notification_type=NotificationTypeEnum.ORDER_READY.value,
            title=ORDER_READY_TITLE,
            message=message,
            order_id=order.id,
        )
        try:
            await self._repository.add(notification)
        except SQLAlchemyError as exc:
            logger.exception("Ready notification insert failed", order_id=str(order.id))
            raise NotificationDeliveryError("Failed to send notification to customer") from exc

        self._events.append(
            NotificationEvent(
                user_id=order.user_id,
                notification_type=NotificationTypeEnum.ORDER_READY.value,
                title=ORDER_READY_TITLE,
                message=message,
                metadata={
                    "order_id": str(order.id),
                    "collection_number": collection_number(order.order_number),
                },
            )
        )
        logger.info(
            "Ready notification recorded",
            order_id=str(order.id),
            collection_number=collection_number(order.order_number),
        )
        return notification

    async def list_for_user(self, user_id: UUID, *, order_id: UUID | None = None) -> list[Notification]:
        return await self._repository.list_for_user(user_id, order_id=order_id)


__all__ = [
    "NotificationDeliveryError",
    "NotificationEvent",
    "NotificationService",
    "ORDER_READY_TITLE",
]
