"""Order fulfillment state machine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.domain.kitchen.transitions import TERMINAL_KITCHEN_STATUSES
from orderflow_api.models.order import FulfillmentStatusEnum, KitchenStatusEnum, Order
from orderflow_api.models.redemption import RedemptionStatusEnum
from orderflow_api.repositories.interfaces import OrderRepository, RedemptionLedgerRepository
from orderflow_api.repositories.ledger import SqlAlchemyRedemptionLedgerRepository
from orderflow_api.repositories.orders import SqlAlchemyOrderRepository


class OrderStateError(RuntimeError):
    """Base exception for order state machine failures."""


class InvalidOrderTransitionError(OrderStateError):
    """Raised when a state transition violates the configured state machine."""

    def __init__(
        self, current_status: FulfillmentStatusEnum, requested_status: FulfillmentStatusEnum
    ) -> None:
        message = f"Cannot transition order from {current_status.value} to {requested_status.value}"
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class OrderNotFoundError(OrderStateError):
    """Raised when attempting to mutate a missing order."""


class TransitionReasonRequiredError(OrderStateError):
    """Raised when cancelling or refunding without a reason."""

    def __init__(self, requested_status: FulfillmentStatusEnum) -> None:
        super().__init__(f"A reason is required to mark an order {requested_status.value}")
        self.requested_status = requested_status


class PendingRedemptionsError(OrderStateError):
    """Raised when completing an order while some of its items are still unredeemed."""

    def __init__(self, pending: int) -> None:
        super().__init__(f"{pending} item(s) are still waiting to be redeemed")
        self.pending = pending


@dataclass(frozen=True, slots=True)
class TransitionOption:
    status: FulfillmentStatusEnum
    requires_reason: bool


class OrderStateMachine:
    """Manual fulfillment transitions with their timestamps and reasons."""

    _ALLOWED_TRANSITIONS: dict[FulfillmentStatusEnum, set[FulfillmentStatusEnum]] = {
        # Only payment confirmation moves an order into ready.
        FulfillmentStatusEnum.WAITING_PAYMENT: {FulfillmentStatusEnum.CANCELLED},
        FulfillmentStatusEnum.READY: {
            FulfillmentStatusEnum.COMPLETED,
            FulfillmentStatusEnum.CANCELLED,
            FulfillmentStatusEnum.REFUNDED,
        },
        FulfillmentStatusEnum.COMPLETED: {
            FulfillmentStatusEnum.CANCELLED,
            FulfillmentStatusEnum.REFUNDED,
        },
        FulfillmentStatusEnum.CANCELLED: set(),
        FulfillmentStatusEnum.REFUNDED: set(),
    }

    _REASON_REQUIRED = frozenset({FulfillmentStatusEnum.CANCELLED, FulfillmentStatusEnum.REFUNDED})

    def __init__(
        self,
        session: AsyncSession,
        *,
        orders: OrderRepository | None = None,
        ledger: RedemptionLedgerRepository | None = None,
    ) -> None:
        self._session = session
        self._orders = orders or SqlAlchemyOrderRepository(session)
        self._ledger = ledger or SqlAlchemyRedemptionLedgerRepository(session)

    @classmethod
    def allowed_transitions(cls, status: FulfillmentStatusEnum) -> list[TransitionOption]:
        return [
            TransitionOption(status=target, requires_reason=target in cls._REASON_REQUIRED)
            for target in sorted(cls._ALLOWED_TRANSITIONS.get(status, set()), key=lambda item: item.value)
        ]

    async def transition(
        self,
        order_id: UUID,
        target_status: FulfillmentStatusEnum,
        *,
        reason: str | None = None,
        staff_name: str | None = None,
    ) -> Order:
        order = await self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        current = order.status
        if target_status not in self._ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidOrderTransitionError(current, target_status)

        reason = (reason or "").strip() or None
        if target_status in self._REASON_REQUIRED and reason is None:
            raise TransitionReasonRequiredError(target_status)

        now = datetime.now(timezone.utc)
        if target_status == FulfillmentStatusEnum.COMPLETED:
            entries = await self._ledger.list_for_order(order.id)
            pending = sum(1 for entry in entries if entry.status != RedemptionStatusEnum.COMPLETED)
            if pending:
                raise PendingRedemptionsError(pending)
            order.completed_at = now
        elif target_status == FulfillmentStatusEnum.CANCELLED:
            order.cancelled_at = now
            order.cancellation_reason = reason
            if order.fnbstatus not in TERMINAL_KITCHEN_STATUSES:
                if order.kitchen_status == KitchenStatusEnum.PREPARING:
                    order.preparation_ended_at = now
                order.fnbstatus = KitchenStatusEnum.CANCELLED
                order.fnbstatus_updated_at = now
        elif target_status == FulfillmentStatusEnum.REFUNDED:
            order.refunded_at = now
            order.refund_reason = reason

        order.status = target_status
        if staff_name:
            order.staff_name_last_action = staff_name
        await self._session.commit()

        logger.info(
            "Order status changed",
            order_id=str(order.id),
            from_status=current.value,
            to_status=target_status.value,
            staff_name=staff_name,
        )
        return order


__all__ = [
    "InvalidOrderTransitionError",
    "OrderNotFoundError",
    "OrderStateError",
    "OrderStateMachine",
    "PendingRedemptionsError",
    "TransitionOption",
    "TransitionReasonRequiredError",
]
