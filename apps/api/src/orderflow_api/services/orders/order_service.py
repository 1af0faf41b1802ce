"""Order lifecycle outside the kitchen: creation, payment, detail and deletion."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.domain.orders.financials import (
    FinancialBreakdown,
    breakdown_for_order,
    formatted_modifiers,
    item_final_price,
    to_decimal,
)
from orderflow_api.domain.redemption.redeemables import (
    LedgerEntryView,
    OrderRedemptionState,
    derive_order_state,
)
from orderflow_api.models.order import (
    FulfillmentStatusEnum,
    KitchenStatusEnum,
    Order,
    PaymentStatusEnum,
)
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.repositories.interfaces import (
    KitchenTrackingRepository,
    OrderRepository,
    RedemptionLedgerRepository,
)
from orderflow_api.repositories.kitchen import SqlAlchemyKitchenTrackingRepository
from orderflow_api.repositories.ledger import SqlAlchemyRedemptionLedgerRepository
from orderflow_api.repositories.orders import SqlAlchemyOrderRepository
from orderflow_api.services.redemption.service import build_ledger_entries, entry_view

from .state_machine import OrderNotFoundError, OrderStateError

_MONEY_FIELDS = ("subtotal", "voucher_discount", "tier_discount", "bonus_discount", "total_amount")


class OrderValidationError(OrderStateError):
    """Raised when an order draft is malformed."""


class PaymentStateError(OrderStateError):
    """Raised when a payment outcome does not fit the order's payment status."""


class DeletionNotConfirmedError(OrderStateError):
    """Raised when deleting without the explicit confirmation flag."""

    def __init__(self) -> None:
        super().__init__("Deleting orders requires explicit confirmation")


@dataclass(slots=True)
class OrderDraft:
    order_number: str
    items: list[dict[str, Any]]
    total_amount: Decimal
    subtotal: Decimal = Decimal("0")
    gross_sales: Decimal | None = None
    voucher_discount: Decimal = Decimal("0")
    tier_discount: Decimal = Decimal("0")
    bonus_discount: Decimal = Decimal("0")
    user_id: UUID | None = None
    outlet_id: UUID | None = None
    outlet_name: str | None = None


@dataclass(slots=True)
class OrderDetail:
    order: Order
    entries: list[LedgerEntryView]
    redemption_state: OrderRedemptionState
    financials: FinancialBreakdown
    items: list[dict[str, Any]] = field(default_factory=list)


def issue_qr_code(order_number: str) -> str:
    return f"{order_number}-{secrets.token_hex(4).upper()}"


def validate_draft(draft: OrderDraft) -> None:
    if not draft.order_number or not draft.order_number.strip():
        raise OrderValidationError("Order number is required")
    if not draft.items:
        raise OrderValidationError("An order needs at least one line item")
    for index, item in enumerate(draft.items):
        if not isinstance(item, Mapping):
            raise OrderValidationError(f"Line item {index} is not an object")
        quantity = item.get("quantity", 1)
        if not isinstance(quantity, int) or quantity < 1:
            raise OrderValidationError(f"Line item {index} has an invalid quantity")
    for name in ("voucher_discount", "tier_discount", "bonus_discount", "total_amount", "subtotal"):
        if to_decimal(getattr(draft, name)) < 0:
            raise OrderValidationError(f"{name} cannot be negative")
    if draft.gross_sales is not None and to_decimal(draft.gross_sales) < 0:
        raise OrderValidationError("gross_sales cannot be negative")


def describe_items(order: Order) -> list[dict[str, Any]]:
    described = []
    for index, item in enumerate(order.items or []):
        described.append(
            {
                "item_index": index,
                "product_id": item.get("product_id"),
                "product_name": item.get("product_name"),
                "quantity": item.get("quantity", 1),
                "final_price": float(item_final_price(item)),
                "modifiers": formatted_modifiers(item),
            }
        )
    return described


class OrderService:
    """Order creation, payment outcome, detail views and confirmed deletion."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        orders: OrderRepository | None = None,
        ledger: RedemptionLedgerRepository | None = None,
        kitchen: KitchenTrackingRepository | None = None,
    ) -> None:
        self._session = session
        self._orders = orders or SqlAlchemyOrderRepository(session)
        self._ledger = ledger or SqlAlchemyRedemptionLedgerRepository(session)
        self._kitchen = kitchen or SqlAlchemyKitchenTrackingRepository(session)

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

    async def create_order(self, draft: OrderDraft) -> Order:
        validate_draft(draft)
        existing = await self._session.scalar(
            select(Order.id).where(Order.order_number == draft.order_number)
        )
        if existing is not None:
            raise OrderValidationError(f"Order number {draft.order_number} already exists")

        order = Order(
            order_number=draft.order_number.strip(),
            user_id=draft.user_id,
            outlet_id=draft.outlet_id,
            outlet_name=draft.outlet_name,
            items=[dict(item) for item in draft.items],
            gross_sales=draft.gross_sales,
            payment_status=PaymentStatusEnum.PENDING,
            status=FulfillmentStatusEnum.WAITING_PAYMENT,
            **{name: to_decimal(getattr(draft, name)) for name in _MONEY_FIELDS},
        )
        try:
            await self._orders.add(order)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise BackendRejectionError.from_sqlalchemy(exc, action="create the order") from exc
        await self._commit("create the order")
        logger.info("Order created", order_id=str(order.id), order_number=order.order_number)
        return order

    async def confirm_payment(self, order_id: UUID, *, qr_code: str | None = None) -> Order:
        """Mark the order paid once: issue its QR code, open the kitchen ticket, seed the ledger."""

        order = await self._require(order_id)
        if order.payment_status == PaymentStatusEnum.PAID:
            raise PaymentStateError(f"Order {order.order_number} is already paid")
        if order.status != FulfillmentStatusEnum.WAITING_PAYMENT:
            raise PaymentStateError(
                f"Order {order.order_number} cannot be paid while {order.status.value}"
            )

        now = datetime.now(timezone.utc)
        order.payment_status = PaymentStatusEnum.PAID
        order.payment_error = None
        order.paid_at = now
        order.status = FulfillmentStatusEnum.READY
        order.qr_code = qr_code or order.qr_code or issue_qr_code(order.order_number)
        order.fnbstatus = KitchenStatusEnum.PREPARING
        order.fnbstatus_updated_at = now
        order.preparation_ended_at = None

        existing = {entry.item_index for entry in await self._ledger.list_for_order(order.id)}
        entries = build_ledger_entries(order, existing)
        if entries:
            await self._ledger.add_entries(entries)
        await self._commit("confirm the payment")
        logger.info(
            "Payment confirmed",
            order_id=str(order.id),
            order_number=order.order_number,
            ledger_entries=len(entries),
        )
        return order

    async def fail_payment(self, order_id: UUID, *, error: str | None = None) -> Order:
        order = await self._require(order_id)
        if order.payment_status != PaymentStatusEnum.PENDING:
            raise PaymentStateError(
                f"Order {order.order_number} payment is already {order.payment_status.value}"
            )
        order.payment_status = PaymentStatusEnum.FAILED
        order.payment_error = error
        await self._commit("record the payment failure")
        logger.info("Payment failed", order_id=str(order.id), error=error)
        return order

    async def get_detail(self, order_id: UUID) -> OrderDetail:
        order = await self._require(order_id)
        entries = [entry_view(entry) for entry in await self._ledger.list_for_order(order.id)]
        return OrderDetail(
            order=order,
            entries=entries,
            redemption_state=derive_order_state(entry.status for entry in entries),
            financials=breakdown_for_order(order),
            items=describe_items(order),
        )

    async def get_financials(self, order_id: UUID) -> FinancialBreakdown:
        return breakdown_for_order(await self._require(order_id))

    async def delete_order(self, order_id: UUID, *, confirm: bool = False) -> int:
        return await self.delete_orders([order_id], confirm=confirm)

    async def delete_orders(self, order_ids: Sequence[UUID], *, confirm: bool = False) -> int:
        """Delete orders with their ledger and kitchen rows in one transaction."""

        if not confirm:
            raise DeletionNotConfirmedError()
        ids = list(dict.fromkeys(order_ids))
        if not ids:
            return 0
        found = await self._orders.get_many(ids)
        if not found:
            raise OrderNotFoundError("No matching orders to delete")
        found_ids = [order.id for order in found]
        try:
            ledger_rows = await self._ledger.delete_for_orders(found_ids)
            kitchen_rows = await self._kitchen.delete_for_orders(found_ids)
            deleted = await self._orders.delete_many(found_ids)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise BackendRejectionError.from_sqlalchemy(exc, action="delete the orders") from exc
        await self._commit("delete the orders")
        logger.info(
            "Orders deleted",
            count=deleted,
            ledger_rows=ledger_rows,
            kitchen_rows=kitchen_rows,
        )
        return deleted


__all__ = [
    "DeletionNotConfirmedError",
    "OrderDetail",
    "OrderDraft",
    "OrderService",
    "OrderValidationError",
    "PaymentStateError",
    "describe_items",
    "issue_qr_code",
    "validate_draft",
]
