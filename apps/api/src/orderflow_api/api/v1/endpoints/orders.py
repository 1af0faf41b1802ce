"""Order management API endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.api.dependencies.security import require_staff_api_key
from orderflow_api.api.errors import raise_backend, raise_http
from orderflow_api.db.session import get_session
from orderflow_api.models.order import FulfillmentStatusEnum, Order
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.services.boards import load_console
from orderflow_api.services.orders import (
    DeletionNotConfirmedError,
    InvalidOrderTransitionError,
    OrderDraft,
    OrderNotFoundError,
    OrderService,
    OrderStateError,
    OrderStateMachine,
    OrderValidationError,
    PaymentStateError,
    PendingRedemptionsError,
    TransitionReasonRequiredError,
)


router = APIRouter(prefix="/orders", tags=["orders"], dependencies=[Depends(require_staff_api_key)])


class OrderCreate(BaseModel):
    """Request model for creating orders."""
    order_number: str = Field(..., min_length=1, description="Human readable order number")
    items: List[Dict[str, Any]] = Field(..., min_length=1, description="Line items, kept in order")
    total_amount: Decimal = Field(..., ge=0, description="Amount actually paid")
    subtotal: Decimal = Field(Decimal("0"), ge=0)
    gross_sales: Optional[Decimal] = Field(None, ge=0, description="Pre-discount amount")
    voucher_discount: Decimal = Field(Decimal("0"), ge=0)
    tier_discount: Decimal = Field(Decimal("0"), ge=0)
    bonus_discount: Decimal = Field(Decimal("0"), ge=0)
    user_id: Optional[UUID] = Field(None, description="Customer placing the order")
    outlet_id: Optional[UUID] = None
    outlet_name: Optional[str] = None


class OrderResponse(BaseModel):
    """Response model for orders."""
    id: UUID
    order_number: str
    user_id: Optional[UUID]
    outlet_id: Optional[UUID]
    outlet_name: Optional[str]
    payment_status: str
    status: str
    kitchen_status: str
    total_amount: float
    qr_code: Optional[str]
    payment_error: Optional[str] = None
    staff_name_last_action: Optional[str] = None
    paid_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    allowed_transitions: List[Dict[str, Any]] = Field(default_factory=list)


class OrderDetailResponse(OrderResponse):
    items: List[Dict[str, Any]]
    redemption_state: str
    redemptions: List[Dict[str, Any]]
    financials: Dict[str, Any]


class PaymentConfirmRequest(BaseModel):
    qr_code: Optional[str] = Field(None, description="QR code issued by the payment provider")


class PaymentFailRequest(BaseModel):
    error: Optional[str] = Field(None, description="Provider error message")


class OrderStatusUpdate(BaseModel):
    status: FulfillmentStatusEnum
    reason: Optional[str] = Field(None, description="Required when cancelling or refunding")
    staff_name: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    order_ids: List[UUID] = Field(..., min_length=1)
    confirm: bool = Field(False, description="Must be true to delete")


class DeleteResponse(BaseModel):
    deleted: int


class ConsoleResponse(BaseModel):
    orders: List[Dict[str, Any]]
    stats: Dict[str, Any]


def _order_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        outlet_id=order.outlet_id,
        outlet_name=order.outlet_name,
        payment_status=order.payment_status.value,
        status=order.status.value,
        kitchen_status=order.kitchen_status.value,
        total_amount=float(order.total_amount or 0),
        qr_code=order.qr_code,
        payment_error=order.payment_error,
        staff_name_last_action=order.staff_name_last_action,
        paid_at=order.paid_at,
        completed_at=order.completed_at,
        cancelled_at=order.cancelled_at,
        cancellation_reason=order.cancellation_reason,
        refunded_at=order.refunded_at,
        refund_reason=order.refund_reason,
        created_at=order.created_at,
        allowed_transitions=[
            {"status": option.status.value, "requires_reason": option.requires_reason}
            for option in OrderStateMachine.allowed_transitions(order.status)
        ],
    )


def _raise_order_error(exc: Exception) -> NoReturn:
    if isinstance(exc, OrderNotFoundError):
        raise_http(status.HTTP_404_NOT_FOUND, exc)
    if isinstance(exc, (InvalidOrderTransitionError, PaymentStateError, PendingRedemptionsError)):
        raise_http(status.HTTP_409_CONFLICT, exc)
    if isinstance(exc, (OrderValidationError, TransitionReasonRequiredError, DeletionNotConfirmedError)):
        raise_http(status.HTTP_400_BAD_REQUEST, exc)
    if isinstance(exc, BackendRejectionError):
        raise_backend(exc)
    raise_http(status.HTTP_400_BAD_REQUEST, exc)


_ORDER_ERRORS = (OrderStateError, BackendRejectionError)


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    session: AsyncSession = Depends(get_session),
) -> OrderResponse:
    draft = OrderDraft(**payload.model_dump())
    try:
        order = await OrderService(session).create_order(draft)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return _order_response(order)


@router.get("/", response_model=ConsoleResponse)
async def list_orders(
    limit: Optional[int] = Query(None, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> ConsoleResponse:
    """CMS console listing: every order, paid or not, with redemption progress."""
    view = await load_console(session, limit=limit)
    return ConsoleResponse(orders=[row.as_dict() for row in view.rows], stats=view.stats.as_dict())


@router.post("/bulk-delete", response_model=DeleteResponse)
async def bulk_delete_orders(
    payload: BulkDeleteRequest,
    session: AsyncSession = Depends(get_session),
) -> DeleteResponse:
    try:
        deleted = await OrderService(session).delete_orders(payload.order_ids, confirm=payload.confirm)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return DeleteResponse(deleted=deleted)


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> OrderDetailResponse:
    try:
        detail = await OrderService(session).get_detail(order_id)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    base = _order_response(detail.order)
    return OrderDetailResponse(
        **base.model_dump(),
        items=detail.items,
        redemption_state=detail.redemption_state.value,
        redemptions=[
            {
                "item_index": entry.item_index,
                "product_name": entry.product_name,
                "quantity": entry.quantity,
                "redeemed_quantity": entry.redeemed_quantity,
                "status": entry.status.value,
                "redeemed_at": entry.redeemed_at.isoformat() if entry.redeemed_at else None,
            }
            for entry in detail.entries
        ],
        financials=detail.financials.as_dict(),
    )


@router.get("/{order_id}/financials")
async def get_order_financials(
    order_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> dict[str, object]:
    try:
        breakdown = await OrderService(session).get_financials(order_id)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return breakdown.as_dict()


@router.post("/{order_id}/payment/confirm", response_model=OrderResponse)
async def confirm_payment(
    order_id: UUID,
    payload: Optional[PaymentConfirmRequest] = None,
    session: AsyncSession = Depends(get_session),
) -> OrderResponse:
    qr_code = payload.qr_code if payload else None
    try:
        order = await OrderService(session).confirm_payment(order_id, qr_code=qr_code)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return _order_response(order)


@router.post("/{order_id}/payment/fail", response_model=OrderResponse)
async def fail_payment(
    order_id: UUID,
    payload: Optional[PaymentFailRequest] = None,
    session: AsyncSession = Depends(get_session),
) -> OrderResponse:
    error = payload.error if payload else None
    try:
        order = await OrderService(session).fail_payment(order_id, error=error)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return _order_response(order)


@router.post("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    session: AsyncSession = Depends(get_session),
) -> OrderResponse:
    try:
        order = await OrderStateMachine(session).transition(
            order_id,
            payload.status,
            reason=payload.reason,
            staff_name=payload.staff_name,
        )
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return _order_response(order)


@router.delete("/{order_id}", response_model=DeleteResponse)
async def delete_order(
    order_id: UUID,
    confirm: bool = Query(False, description="Must be true to delete"),
    session: AsyncSession = Depends(get_session),
) -> DeleteResponse:
    try:
        deleted = await OrderService(session).delete_order(order_id, confirm=confirm)
    except _ORDER_ERRORS as exc:
        _raise_order_error(exc)
    return DeleteResponse(deleted=deleted)
