"""Kitchen display endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, NoReturn
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.api.dependencies.security import require_staff_api_key
from orderflow_api.api.errors import raise_backend, raise_http
from orderflow_api.db.session import get_session
from orderflow_api.models.order import KitchenStatusEnum, Order
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.services.kitchen import (
    AlreadyNotifiedError,
    CancellationConfirmationRequiredError,
    CancellationRequestError,
    DateFilter,
    InvalidKitchenTransitionError,
    KitchenBoardError,
    KitchenBoardService,
    KitchenItemNotFoundError,
    OrderNotReadyError,
    StatusFilter,
)
from orderflow_api.services.notifications import NotificationDeliveryError
from orderflow_api.services.orders import OrderNotFoundError


router = APIRouter(prefix="/kitchen", tags=["Kitchen"], dependencies=[Depends(require_staff_api_key)])


class KitchenBoardResponse(BaseModel):
    tickets: list[dict[str, Any]]
    counts: dict[str, int]


class KitchenTicketStatus(BaseModel):
    order_id: UUID
    order_number: str
    kitchen_status: str
    ready_episode: int
    notified_episode: int


class ItemToggleRequest(BaseModel):
    staff_id: UUID | None = None


class ItemToggleResponse(BaseModel):
    order_id: UUID
    item_index: int
    is_prepared: bool
    prepared_at: datetime | None = None


class KitchenStatusRequest(BaseModel):
    status: KitchenStatusEnum
    staff_name: str | None = None


class CancellationRequestBody(BaseModel):
    staff_name: str | None = None


class CancellationRequestResponse(BaseModel):
    order_id: UUID
    token: str
    expires_at: datetime


class CancellationConfirmBody(BaseModel):
    token: str = Field(..., min_length=1, description="Token returned by cancel-request")
    staff_name: str | None = None


class NotifyRequest(BaseModel):
    staff_name: str | None = None


class NotifyResponse(BaseModel):
    notification_id: UUID
    order_id: UUID
    user_id: UUID
    title: str | None = None
    message: str


def _ticket_status(order: Order) -> KitchenTicketStatus:
    return KitchenTicketStatus(
        order_id=order.id,
        order_number=order.order_number,
        kitchen_status=order.kitchen_status.value,
        ready_episode=order.ready_episode or 0,
        notified_episode=order.notified_episode or 0,
    )


def _raise_kitchen_error(exc: Exception) -> NoReturn:
    if isinstance(exc, (OrderNotFoundError, KitchenItemNotFoundError)):
        raise_http(status.HTTP_404_NOT_FOUND, exc)
    if isinstance(exc, (InvalidKitchenTransitionError, AlreadyNotifiedError, OrderNotReadyError)):
        raise_http(status.HTTP_409_CONFLICT, exc)
    if isinstance(exc, CancellationConfirmationRequiredError):
        raise_http(status.HTTP_400_BAD_REQUEST, exc, hint="Use cancel-request then cancel-confirm")
    if isinstance(exc, CancellationRequestError):
        raise_http(status.HTTP_400_BAD_REQUEST, exc, hint="Request the cancellation again")
    if isinstance(exc, NotificationDeliveryError):
        raise_http(status.HTTP_409_CONFLICT, exc)
    if isinstance(exc, BackendRejectionError):
        raise_backend(exc)
    raise_http(status.HTTP_409_CONFLICT, exc)


_KITCHEN_ERRORS = (KitchenBoardError, OrderNotFoundError, NotificationDeliveryError, BackendRejectionError)


@router.get("/orders", response_model=KitchenBoardResponse)
async def list_kitchen_orders(
    outlet_id: UUID | None = Query(default=None),
    date_filter: DateFilter = Query(default=DateFilter.TODAY, alias="date"),
    status_filter: StatusFilter = Query(default=StatusFilter.ALL, alias="status"),
    session: AsyncSession = Depends(get_session),
) -> KitchenBoardResponse:
    view = await KitchenBoardService(session).list_board(
        outlet_id=outlet_id, date_filter=date_filter, status_filter=status_filter
    )
    return KitchenBoardResponse(tickets=[ticket.as_dict() for ticket in view.tickets], counts=view.counts)


@router.post("/orders/{order_id}/items/{item_index}/toggle", response_model=ItemToggleResponse)
async def toggle_item(
    order_id: UUID,
    item_index: int,
    payload: ItemToggleRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> ItemToggleResponse:
    staff_id = payload.staff_id if payload else None
    try:
        row = await KitchenBoardService(session).toggle_item_prepared(order_id, item_index, staff_id=staff_id)
    except _KITCHEN_ERRORS as exc:
        _raise_kitchen_error(exc)
    return ItemToggleResponse(
        order_id=row.order_id,
        item_index=row.item_index,
        is_prepared=row.is_prepared,
        prepared_at=row.prepared_at,
    )


@router.post("/orders/{order_id}/prepare-all", response_model=KitchenTicketStatus)
async def prepare_all(
    order_id: UUID,
    payload: ItemToggleRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> KitchenTicketStatus:
    staff_id = payload.staff_id if payload else None
    try:
        order = await KitchenBoardService(session).mark_all_prepared(order_id, staff_id=staff_id)
    except _KITCHEN_ERRORS as exc:
        _raise_kitchen_error(exc)
    return _ticket_status(order)


@router.post("/orders/{order_id}/status", response_model=KitchenTicketStatus)
async def update_kitchen_status(
    order_id: UUID,
    payload: KitchenStatusRequest,
    session: AsyncSession = Depends(get_session),
) -> KitchenTicketStatus:
    try:
        order = await KitchenBoardService(session).update_status(
            order_id, payload.status, staff_name=payload.staff_name
        )
    except _KITCHEN_ERRORS as exc:
        _raise_kitchen_error(exc)
    return _ticket_status(order)


@router.post(
    "/orders/{order_id}/cancel-request",
    response_model=CancellationRequestResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_cancellation(
    order_id: UUID,
    payload: CancellationRequestBody | None = None,
    session: AsyncSession = Depends(get_session),
) -> CancellationRequestResponse:
    staff_name = payload.staff_name if payload else None
    try:
        request = await KitchenBoardService(session).request_cancellation(order_id, staff_name=staff_name)
    except _KITCHEN_ERRORS as exc:
        _raise_kitchen_error(exc)
    return CancellationRequestResponse(
        order_id=request.order_id, token=request.token, expires_at=request.expires_at
    )


@router.post("/orders/{order_id}/cancel-confirm", response_model=KitchenTicketStatus)
async def confirm_cancellation(
    order_id: UUID,
    payload: CancellationConfirmBody,
    session: AsyncSession = Depends(get_session),
) -> KitchenTicketStatus:
    try:
        order = await KitchenBoardService(session).confirm_cancellation(
            order_id, payload.token, staff_name=payload.staff_name
        )
    except _KITCHEN_ERRORS as exc:
        _raise_kitchen_error(exc)
    return _ticket_status(order)


@router.post("/orders/{order_id}/notify", response_model=NotifyResponse, status_code=status.HTTP_201_CREATED)
async def notify_customer(
    order_id: UUID,
    payload: NotifyRequest | None = None,
    session: AsyncSession = Depends(get_session),
) -> NotifyResponse:
    staff_name = payload.staff_name if payload else None
    try:
        notification = await KitchenBoardService(session).notify_customer(order_id, staff_name=staff_name)
    except _KITCHEN_ERRORS as exc:
        _raise_kitchen_error(exc)
    return NotifyResponse(
        notification_id=notification.id,
        order_id=notification.order_id,
        user_id=notification.user_id,
        title=notification.title,
        message=notification.message,
    )
