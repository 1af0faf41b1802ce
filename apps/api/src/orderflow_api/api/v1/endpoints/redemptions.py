"""Staff redemption endpoints: order checklists and single rewards."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.api.dependencies.security import require_staff_api_key
from orderflow_api.api.errors import raise_backend, raise_http
from orderflow_api.db.session import get_session
from orderflow_api.domain.redemption.redeemables import (
    EmptySelectionError,
    LedgerEntryView,
    OrderItems,
    Redeemable,
    RewardKind,
    SingleReward,
)
from orderflow_api.models.audit import RedemptionTypeEnum
from orderflow_api.repositories.errors import BackendRejectionError
from orderflow_api.services.redemption import (
    InvalidSelectionError,
    RedeemableNotFoundError,
    RedemptionConflictError,
    RedemptionNotAllowedError,
    RedemptionOutcome,
    RedemptionService,
)
from orderflow_api.services.staff import StaffIdentityGate, VerificationContext

from .staff import StaffIdentityResponse, ensure_verified, identity_response


router = APIRouter(tags=["Redemptions"], dependencies=[Depends(require_staff_api_key)])


class LedgerEntryResponse(BaseModel):
    item_index: int
    product_name: str
    quantity: int
    redeemed_quantity: int
    status: str
    redeemed_at: datetime | None = None


class OrderLedgerResponse(BaseModel):
    order_id: UUID
    order_number: str
    status: str
    payment_status: str
    state: str
    redeemed_count: int
    total_count: int
    entries: list[LedgerEntryResponse]


class OrderRedemptionRequest(BaseModel):
    passcode: str = Field(..., description="Staff passcode, verified fresh for this redemption")
    item_indices: list[int] = Field(default_factory=list, description="Line item indices to hand over")
    outlet_id: UUID | None = Field(default=None, description="Outlet where the items are handed over")


class RewardRedemptionRequest(BaseModel):
    passcode: str
    outlet_id: UUID | None = None


class RedemptionResponse(BaseModel):
    redeemable_id: UUID
    state: str
    order_completed: bool
    redeemed_items: list[dict[str, Any]]
    entries: list[LedgerEntryResponse]
    staff: StaffIdentityResponse


def _entry_response(entry: LedgerEntryView) -> LedgerEntryResponse:
    return LedgerEntryResponse(
        item_index=entry.item_index,
        product_name=entry.product_name,
        quantity=entry.quantity,
        redeemed_quantity=entry.redeemed_quantity,
        status=entry.status.value,
        redeemed_at=entry.redeemed_at,
    )


async def _verify_and_confirm(
    session: AsyncSession,
    *,
    passcode: str,
    redeemable: Redeemable,
    context: VerificationContext,
) -> RedemptionResponse:
    identity = ensure_verified(await StaffIdentityGate(session).verify(passcode, context))
    service = RedemptionService(session)
    try:
        outcome: RedemptionOutcome = await service.confirm(
            redeemable, identity, outlet_id=context.outlet_id
        )
    except EmptySelectionError as exc:
        raise_http(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)
    except RedeemableNotFoundError as exc:
        raise_http(status.HTTP_404_NOT_FOUND, exc)
    except RedemptionConflictError as exc:
        raise_http(status.HTTP_409_CONFLICT, exc, hint="Reload the checklist")
    except RedemptionNotAllowedError as exc:
        raise_http(status.HTTP_409_CONFLICT, exc)
    except InvalidSelectionError as exc:
        raise_http(status.HTTP_400_BAD_REQUEST, exc)
    except BackendRejectionError as exc:
        raise_backend(exc)

    redeemable_id = redeemable.order_id if isinstance(redeemable, OrderItems) else redeemable.reward_id
    return RedemptionResponse(
        redeemable_id=redeemable_id,
        state=outcome.state.value,
        order_completed=outcome.order_completed,
        redeemed_items=outcome.redeemed_items,
        entries=[_entry_response(entry) for entry in outcome.entries],
        staff=identity_response(identity),
    )


@router.get("/orders/{order_id}/redemptions", response_model=OrderLedgerResponse)
async def get_order_redemptions(
    order_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> OrderLedgerResponse:
    service = RedemptionService(session)
    try:
        ledger = await service.get_order_ledger(order_id)
    except RedeemableNotFoundError as exc:
        raise_http(status.HTTP_404_NOT_FOUND, exc)
    except BackendRejectionError as exc:
        raise_backend(exc)

    return OrderLedgerResponse(
        order_id=ledger.order.id,
        order_number=ledger.order.order_number,
        status=ledger.order.status.value,
        payment_status=ledger.order.payment_status.value,
        state=ledger.state.value,
        redeemed_count=ledger.redeemed_count,
        total_count=len(ledger.entries),
        entries=[_entry_response(entry) for entry in ledger.entries],
    )


@router.post("/orders/{order_id}/redemptions", response_model=RedemptionResponse)
async def redeem_order_items(
    order_id: UUID,
    payload: OrderRedemptionRequest,
    session: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    return await _verify_and_confirm(
        session,
        passcode=payload.passcode,
        redeemable=OrderItems(order_id=order_id, item_indices=tuple(payload.item_indices)),
        context=VerificationContext(
            outlet_id=payload.outlet_id,
            redemption_type=RedemptionTypeEnum.ORDER,
            redemption_id=order_id,
        ),
    )


@router.post("/rewards/{kind}/{reward_id}/redeem", response_model=RedemptionResponse)
async def redeem_reward(
    kind: RewardKind,
    reward_id: UUID,
    payload: RewardRedemptionRequest,
    session: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    return await _verify_and_confirm(
        session,
        passcode=payload.passcode,
        redeemable=SingleReward(kind=kind, reward_id=reward_id),
        context=VerificationContext(
            outlet_id=payload.outlet_id,
            redemption_type=RedemptionTypeEnum(kind.value),
            redemption_id=reward_id,
        ),
    )
