"""Staff passcode verification."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.api.dependencies.security import require_staff_api_key
from orderflow_api.api.errors import error_body
from orderflow_api.db.session import get_session
from orderflow_api.models.audit import RedemptionTypeEnum
from orderflow_api.services.staff import (
    PasscodeVerification,
    StaffIdentity,
    StaffIdentityGate,
    VerificationContext,
)


router = APIRouter(prefix="/staff", tags=["Staff"], dependencies=[Depends(require_staff_api_key)])


class PasscodeVerifyRequest(BaseModel):
    passcode: str = Field(..., description="Digits entered on the staff keypad")
    outlet_id: UUID | None = Field(default=None, description="Outlet the device belongs to")
    redemption_type: RedemptionTypeEnum = Field(default=RedemptionTypeEnum.ORDER)
    redemption_id: UUID | None = Field(default=None, description="Order or reward being redeemed")
    user_id: UUID | None = Field(default=None, description="Customer owning the redeemable")


class StaffIdentityResponse(BaseModel):
    staff_id: UUID
    staff_name: str
    is_superadmin: bool
    role: str
    outlet_id: UUID | None = None


class PasscodeVerifyResponse(BaseModel):
    success: bool
    staff: StaffIdentityResponse | None = None


def identity_response(identity: StaffIdentity) -> StaffIdentityResponse:
    return StaffIdentityResponse(
        staff_id=identity.staff_id,
        staff_name=identity.staff_name,
        is_superadmin=identity.is_superadmin,
        role=identity.role,
        outlet_id=identity.outlet_id,
    )


def ensure_verified(result: PasscodeVerification | None) -> StaffIdentity:
    """Incomplete passcodes are a 422; a rejected passcode is a 401 the keypad recovers from."""

    if result is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=error_body("Passcode must be exactly 4 digits"),
        )
    if not result.success or result.identity is None:
        headers = None
        if result.retry_after_seconds:
            headers = {"Retry-After": str(result.retry_after_seconds)}
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_body(result.error or "Invalid passcode"),
            headers=headers,
        )
    return result.identity


@router.post("/passcode/verify", response_model=PasscodeVerifyResponse)
async def verify_passcode(
    payload: PasscodeVerifyRequest,
    session: AsyncSession = Depends(get_session),
) -> PasscodeVerifyResponse:
    gate = StaffIdentityGate(session)
    result = await gate.verify(
        payload.passcode,
        VerificationContext(
            outlet_id=payload.outlet_id,
            redemption_type=payload.redemption_type,
            redemption_id=payload.redemption_id,
            user_id=payload.user_id,
        ),
    )
    identity = ensure_verified(result)
    return PasscodeVerifyResponse(success=True, staff=identity_response(identity))
