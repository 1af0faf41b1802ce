"""Customer QR wallet."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.api.dependencies.session import require_customer_session
from orderflow_api.db.session import get_session
from orderflow_api.services.boards import load_wallet


router = APIRouter(prefix="/customers", tags=["Customers"])


class WalletResponse(BaseModel):
    user_id: UUID
    codes: list[dict[str, Any]]


@router.get("/{user_id}/qr-codes", response_model=WalletResponse)
async def list_qr_codes(
    customer_id: UUID = Depends(require_customer_session),
    session: AsyncSession = Depends(get_session),
) -> WalletResponse:
    """Orders with a QR code plus unused gift and stamp rewards; unpaid orders never appear."""

    codes = await load_wallet(session, customer_id)
    return WalletResponse(user_id=customer_id, codes=[code.as_dict() for code in codes])
