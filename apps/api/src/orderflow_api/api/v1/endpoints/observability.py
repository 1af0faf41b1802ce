"""Observability endpoints for the redemption and kitchen flows."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from orderflow_api.api.dependencies.security import require_staff_api_key
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.services.realtime import get_change_feed


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/redemption",
    dependencies=[Depends(require_staff_api_key)],
    summary="Redemption observability snapshot",
)
async def get_redemption_snapshot() -> dict[str, object]:
    """Counters for passcode attempts, redemptions, kitchen actions and realtime links."""
    snapshot = get_redemption_store().snapshot().as_dict()
    feed = get_change_feed()
    snapshot["change_feed"] = {
        "available": feed.available,
        "subscriptions": len(feed.subscriptions),
    }
    return snapshot
