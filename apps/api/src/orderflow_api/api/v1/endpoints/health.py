from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow_api.db.session import get_session
from orderflow_api.services.realtime import get_change_feed


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "error", "degraded"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.warning("Readiness database check failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail=str(error))
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    feed = get_change_feed()
    if feed.available:
        components["change_feed"] = ComponentStatus(
            status="ready", detail=f"{len(feed.subscriptions)} subscriptions"
        )
    else:
        components["change_feed"] = ComponentStatus(
            status="degraded", detail="Change feed unavailable; boards fall back to manual refresh"
        )
        if status == "ready":
            status = "degraded"

    return ReadinessPayload(status=status, components=components)
