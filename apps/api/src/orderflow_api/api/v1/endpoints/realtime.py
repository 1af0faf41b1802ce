"""Server-sent events over the change feed."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from loguru import logger

from orderflow_api.api.dependencies.security import require_staff_api_key
from orderflow_api.api.errors import error_body
from orderflow_api.core.settings import settings
from orderflow_api.observability.redemption import get_redemption_store
from orderflow_api.services.realtime import (
    ChangeBinding,
    ChangeFeedUnavailableError,
    Subscription,
    get_change_feed,
)
from orderflow_api.services.realtime.change_feed import TRACKED_TABLES


router = APIRouter(prefix="/realtime", tags=["Realtime"], dependencies=[Depends(require_staff_api_key)])

# Filter columns each table actually carries.
_FILTER_COLUMNS: dict[str, tuple[str, ...]] = {
    "orders": ("outlet_id", "user_id"),
    "order_item_redemptions": ("order_id",),
    "kitchen_item_tracking": ("order_id",),
    "notifications": ("user_id", "order_id"),
}


def _format_sse(event_type: str, payload: dict[str, Any]) -> str:
    """Serialize a payload to an SSE data frame."""

    return f"event: {event_type}\ndata: {json.dumps(payload, default=str)}\n\n"


def build_bindings(
    tables: list[str],
    *,
    outlet_id: UUID | None = None,
    user_id: UUID | None = None,
    order_id: UUID | None = None,
) -> list[ChangeBinding]:
    requested = {"outlet_id": outlet_id, "user_id": user_id, "order_id": order_id}
    bindings = []
    for table in tables:
        filters = {
            column: value
            for column, value in requested.items()
            if value is not None and column in _FILTER_COLUMNS[table]
        }
        bindings.append(ChangeBinding(table=table, filters=filters))
    return bindings


@router.get("/stream")
async def stream_changes(
    table: list[str] | None = Query(default=None, description="Tables to watch; all tracked tables when omitted"),
    outlet_id: UUID | None = Query(default=None),
    user_id: UUID | None = Query(default=None),
    order_id: UUID | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, description="Close after this many change events"),
) -> StreamingResponse:
    tables = table or sorted(TRACKED_TABLES)
    unknown = sorted(set(tables) - TRACKED_TABLES)
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_body(f"Unknown tables: {', '.join(unknown)}"),
        )

    feed = get_change_feed()
    try:
        subscription = feed.subscribe(
            build_bindings(tables, outlet_id=outlet_id, user_id=user_id, order_id=order_id),
            name="sse",
        )
    except ChangeFeedUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_body(str(exc), hint="Refresh manually"),
        ) from exc
    get_redemption_store().record_realtime_event("stream_opened")

    async def event_generator(subscription: Subscription) -> AsyncIterator[str]:
        delivered = 0
        try:
            yield _format_sse("subscribed", {"tables": sorted(set(tables))})
            while limit is None or delivered < limit:
                try:
                    change = await subscription.next_event(settings.realtime_stream_keepalive_seconds)
                except StopAsyncIteration:
                    status_value = subscription.close_status.value if subscription.close_status else None
                    yield _format_sse("closed", {"status": status_value})
                    return
                if change is None:
                    yield _format_sse("heartbeat", {})
                    continue
                delivered += 1
                yield _format_sse("change", change.as_dict())
        except asyncio.CancelledError:  # pragma: no cover - client disconnected
            logger.debug("Realtime stream client disconnected")
            raise
        finally:
            feed.unsubscribe(subscription)

    headers = {
        "Cache-Control": "no-cache",
        "Content-Type": "text/event-stream",
    }
    return StreamingResponse(event_generator(subscription), headers=headers, media_type="text/event-stream")
