"""Client side of the change feed: one channel per board with bounded reconnects."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from loguru import logger

from orderflow_api.core.settings import settings
from orderflow_api.observability.redemption import get_redemption_store

from .change_feed import (
    ChangeBinding,
    ChangeEvent,
    ChangeFeed,
    ChangeFeedUnavailableError,
    ChannelStatus,
    Subscription,
    get_change_feed,
)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
ResyncCallback = Callable[[], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[Any]]


@dataclass(slots=True)
class _Route:
    binding: ChangeBinding
    handler: ChangeHandler


def backoff_delay(attempt: int, *, base: float, cap: float) -> float:
    """Delay before reconnect ``attempt`` (0-based): ``min(base * 2**attempt, cap)``."""

    return min(base * (2**attempt), cap)


class RealtimeChannel:
    """Subscribe a set of table bindings and keep them connected.

    After ``max_retries`` consecutive failures the channel stops reconnecting, raises the
    ``connection_error`` flag and runs one resync; from then on data is only refreshed through
    ``refresh()`` (or a visibility regain on the owning board).
    """

    def __init__(
        self,
        name: str,
        *,
        feed: ChangeFeed | None = None,
        on_resync: ResyncCallback | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        backoff_cap: float | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.name = name
        self._feed = feed or get_change_feed()
        self._on_resync = on_resync
        self.max_retries = settings.realtime_max_retries if max_retries is None else max_retries
        self._backoff_base = backoff_base if backoff_base is not None else settings.realtime_backoff_base_seconds
        self._backoff_cap = backoff_cap if backoff_cap is not None else settings.realtime_backoff_max_seconds
        self._sleep = sleep
        self._routes: list[_Route] = []
        self._subscription: Subscription | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self._connected_once = False
        self._subscribed = asyncio.Event()

        self.status: ChannelStatus = ChannelStatus.CLOSED
        self.retry_count = 0
        self.connection_error = False
        self.delays: list[float] = []

    def on(
        self,
        table: str,
        handler: ChangeHandler,
        *,
        filters: Mapping[str, Any] | None = None,
        events: tuple[str, ...] = ("*",),
    ) -> "RealtimeChannel":
        self._routes.append(
            _Route(
                binding=ChangeBinding(table=table, filters=dict(filters or {}), events=frozenset(events)),
                handler=handler,
            )
        )
        return self

    @property
    def manual_mode(self) -> bool:
        return self.connection_error

    def backoff_delay(self, attempt: int) -> float:
        return backoff_delay(attempt, base=self._backoff_base, cap=self._backoff_cap)

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        if not self._routes:
            raise ValueError("Channel has no table bindings")
        self._stopping = False
        self.connection_error = False
        self.retry_count = 0
        self._task = asyncio.create_task(self._run(), name=f"realtime:{self.name}")

    async def wait_subscribed(self, timeout: float | None = None) -> bool:
        try:
            await asyncio.wait_for(self._subscribed.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def stop(self) -> None:
        self._stopping = True
        if self._subscription is not None:
            self._feed.unsubscribe(self._subscription)
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._set_status(ChannelStatus.CLOSED)

    async def refresh(self) -> None:
        """Manual refresh: reload data without touching the reconnect state."""

        await self._resync()

    async def reconnect(self) -> None:
        """Leave manual mode and start a fresh round of reconnect attempts."""

        await self.stop()
        await self.start()

    def _set_status(self, status: ChannelStatus) -> None:
        if status != self.status:
            logger.debug("Realtime channel status", channel=self.name, status=status.value)
        self.status = status
        if status == ChannelStatus.SUBSCRIBED:
            self._subscribed.set()
        else:
            self._subscribed.clear()

    async def _resync(self) -> None:
        if self._on_resync is not None:
            await self._on_resync()

    async def _run(self) -> None:
        store = get_redemption_store()
        while not self._stopping:
            try:
                subscription = self._feed.subscribe(
                    [route.binding for route in self._routes], name=self.name
                )
            except ChangeFeedUnavailableError:
                self._set_status(ChannelStatus.CHANNEL_ERROR)
            else:
                self._subscription = subscription
                if self._connected_once:
                    store.record_realtime_event("reconnected")
                    await self._resync()
                self._connected_once = True
                self.retry_count = 0
                self._set_status(ChannelStatus.SUBSCRIBED)
                await self._consume(subscription)
                self._subscription = None
                if self._stopping:
                    break
                self._set_status(subscription.close_status or ChannelStatus.CLOSED)

            if self.retry_count >= self.max_retries:
                self.connection_error = True
                store.record_realtime_event("manual_fallback")
                logger.warning(
                    "Realtime channel fell back to manual refresh",
                    channel=self.name,
                    retries=self.retry_count,
                )
                await self._resync()
                return

            delay = self.backoff_delay(self.retry_count)
            self.delays.append(delay)
            self.retry_count += 1
            store.record_realtime_event("retry")
            logger.info(
                "Realtime channel reconnecting",
                channel=self.name,
                attempt=self.retry_count,
                delay_seconds=delay,
            )
            await self._sleep(delay)

    async def _consume(self, subscription: Subscription) -> None:
        async for change in subscription:
            for route in self._routes:
                if not route.binding.matches(change):
                    continue
                try:
                    await route.handler(change)
                except Exception:  # pragma: no cover
                    logger.exception(
                        "Realtime handler failed",
                        channel=self.name,
                        table=change.table,
                        event_type=change.event_type.value,
                    )


__all__ = ["RealtimeChannel", "backoff_delay"]
