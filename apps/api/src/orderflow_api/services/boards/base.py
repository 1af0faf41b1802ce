"""Shared shape of the long-lived boards fed by the change feed."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow_api.services.realtime.change_feed import ChangeEvent, ChangeFeed
from orderflow_api.services.realtime.channel import RealtimeChannel

Sleeper = Callable[[float], Awaitable[Any]]


class LiveBoard:
    """A read model rebuilt wholesale by one ``resync`` routine.

    Two triggers call it: change events arriving on the board's channel, and the board becoming
    visible again. The channel itself also calls it after a reconnect and once when it gives up
    and falls back to manual refresh.
    """

    name = "board"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        feed: ChangeFeed | None = None,
        sleep: Sleeper = asyncio.sleep,
        max_retries: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._reload_lock = asyncio.Lock()
        self.reload_count = 0
        self.visible = True
        self.channel = RealtimeChannel(
            self.name,
            feed=feed,
            on_resync=self.resync,
            sleep=sleep,
            max_retries=max_retries,
        )
        self._bind(self.channel)

    def _bind(self, channel: RealtimeChannel) -> None:
        raise NotImplementedError

    async def _load(self, session: AsyncSession) -> None:
        raise NotImplementedError

    @property
    def connection_error(self) -> bool:
        return self.channel.connection_error

    async def resync(self) -> None:
        async with self._reload_lock:
            async with self._session_factory() as session:
                await self._load(session)
            self.reload_count += 1
        logger.debug("Board reloaded", board=self.name, reloads=self.reload_count)

    async def _on_change(self, change: ChangeEvent) -> None:
        await self.resync()

    async def set_visibility(self, visible: bool) -> None:
        regained = visible and not self.visible
        self.visible = visible
        if regained:
            await self.resync()

    async def refresh(self) -> None:
        """Manual refresh button."""

        await self.resync()

    async def start(self) -> None:
        await self.resync()
        await self.channel.start()

    async def stop(self) -> None:
        await self.channel.stop()


__all__ = ["LiveBoard"]
