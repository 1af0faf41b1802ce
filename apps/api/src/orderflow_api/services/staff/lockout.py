"""Redis counters that lock passcode entry after repeated failures."""

from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio import Redis

from orderflow_api.core.settings import settings


@dataclass
class PasscodeLockoutState:
    """Lockout state of one passcode pad (keyed by outlet)."""

    locked: bool
    retry_after_seconds: int | None
    remaining_attempts: int


class PasscodeLockout:
    """Count failed passcode entries per pad and lock the pad once the threshold is hit."""

    def __init__(
        self,
        redis_client: Redis | None = None,
        *,
        threshold: int | None = None,
        window_seconds: int | None = None,
        lockout_seconds: int | None = None,
    ) -> None:
        self._redis = redis_client or Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._threshold = threshold or settings.staff_passcode_lockout_threshold
        self._window_seconds = window_seconds or settings.staff_passcode_lockout_window_seconds
        self._lockout_seconds = lockout_seconds or settings.staff_passcode_lockout_duration_seconds

    @staticmethod
    def _attempts_key(pad: str) -> str:
        return f"staff:passcode:attempts:{pad}"

    @staticmethod
    def _lock_key(pad: str) -> str:
        return f"staff:passcode:lock:{pad}"

    def _locked(self, ttl: int) -> PasscodeLockoutState:
        return PasscodeLockoutState(locked=True, retry_after_seconds=ttl, remaining_attempts=0)

    async def _lock_ttl(self, pad: str) -> int | None:
        ttl = await self._redis.ttl(self._lock_key(pad))
        return ttl if ttl and ttl > 0 else None

    async def get_state(self, pad: str) -> PasscodeLockoutState:
        ttl = await self._lock_ttl(pad)
        if ttl is not None:
            return self._locked(ttl)
        raw = await self._redis.get(self._attempts_key(pad))
        attempts = int(raw) if raw is not None else 0
        return PasscodeLockoutState(
            locked=False,
            retry_after_seconds=None,
            remaining_attempts=max(self._threshold - attempts, 0),
        )

    async def register_failure(self, pad: str) -> PasscodeLockoutState:
        # security-lockout: passcode-failure-tracking
        ttl = await self._lock_ttl(pad)
        if ttl is not None:
            return self._locked(ttl)

        attempts_key = self._attempts_key(pad)
        attempts = await self._redis.incr(attempts_key)
        if attempts == 1:
            await self._redis.expire(attempts_key, self._window_seconds)

        if attempts < self._threshold:
            return PasscodeLockoutState(
                locked=False,
                retry_after_seconds=None,
                remaining_attempts=self._threshold - attempts,
            )

        await self._redis.delete(attempts_key)
        await self._redis.set(self._lock_key(pad), "1", ex=self._lockout_seconds)
        return self._locked(await self._lock_ttl(pad) or self._lockout_seconds)

    async def register_success(self, pad: str) -> None:
        await self._redis.delete(self._attempts_key(pad))


__all__ = ["PasscodeLockout", "PasscodeLockoutState"]
