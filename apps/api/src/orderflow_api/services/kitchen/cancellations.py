"""Pending kitchen cancellation requests awaiting their confirmation step."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from uuid import UUID

DEFAULT_TTL_SECONDS = 120


@dataclass(frozen=True, slots=True)
class CancellationRequest:
    token: str
    order_id: UUID
    requested_by: str | None
    expires_at: datetime


class CancellationRegistry:
    """Tokens handed out by ``request_cancellation`` and consumed by ``confirm_cancellation``."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._lock = Lock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._requests: dict[str, CancellationRequest] = {}

    def issue(self, order_id: UUID, *, requested_by: str | None = None, now: datetime | None = None) -> CancellationRequest:
        now = now or datetime.now(timezone.utc)
        request = CancellationRequest(
            token=secrets.token_urlsafe(16),
            order_id=order_id,
            requested_by=requested_by,
            expires_at=now + self._ttl,
        )
        with self._lock:
            self._purge(now)
            self._requests[request.token] = request
        return request

    def consume(self, order_id: UUID, token: str, *, now: datetime | None = None) -> CancellationRequest | None:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._purge(now)
            request = self._requests.get(token)
            if request is None or request.order_id != order_id:
                return None
            del self._requests[token]
        return request

    def _purge(self, now: datetime) -> None:
        expired = [token for token, request in self._requests.items() if request.expires_at <= now]
        for token in expired:
            del self._requests[token]

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()


_REGISTRY = CancellationRegistry()


def get_cancellation_registry() -> CancellationRegistry:
    return _REGISTRY


__all__ = ["CancellationRegistry", "CancellationRequest", "get_cancellation_registry"]
