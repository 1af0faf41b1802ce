"""Waiting-time indicator for kitchen tickets (display only, never persisted)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence

from orderflow_api.models.order import KitchenStatusEnum


class WaitingSeverity(str, Enum):
    FRESH = "fresh"
    WARNING = "warning"
    LATE = "late"
    OVERDUE = "overdue"


DEFAULT_THRESHOLDS_MINUTES: tuple[int, int, int] = (5, 10, 15)


@dataclass(frozen=True, slots=True)
class WaitingTime:
    elapsed_seconds: int
    severity: WaitingSeverity
    frozen: bool

    @property
    def minutes(self) -> int:
        return self.elapsed_seconds // 60

    @property
    def label(self) -> str:
        return f"{self.minutes:02d}:{self.elapsed_seconds % 60:02d}"


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def severity_for(minutes: int, thresholds: Sequence[int] = DEFAULT_THRESHOLDS_MINUTES) -> WaitingSeverity:
    fresh, warning, late = thresholds
    if minutes < fresh:
        return WaitingSeverity.FRESH
    if minutes < warning:
        return WaitingSeverity.WARNING
    if minutes < late:
        return WaitingSeverity.LATE
    return WaitingSeverity.OVERDUE


def waiting_time(
    created_at: datetime,
    kitchen_status: KitchenStatusEnum | None,
    *,
    now: datetime,
    stopped_at: datetime | None = None,
    thresholds: Sequence[int] = DEFAULT_THRESHOLDS_MINUTES,
) -> WaitingTime:
    """Elapsed time since the order was placed.

    The clock stops when the ticket leaves ``preparing``: the elapsed time is then measured up
    to ``stopped_at``, the moment it left (or ``now`` if that timestamp is missing). Later status
    changes do not move it.
    """

    status = kitchen_status or KitchenStatusEnum.PREPARING
    frozen = status != KitchenStatusEnum.PREPARING
    end = now
    if frozen and stopped_at is not None:
        end = stopped_at
    elapsed = int((_ensure_aware(end) - _ensure_aware(created_at)).total_seconds())
    elapsed = max(elapsed, 0)
    return WaitingTime(
        elapsed_seconds=elapsed,
        severity=severity_for(elapsed // 60, thresholds),
        frozen=frozen,
    )


__all__ = ["WaitingSeverity", "WaitingTime", "severity_for", "waiting_time"]
