from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RedemptionSnapshot:
    passcode: Dict[str, int]
    redemptions: Dict[str, Dict[str, int]]
    kitchen: Dict[str, int]
    realtime: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "passcode": dict(self.passcode),
            "redemptions": {key: dict(value) for key, value in self.redemptions.items()},
            "kitchen": dict(self.kitchen),
            "realtime": dict(self.realtime),
        }


class RedemptionObservabilityStore:
    """Counters for the staff gate, redemption confirmations, kitchen actions and realtime links."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._passcode: Dict[str, int] = defaultdict(int)
        self._redemptions_by_type: Dict[str, int] = defaultdict(int)
        self._redemptions_by_outcome: Dict[str, int] = defaultdict(int)
        self._kitchen: Dict[str, int] = defaultdict(int)
        self._realtime: Dict[str, int] = defaultdict(int)

    def record_passcode_attempt(self, outcome: str) -> None:
        with self._lock:
            self._passcode[outcome] += 1

    def record_redemption(self, redemption_type: str, outcome: str, items: int = 0) -> None:
        with self._lock:
            self._redemptions_by_type[redemption_type] += 1
            self._redemptions_by_outcome[outcome] += 1
            if items:
                self._redemptions_by_outcome["items_redeemed"] += items

    def record_kitchen_action(self, action: str) -> None:
        with self._lock:
            self._kitchen[action] += 1

    def record_realtime_event(self, event: str) -> None:
        with self._lock:
            self._realtime[event] += 1

    def snapshot(self) -> RedemptionSnapshot:
        with self._lock:
            passcode = dict(self._passcode)
            redemptions = {
                "by_type": dict(self._redemptions_by_type),
                "by_outcome": dict(self._redemptions_by_outcome),
            }
            kitchen = dict(self._kitchen)
            realtime = dict(self._realtime)
        return RedemptionSnapshot(
            passcode=passcode,
            redemptions=redemptions,
            kitchen=kitchen,
            realtime=realtime,
        )

    def reset(self) -> None:
        with self._lock:
            self._passcode.clear()
            self._redemptions_by_type.clear()
            self._redemptions_by_outcome.clear()
            self._kitchen.clear()
            self._realtime.clear()


_STORE = RedemptionObservabilityStore()


def get_redemption_store() -> RedemptionObservabilityStore:
    return _STORE


__all__ = ["get_redemption_store", "RedemptionObservabilityStore", "RedemptionSnapshot"]
