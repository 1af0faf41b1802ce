"""Things a staff member can hand over, and the ledger views derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Union
from uuid import UUID

from orderflow_api.models.redemption import RedemptionStatusEnum


class RewardKind(str, Enum):
    GIFT = "gift"
    STAMP = "stamp"


class OrderRedemptionState(str, Enum):
    ACTIVE = "active"
    PARTIAL = "partial"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class OrderItems:
    """A subset of an order's line items, identified by their index in ``orders.items``."""

    order_id: UUID
    item_indices: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class SingleReward:
    """A gift or stamp reward redeemed as one synthetic ledger entry."""

    kind: RewardKind
    reward_id: UUID


Redeemable = Union[OrderItems, SingleReward]


@dataclass(slots=True)
class LedgerEntryView:
    item_index: int
    product_name: str
    quantity: int
    redeemed_quantity: int
    status: RedemptionStatusEnum
    redeemed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == RedemptionStatusEnum.COMPLETED


def derive_order_state(statuses: Iterable[RedemptionStatusEnum]) -> OrderRedemptionState:
    """``completed`` needs at least one entry and every entry completed."""

    values = list(statuses)
    completed = sum(1 for status in values if status == RedemptionStatusEnum.COMPLETED)
    if values and completed == len(values):
        return OrderRedemptionState.COMPLETED
    if completed > 0:
        return OrderRedemptionState.PARTIAL
    return OrderRedemptionState.ACTIVE


class EmptySelectionError(ValueError):
    """Raised when confirming a redemption with nothing selected."""

    def __init__(self) -> None:
        super().__init__("Please select at least one item to redeem")


@dataclass(slots=True)
class RedemptionSelection:
    """Staff checklist: a multi-select over the order's still-pending item indices."""

    entries: list[LedgerEntryView]
    selected: set[int] = field(default_factory=set)

    def _pending_indices(self) -> set[int]:
        return {entry.item_index for entry in self.entries if not entry.is_completed}

    def toggle(self, item_index: int) -> bool:
        """Flip selection of a pending item; completed or unknown items are ignored."""

        if item_index not in self._pending_indices():
            return False
        if item_index in self.selected:
            self.selected.discard(item_index)
        else:
            self.selected.add(item_index)
        return True

    def select_all_pending(self) -> None:
        self.selected = self._pending_indices()

    def clear(self) -> None:
        self.selected.clear()

    def to_redeemable(self, order_id: UUID) -> OrderItems:
        if not self.selected:
            raise EmptySelectionError()
        return OrderItems(order_id=order_id, item_indices=tuple(sorted(self.selected)))

    @property
    def pending(self) -> list[LedgerEntryView]:
        return [entry for entry in self.entries if not entry.is_completed]

    @property
    def completed(self) -> list[LedgerEntryView]:
        return [entry for entry in self.entries if entry.is_completed]


__all__ = [
    "EmptySelectionError",
    "LedgerEntryView",
    "OrderItems",
    "OrderRedemptionState",
    "Redeemable",
    "RedemptionSelection",
    "RewardKind",
    "SingleReward",
    "derive_order_state",
]
