from uuid import uuid4

import pytest

from orderflow_api.domain.redemption.redeemables import (
    EmptySelectionError,
    LedgerEntryView,
    OrderItems,
    OrderRedemptionState,
    RedemptionSelection,
    derive_order_state,
)
from orderflow_api.models.redemption import RedemptionStatusEnum

PENDING = RedemptionStatusEnum.PENDING
COMPLETED = RedemptionStatusEnum.COMPLETED


def _entries(*statuses: RedemptionStatusEnum) -> list[LedgerEntryView]:
    return [
        LedgerEntryView(
            item_index=index,
            product_name=f"Item {index}",
            quantity=1,
            redeemed_quantity=1 if status == COMPLETED else 0,
            status=status,
        )
        for index, status in enumerate(statuses)
    ]


def test_derive_order_state() -> None:
    assert derive_order_state([]) == OrderRedemptionState.ACTIVE
    assert derive_order_state([PENDING, PENDING]) == OrderRedemptionState.ACTIVE
    assert derive_order_state([COMPLETED, PENDING]) == OrderRedemptionState.PARTIAL
    assert derive_order_state([COMPLETED, COMPLETED]) == OrderRedemptionState.COMPLETED


def test_selection_only_toggles_pending_items() -> None:
    selection = RedemptionSelection(entries=_entries(PENDING, COMPLETED, PENDING))

    assert selection.toggle(0) is True
    assert selection.toggle(1) is False
    assert selection.toggle(7) is False
    assert selection.selected == {0}

    selection.toggle(0)
    assert selection.selected == set()


def test_select_all_pending_builds_sorted_redeemable() -> None:
    order_id = uuid4()
    selection = RedemptionSelection(entries=_entries(PENDING, COMPLETED, PENDING))

    selection.select_all_pending()

    assert selection.to_redeemable(order_id) == OrderItems(order_id=order_id, item_indices=(0, 2))
    assert [entry.item_index for entry in selection.pending] == [0, 2]
    assert [entry.item_index for entry in selection.completed] == [1]


def test_empty_selection_cannot_be_confirmed() -> None:
    selection = RedemptionSelection(entries=_entries(PENDING))
    selection.toggle(0)
    selection.clear()

    with pytest.raises(EmptySelectionError, match="Please select at least one item"):
        selection.to_redeemable(uuid4())
