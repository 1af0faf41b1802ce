"""Order aggregate helpers."""

from .collection import (  # noqa: F401
    collection_number,
    parse_ready_message,
    render_ready_message,
)
from .financials import (  # noqa: F401
    FinancialBreakdown,
    breakdown_for_order,
    compute_breakdown,
    formatted_modifiers,
    is_redeemable_item,
    item_final_price,
    items_total,
)
