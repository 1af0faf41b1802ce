"""Read-side money helpers for order line items and order totals.

Orders created before per-item discount tracking only carry ``unit_price``/``quantity`` (and
sometimes a legacy ``total``), so every derived amount walks a fixed fallback chain instead of
trusting a single field.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Sequence

CENT = Decimal("0.01")
TOLERANCE = Decimal("0.01")

WALLET_TOPUP_ITEM_TYPE = "wallet_topup"


def to_decimal(value: Any) -> Decimal:
    """Coerce JSON numbers, strings and ``None`` into a Decimal."""

    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _metadata(item: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = item.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def _breakdown(item: Mapping[str, Any]) -> Mapping[str, Any]:
    breakdown = _metadata(item).get("discount_breakdown")
    return breakdown if isinstance(breakdown, Mapping) else {}


def _first_positive(*values: Any) -> Decimal:
    for value in values:
        amount = to_decimal(value)
        if amount:
            return amount
    return Decimal("0")


def item_raw_subtotal(item: Mapping[str, Any]) -> Decimal:
    return to_decimal(item.get("unit_price")) * int(item.get("quantity") or 0)


def item_original_subtotal(item: Mapping[str, Any]) -> Decimal:
    """Subtotal before discounts: recorded ``original_subtotal`` or price times quantity."""

    recorded = to_decimal(_metadata(item).get("original_subtotal"))
    return recorded if recorded else item_raw_subtotal(item)


def item_total_discount(item: Mapping[str, Any]) -> Decimal:
    return _first_positive(item.get("item_discount_amount"), _breakdown(item).get("total"))


def item_voucher_discount(item: Mapping[str, Any]) -> Decimal:
    typed = item.get("item_discount_amount") if item.get("item_discount_type") == "voucher" else None
    return _first_positive(item.get("voucher_discount_amount"), _breakdown(item).get("voucher"), typed)


def item_tier_discount(item: Mapping[str, Any]) -> Decimal:
    typed = item.get("item_discount_amount") if item.get("item_discount_type") == "tier" else None
    return _first_positive(item.get("tier_discount_amount"), _breakdown(item).get("tier"), typed)


def item_final_price(item: Mapping[str, Any]) -> Decimal:
    """Amount charged for a line item.

    Priority: stored ``total_price``, then the legacy ``total`` field, then
    ``original_subtotal - discount`` (never below zero) when either is recorded, then plain
    ``unit_price * quantity``.
    """

    if item.get("total_price") is not None:
        return to_decimal(item["total_price"])
    if item.get("total") is not None:
        return to_decimal(item["total"])
    if _metadata(item).get("original_subtotal") is not None or item_total_discount(item):
        return max(Decimal("0"), item_original_subtotal(item) - item_total_discount(item))
    return item_raw_subtotal(item)


def has_item_discount(item: Mapping[str, Any]) -> bool:
    return item_total_discount(item) > 0


def _selected_modifiers(item: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    metadata = _metadata(item)
    modifiers = (
        metadata.get("selected_modifiers")
        or metadata.get("selectedModifiers")
        or item.get("selected_modifiers")
        or metadata.get("modifiers")
    )
    if not isinstance(modifiers, list):
        return []
    return [modifier for modifier in modifiers if isinstance(modifier, Mapping)]


def format_modifier_options(modifier: Mapping[str, Any]) -> str:
    parts: list[str] = []
    for option in modifier.get("selected_options") or []:
        price = to_decimal(option.get("addon_price"))
        quantity = int(option.get("quantity") or 1)
        label = str(option.get("option_name", ""))
        if price > 0:
            label += f" (+RM {quantize(price)})"
        if quantity > 1:
            label += f" x{quantity}"
        parts.append(label)
    return ", ".join(parts)


def formatted_modifiers(item: Mapping[str, Any]) -> list[str]:
    return [
        f"{modifier.get('group_name', '')}: {format_modifier_options(modifier)}"
        for modifier in _selected_modifiers(item)
    ]


def modifier_addon_total(item: Mapping[str, Any]) -> Decimal:
    total = Decimal("0")
    for modifier in _selected_modifiers(item):
        for option in modifier.get("selected_options") or []:
            total += to_decimal(option.get("addon_price")) * int(option.get("quantity") or 1)
    return total


def base_unit_price(item: Mapping[str, Any]) -> Decimal:
    return to_decimal(item.get("unit_price")) - modifier_addon_total(item)


def is_redeemable_item(item: Mapping[str, Any]) -> bool:
    """Line items without a product identity (wallet top ups) never enter the ledger."""

    if not item.get("product_id"):
        return False
    return _metadata(item).get("item_type") != WALLET_TOPUP_ITEM_TYPE


def items_total(items: Iterable[Mapping[str, Any]]) -> Decimal:
    return sum((item_final_price(item) for item in items), Decimal("0"))


@dataclass(slots=True)
class FinancialBreakdown:
    """Gross-to-paid reconciliation for one order."""

    gross_sales: Decimal
    total_paid: Decimal
    voucher_discount: Decimal
    tier_discount: Decimal
    bonus_discount: Decimal
    recorded_discounts: Decimal
    actual_discount: Decimal
    unaccounted_discount: Decimal
    has_unaccounted_discount: bool
    items_total: Decimal
    items_match_total: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "gross_sales": float(self.gross_sales),
            "total_paid": float(self.total_paid),
            "voucher_discount": float(self.voucher_discount),
            "tier_discount": float(self.tier_discount),
            "bonus_discount": float(self.bonus_discount),
            "recorded_discounts": float(self.recorded_discounts),
            "actual_discount": float(self.actual_discount),
            "unaccounted_discount": float(self.unaccounted_discount),
            "has_unaccounted_discount": self.has_unaccounted_discount,
            "items_total": float(self.items_total),
            "items_match_total": self.items_match_total,
        }


def compute_breakdown(
    *,
    gross_sales: Any,
    subtotal: Any,
    total_amount: Any,
    voucher_discount: Any,
    tier_discount: Any,
    bonus_discount: Any,
    items: Sequence[Mapping[str, Any]],
) -> FinancialBreakdown:
    """Reconcile an order's totals, surfacing any discount the buckets do not explain."""

    gross = to_decimal(gross_sales) or to_decimal(subtotal)
    paid = to_decimal(total_amount)
    voucher = to_decimal(voucher_discount)
    tier = to_decimal(tier_discount)
    bonus = to_decimal(bonus_discount)

    recorded = voucher + tier + bonus
    actual = gross - paid
    unaccounted = quantize(actual - recorded)
    line_total = items_total(items)

    return FinancialBreakdown(
        gross_sales=quantize(gross),
        total_paid=quantize(paid),
        voucher_discount=quantize(voucher),
        tier_discount=quantize(tier),
        bonus_discount=quantize(bonus),
        recorded_discounts=quantize(recorded),
        actual_discount=quantize(actual),
        unaccounted_discount=unaccounted,
        has_unaccounted_discount=abs(unaccounted) > TOLERANCE,
        items_total=quantize(line_total),
        items_match_total=abs(line_total - paid) <= TOLERANCE,
    )


def breakdown_for_order(order: Any) -> FinancialBreakdown:
    return compute_breakdown(
        gross_sales=order.gross_sales,
        subtotal=order.subtotal,
        total_amount=order.total_amount,
        voucher_discount=order.voucher_discount,
        tier_discount=order.tier_discount,
        bonus_discount=order.bonus_discount,
        items=order.items or [],
    )


__all__ = [
    "FinancialBreakdown",
    "TOLERANCE",
    "WALLET_TOPUP_ITEM_TYPE",
    "base_unit_price",
    "breakdown_for_order",
    "compute_breakdown",
    "format_modifier_options",
    "formatted_modifiers",
    "has_item_discount",
    "is_redeemable_item",
    "item_final_price",
    "item_original_subtotal",
    "item_tier_discount",
    "item_total_discount",
    "item_voucher_discount",
    "items_total",
    "modifier_addon_total",
    "quantize",
    "to_decimal",
]
