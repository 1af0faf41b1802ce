"""Collection numbers shown on the kitchen board, the ready notification and the customer app."""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D")
_MESSAGE_NUMBER = re.compile(r"#(\d{4})")
_MESSAGE_OUTLET = re.compile(r"at (.+)$")

DEFAULT_COLLECTION_NUMBER = "0000"
COLLECTION_NUMBER_LENGTH = 4


def collection_number(order_number: str | None) -> str:
    """Return the last four digits of ``order_number``, or ``"0000"`` when it has fewer."""

    digits = _NON_DIGITS.sub("", order_number or "")
    if len(digits) < COLLECTION_NUMBER_LENGTH:
        return DEFAULT_COLLECTION_NUMBER
    return digits[-COLLECTION_NUMBER_LENGTH:]


def render_ready_message(order_number: str, outlet_name: str) -> str:
    return f"Your order #{collection_number(order_number)} is ready for collection at {outlet_name}"


def parse_ready_message(message: str | None, *, default_outlet: str) -> tuple[str, str]:
    """Extract ``(collection_number, outlet_name)`` from an order-ready message."""

    text = message or ""
    number_match = _MESSAGE_NUMBER.search(text)
    outlet_match = _MESSAGE_OUTLET.search(text)
    number = number_match.group(1) if number_match else DEFAULT_COLLECTION_NUMBER
    outlet = outlet_match.group(1) if outlet_match else default_outlet
    return number, outlet


__all__ = [
    "DEFAULT_COLLECTION_NUMBER",
    "collection_number",
    "parse_ready_message",
    "render_ready_message",
]
