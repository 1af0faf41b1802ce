"""Kitchen status transition table."""

from __future__ import annotations

from orderflow_api.models.order import KitchenStatusEnum

ALLOWED_KITCHEN_TRANSITIONS: dict[KitchenStatusEnum, set[KitchenStatusEnum]] = {
    KitchenStatusEnum.PREPARING: {KitchenStatusEnum.READY, KitchenStatusEnum.CANCELLED},
    KitchenStatusEnum.READY: {
        KitchenStatusEnum.PREPARING,
        KitchenStatusEnum.COLLECTED,
        KitchenStatusEnum.CANCELLED,
    },
    KitchenStatusEnum.COLLECTED: set(),
    KitchenStatusEnum.CANCELLED: set(),
}

TERMINAL_KITCHEN_STATUSES = frozenset({KitchenStatusEnum.COLLECTED, KitchenStatusEnum.CANCELLED})


def can_transition(current: KitchenStatusEnum | None, target: KitchenStatusEnum) -> bool:
    return target in ALLOWED_KITCHEN_TRANSITIONS[current or KitchenStatusEnum.PREPARING]
