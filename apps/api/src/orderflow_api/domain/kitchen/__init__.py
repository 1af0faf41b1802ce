"""Kitchen board domain helpers."""

from .transitions import (  # noqa: F401
    ALLOWED_KITCHEN_TRANSITIONS,
    TERMINAL_KITCHEN_STATUSES,
    can_transition,
)
from .waiting import WaitingSeverity, WaitingTime, severity_for, waiting_time  # noqa: F401
