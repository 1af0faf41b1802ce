"""Repository contracts and their SQLAlchemy implementations."""

from .errors import BackendRejectionError
from .interfaces import (
    AuditLogRepository,
    KitchenTrackingRepository,
    NotificationRepository,
    OrderRepository,
    RedemptionLedgerRepository,
    RewardRepository,
    StaffRepository,
)
from .kitchen import SqlAlchemyKitchenTrackingRepository
from .ledger import SqlAlchemyRedemptionLedgerRepository
from .notifications import SqlAlchemyNotificationRepository
from .orders import SqlAlchemyOrderRepository
from .rewards import SqlAlchemyRewardRepository
from .staff import SqlAlchemyAuditLogRepository, SqlAlchemyStaffRepository

__all__ = [
    "AuditLogRepository",
    "BackendRejectionError",
    "KitchenTrackingRepository",
    "NotificationRepository",
    "OrderRepository",
    "RedemptionLedgerRepository",
    "RewardRepository",
    "SqlAlchemyAuditLogRepository",
    "SqlAlchemyKitchenTrackingRepository",
    "SqlAlchemyNotificationRepository",
    "SqlAlchemyOrderRepository",
    "SqlAlchemyRedemptionLedgerRepository",
    "SqlAlchemyRewardRepository",
    "SqlAlchemyStaffRepository",
]
