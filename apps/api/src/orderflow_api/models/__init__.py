"""SQLAlchemy models package."""

from .audit import (  # noqa: F401
    RedemptionTypeEnum,
    ScanResultEnum,
    ScanTypeEnum,
    StaffRedemptionLog,
    StaffScanLog,
)
from .kitchen import KitchenItemTracking  # noqa: F401
from .notification import Notification, NotificationTypeEnum  # noqa: F401
from .order import FulfillmentStatusEnum, KitchenStatusEnum, Order, PaymentStatusEnum  # noqa: F401
from .redemption import OrderItemRedemption, RedemptionStatusEnum  # noqa: F401
from .reward import GiftRedemption, StampRedemption, StampRedemptionStatusEnum  # noqa: F401
from .staff import StaffPasscode  # noqa: F401
