"""Orders, redemption ledger, kitchen tracking, staff audit, rewards and notifications.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


payment_status_enum = sa.Enum("PENDING", "PAID", "FAILED", name="payment_status_enum")
fulfillment_status_enum = sa.Enum(
    "WAITING_PAYMENT", "READY", "COMPLETED", "CANCELLED", "REFUNDED", name="fulfillment_status_enum"
)
kitchen_status_enum = sa.Enum("PREPARING", "READY", "COLLECTED", "CANCELLED", name="kitchen_status_enum")
redemption_status_enum = sa.Enum("PENDING", "COMPLETED", name="order_item_redemption_status_enum")
redemption_type_enum = sa.Enum("GIFT", "STAMP", "ORDER", name="redemption_type_enum")
scan_type_enum = sa.Enum("CUSTOMER", "ORDER", "WORKSHOP", "REWARD", name="scan_type_enum")
scan_result_enum = sa.Enum("SUCCESS", "FAILURE", "PARTIAL", name="scan_result_enum")
stamp_status_enum = sa.Enum("ACTIVE", "USED", name="stamp_redemption_status_enum")


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "orders",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("order_number", sa.String(), nullable=False, unique=True),
        sa.Column("user_id", _uuid(), nullable=True),
        sa.Column("outlet_id", _uuid(), nullable=True),
        sa.Column("outlet_name", sa.String(), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("gross_sales", sa.Numeric(12, 2), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("voucher_discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("tier_discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("bonus_discount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_status", payment_status_enum, nullable=False, server_default="PENDING"),
        sa.Column("status", fulfillment_status_enum, nullable=False, server_default="WAITING_PAYMENT"),
        sa.Column("fnbstatus", kitchen_status_enum, nullable=True),
        sa.Column("fnbstatus_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ready_episode", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notified_episode", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qr_code", sa.String(), nullable=True, unique=True),
        sa.Column("payment_error", sa.Text(), nullable=True),
        sa.Column("staff_name_last_action", sa.String(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index("ix_orders_outlet_id", "orders", ["outlet_id"])

    op.create_table(
        "order_item_redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("order_id", _uuid(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("item_index", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("redeemed_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", redemption_status_enum, nullable=False, server_default="PENDING"),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at_outlet_id", _uuid(), nullable=True),
        sa.Column("redemption_method", sa.String(length=32), nullable=True),
        sa.Column("staff_passcode_id", _uuid(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("order_id", "item_index", name="uq_order_item_redemptions_order_index"),
        sa.CheckConstraint("redeemed_quantity <= quantity", name="ck_order_item_redemptions_quantity"),
    )
    op.create_index("ix_order_item_redemptions_order_id", "order_item_redemptions", ["order_id"])

    op.create_table(
        "kitchen_item_tracking",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("order_id", _uuid(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("item_index", sa.Integer(), nullable=False),
        sa.Column("is_prepared", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("staff_id", _uuid(), nullable=True),
        sa.Column("prepared_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("order_id", "item_index", name="uq_kitchen_item_tracking_order_index"),
    )
    op.create_index("ix_kitchen_item_tracking_order_id", "kitchen_item_tracking", ["order_id"])

    op.create_table(
        "staff_passcodes",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("staff_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="staff"),
        sa.Column("outlet_id", _uuid(), nullable=True),
        sa.Column("passcode_digest", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_superadmin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_staff_passcodes_passcode_digest", "staff_passcodes", ["passcode_digest"])

    op.create_table(
        "staff_redemption_logs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("staff_passcode_id", _uuid(), nullable=True),
        sa.Column("redemption_type", redemption_type_enum, nullable=False),
        sa.Column("redemption_id", _uuid(), nullable=True),
        sa.Column("user_id", _uuid(), nullable=True),
        sa.Column("outlet_id", _uuid(), nullable=True),
        sa.Column("items_redeemed", sa.JSON(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_staff_redemption_logs_staff_passcode_id", "staff_redemption_logs", ["staff_passcode_id"])
    op.create_index("ix_staff_redemption_logs_redemption_id", "staff_redemption_logs", ["redemption_id"])

    op.create_table(
        "staff_scan_logs",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("staff_id", _uuid(), nullable=True),
        sa.Column("staff_name", sa.String(), nullable=True),
        sa.Column("scan_type", scan_type_enum, nullable=False),
        sa.Column("qr_code", sa.String(), nullable=False),
        sa.Column("scan_result", scan_result_enum, nullable=False),
        sa.Column("customer_id", _uuid(), nullable=True),
        sa.Column("order_id", _uuid(), nullable=True),
        sa.Column("order_number", sa.String(), nullable=True),
        sa.Column("outlet_id", _uuid(), nullable=True),
        sa.Column("outlet_name", sa.String(), nullable=True),
        sa.Column("items_redeemed", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
    )
    op.create_index("ix_staff_scan_logs_order_id", "staff_scan_logs", ["order_id"])

    op.create_table(
        "gift_redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), nullable=True),
        sa.Column("outlet_id", _uuid(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("qr_code", sa.String(), nullable=False, unique=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_gift_redemptions_user_id", "gift_redemptions", ["user_id"])

    op.create_table(
        "stamp_redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), nullable=True),
        sa.Column("outlet_id", _uuid(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("qr_code", sa.String(), nullable=False, unique=True),
        sa.Column("status", stamp_status_enum, nullable=False, server_default="ACTIVE"),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_stamp_redemptions_user_id", "stamp_redemptions", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("notification_type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("order_id", _uuid(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_stamp_redemptions_user_id", table_name="stamp_redemptions")
    op.drop_table("stamp_redemptions")
    op.drop_index("ix_gift_redemptions_user_id", table_name="gift_redemptions")
    op.drop_table("gift_redemptions")
    op.drop_index("ix_staff_scan_logs_order_id", table_name="staff_scan_logs")
    op.drop_table("staff_scan_logs")
    op.drop_index("ix_staff_redemption_logs_redemption_id", table_name="staff_redemption_logs")
    op.drop_index("ix_staff_redemption_logs_staff_passcode_id", table_name="staff_redemption_logs")
    op.drop_table("staff_redemption_logs")
    op.drop_index("ix_staff_passcodes_passcode_digest", table_name="staff_passcodes")
    op.drop_table("staff_passcodes")
    op.drop_index("ix_kitchen_item_tracking_order_id", table_name="kitchen_item_tracking")
    op.drop_table("kitchen_item_tracking")
    op.drop_index("ix_order_item_redemptions_order_id", table_name="order_item_redemptions")
    op.drop_table("order_item_redemptions")
    op.drop_index("ix_orders_outlet_id", table_name="orders")
    op.drop_index("ix_orders_user_id", table_name="orders")
    op.drop_table("orders")

    bind = op.get_bind()
    for enum in (
        stamp_status_enum,
        scan_result_enum,
        scan_type_enum,
        redemption_type_enum,
        redemption_status_enum,
        kitchen_status_enum,
        fulfillment_status_enum,
        payment_status_enum,
    ):
        enum.drop(bind, checkfirst=True)
