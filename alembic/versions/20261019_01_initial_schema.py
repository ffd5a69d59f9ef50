"""Shops, customers, no-show tracking, webhook logs and transaction archive.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


shop_rcg_tier_enum = sa.Enum("none", "standard", "premium", "elite", name="shop_rcg_tier_enum")
customer_no_show_tier_enum = sa.Enum(
    "normal", "warning", "caution", "deposit_required", "suspended", name="customer_no_show_tier_enum"
)
service_order_status_enum = sa.Enum(
    "pending", "paid", "completed", "no_show", "cancelled", name="service_order_status_enum"
)
no_show_dispute_status_enum = sa.Enum("pending", "approved", "rejected", name="no_show_dispute_status_enum")
webhook_log_source_enum = sa.Enum("stripe", "fixflow", "thirdweb", "other", name="webhook_log_source_enum")
webhook_log_status_enum = sa.Enum(
    "pending", "processing", "success", "failed", "retry", name="webhook_log_status_enum"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _transaction_columns() -> list[sa.Column]:
    return [
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("customer_address", sa.String(), nullable=True),
        sa.Column("shop_id", sa.String(), nullable=True),
        sa.Column("amount", sa.Numeric(20, 8), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("transaction_hash", sa.String(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "shops",
        sa.Column("shop_id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("wallet_address", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rcg_tier", shop_rcg_tier_enum, nullable=False, server_default="none"),
        sa.Column("rcg_balance", sa.Numeric(38, 18), nullable=False, server_default="0"),
        sa.Column("tier_updated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shops_wallet_address", "shops", ["wallet_address"])

    op.create_table(
        "customers",
        sa.Column("address", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("no_show_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("no_show_tier", customer_no_show_tier_enum, nullable=False, server_default="normal"),
        sa.Column("deposit_required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("last_no_show_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("booking_suspended_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("successful_appointments_since_tier3", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "service_orders",
        sa.Column("order_id", sa.String(), primary_key=True),
        sa.Column("shop_id", sa.String(), nullable=False),
        sa.Column("service_id", sa.String(), nullable=True),
        sa.Column("customer_address", sa.String(), nullable=False),
        sa.Column("status", service_order_status_enum, nullable=False, server_default="pending"),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("booking_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_service_orders_shop_id", "service_orders", ["shop_id"])
    op.create_index("ix_service_orders_customer_address", "service_orders", ["customer_address"])

    op.create_table(
        "shop_no_show_policy",
        sa.Column("shop_id", sa.String(), primary_key=True),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("grace_period_minutes", sa.Integer(), nullable=False, server_default="15"),
        sa.Column("minimum_cancellation_hours", sa.Integer(), nullable=False, server_default="4"),
        sa.Column("auto_detection_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("auto_detection_delay_hours", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("caution_threshold", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("caution_advance_booking_hours", sa.Integer(), nullable=False, server_default="24"),
        sa.Column("deposit_threshold", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("deposit_amount", sa.Numeric(10, 2), nullable=False, server_default="25.00"),
        sa.Column("deposit_advance_booking_hours", sa.Integer(), nullable=False, server_default="48"),
        sa.Column("deposit_reset_after_successful", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("max_rcn_redemption_percent", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("suspension_threshold", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("suspension_duration_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("send_email_tier1", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("send_email_tier2", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("send_email_tier3", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("send_email_tier4", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("send_sms_tier2", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("send_sms_tier3", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("send_sms_tier4", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("send_push_notifications", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("allow_disputes", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("dispute_window_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("auto_approve_first_offense", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("require_shop_review", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["shop_id"], ["shops.shop_id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "caution_threshold < deposit_threshold AND deposit_threshold < suspension_threshold",
            name="ck_shop_no_show_policy_threshold_order",
        ),
    )

    op.create_table(
        "no_show_history",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_address", sa.String(), nullable=False),
        sa.Column("order_id", sa.String(), nullable=False),
        sa.Column("service_id", sa.String(), nullable=True),
        sa.Column("shop_id", sa.String(), nullable=False),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("marked_no_show_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("marked_by", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("grace_period_minutes", sa.Integer(), nullable=True),
        sa.Column("customer_tier_at_time", sa.String(), nullable=True),
        sa.Column("disputed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("dispute_status", no_show_dispute_status_enum, nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("dispute_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispute_resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispute_resolved_by", sa.String(), nullable=True),
        sa.Column("dispute_resolution_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_no_show_history_customer_address", "no_show_history", ["customer_address"])
    op.create_index("ix_no_show_history_order_id", "no_show_history", ["order_id"])
    op.create_index("ix_no_show_history_shop_id", "no_show_history", ["shop_id"])

    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("webhook_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("source", webhook_log_source_enum, nullable=False),
        sa.Column("status", webhook_log_status_enum, nullable=False, server_default="pending"),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("response", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_webhook_logs_webhook_id", "webhook_logs", ["webhook_id"])
    op.create_index("ix_webhook_logs_event_type", "webhook_logs", ["event_type"])
    op.create_index("ix_webhook_logs_source", "webhook_logs", ["source"])
    op.create_index("ix_webhook_logs_status", "webhook_logs", ["status"])
    op.create_index("ix_webhook_logs_created_at", "webhook_logs", ["created_at"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        *_transaction_columns(),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_transactions_customer_address", "transactions", ["customer_address"])
    op.create_index("ix_transactions_shop_id", "transactions", ["shop_id"])
    op.create_index("ix_transactions_status", "transactions", ["status"])
    op.create_index("ix_transactions_created_at", "transactions", ["created_at"])

    op.create_table(
        "archived_transactions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        *_transaction_columns(),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "system_settings",
        sa.Column("setting_key", sa.String(), primary_key=True),
        sa.Column("setting_value", sa.Text(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_system_settings_category", "system_settings", ["category"])
    op.bulk_insert(
        sa.table(
            "system_settings",
            sa.column("setting_key", sa.String()),
            sa.column("setting_value", sa.Text()),
            sa.column("category", sa.String()),
            sa.column("description", sa.Text()),
        ),
        [
            {
                "setting_key": "webhook_retention_days",
                "setting_value": "90",
                "category": "cleanup",
                "description": "Days to keep webhook delivery logs",
            },
            {
                "setting_key": "transaction_archive_days",
                "setting_value": "365",
                "category": "cleanup",
                "description": "Age in days after which completed transactions are archived",
            },
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_system_settings_category", table_name="system_settings")
    op.drop_table("system_settings")
    op.drop_table("archived_transactions")
    for index in ("created_at", "status", "shop_id", "customer_address"):
        op.drop_index(f"ix_transactions_{index}", table_name="transactions")
    op.drop_table("transactions")
    for index in ("created_at", "status", "source", "event_type", "webhook_id"):
        op.drop_index(f"ix_webhook_logs_{index}", table_name="webhook_logs")
    op.drop_table("webhook_logs")
    for index in ("shop_id", "order_id", "customer_address"):
        op.drop_index(f"ix_no_show_history_{index}", table_name="no_show_history")
    op.drop_table("no_show_history")
    op.drop_table("shop_no_show_policy")
    op.drop_index("ix_service_orders_customer_address", table_name="service_orders")
    op.drop_index("ix_service_orders_shop_id", table_name="service_orders")
    op.drop_table("service_orders")
    op.drop_table("customers")
    op.drop_index("ix_shops_wallet_address", table_name="shops")
    op.drop_table("shops")

    bind = op.get_bind()
    for enum in (
        webhook_log_status_enum,
        webhook_log_source_enum,
        no_show_dispute_status_enum,
        service_order_status_enum,
        customer_no_show_tier_enum,
        shop_rcg_tier_enum,
    ):
        enum.drop(bind, checkfirst=True)
