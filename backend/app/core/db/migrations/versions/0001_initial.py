"""initial schema: bookings, ledgers, sepay transactions, webhook journal

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


BOOKING_STATUS = ("pending", "confirmed", "cancelled", "completed")
PAYMENT_STATUS = ("pending", "deposit_paid", "fully_paid", "expired")
TRANSACTION_STATUS = ("pending", "matched", "late_payment", "invalid_signature", "validation_error")


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
    ]


def _reservation_columns(create_types: bool) -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("booking_code", sa.String(length=16), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=True),
        sa.Column("guest_name", sa.String(length=200), nullable=True),
        sa.Column("guest_email", sa.String(length=320), nullable=True),
        sa.Column("check_in_date", sa.Date(), nullable=True),
        sa.Column("check_out_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("deposit_due", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("status", postgresql.ENUM(*BOOKING_STATUS, name="booking_status_enum", create_type=create_types), nullable=False),
        sa.Column("payment_status", postgresql.ENUM(*PAYMENT_STATUS, name="booking_payment_status_enum", create_type=create_types), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("has_late_payment", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_audit_columns(),
    ]


def _ledger_columns(booking_table: str) -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("booking_id", sa.Uuid(), sa.ForeignKey(f"{booking_table}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="VND"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("payment_type", sa.String(length=32), nullable=True),
        sa.Column("transaction_reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_metadata", sa.JSON(), nullable=True),
        *_audit_columns(),
    ]


def _create_booking_tables(prefix: str, *, create_types: bool) -> None:
    bookings = f"{prefix}_bookings"
    payments = f"{prefix}_booking_payments"

    # Both namespaces share the status enum types.
    op.create_table(bookings, *_reservation_columns(create_types))
    op.create_index(f"ix_{bookings}_booking_code", bookings, ["booking_code"], unique=True)
    op.create_index(f"ix_{bookings}_customer_id", bookings, ["customer_id"])
    op.create_index(f"ix_{bookings}_status", bookings, ["status"])
    op.create_index(f"ix_{bookings}_payment_status", bookings, ["payment_status"])

    op.create_table(payments, *_ledger_columns(bookings))
    op.create_index(f"ix_{payments}_booking_id", payments, ["booking_id"])
    op.create_index(f"ix_{payments}_status", payments, ["status"])
    op.create_index(f"ix_{payments}_transaction_reference", payments, ["transaction_reference"])
    op.create_index(f"ix_{prefix}_payments_booking_status", payments, ["booking_id", "status"])


def upgrade() -> None:
    # --- Core
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(length=200), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("display_name", sa.String(length=200), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_audit_columns(),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=200), nullable=False),
        sa.Column("actor_roles", sa.JSON(), nullable=False),
        sa.Column("action", sa.String(length=200), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=200), nullable=False),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=False),
        *_audit_columns(),
    )
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_entity_type", "audit_events", ["entity_type"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_request_id", "audit_events", ["request_id"])
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    # --- Bookings
    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bank_name", sa.String(length=200), nullable=False),
        sa.Column("bank_id", sa.String(length=32), nullable=True),
        sa.Column("account_number", sa.String(length=64), nullable=False),
        sa.Column("account_holder", sa.String(length=200), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        *_audit_columns(),
    )
    op.create_index("ix_bank_accounts_account_number", "bank_accounts", ["account_number"])

    _create_booking_tables("camping", create_types=True)
    _create_booking_tables("glamping", create_types=False)

    op.create_table(
        "glamping_booking_additional_costs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("booking_id", sa.Uuid(), sa.ForeignKey("glamping_bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("total_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        *_audit_columns(),
    )
    op.create_index("ix_glamping_booking_additional_costs_booking_id", "glamping_booking_additional_costs", ["booking_id"])

    # --- Payments
    op.create_table(
        "sepay_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("sepay_transaction_id", sa.String(length=64), nullable=True),
        sa.Column("transaction_code", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("account_number", sa.String(length=64), nullable=True),
        sa.Column("bank_name", sa.String(length=100), nullable=True),
        sa.Column("gateway", sa.String(length=100), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transfer_type", sa.String(length=8), nullable=True),
        sa.Column("webhook_data", sa.JSON(), nullable=True),
        sa.Column("bank_account_id", sa.Uuid(), sa.ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.Enum(*TRANSACTION_STATUS, name="sepay_transaction_status_enum"), nullable=False),
        sa.Column("booking_namespace", sa.Enum("camping", "glamping", name="booking_namespace_enum"), nullable=True),
        sa.Column("matched_reservation_id", sa.Uuid(), nullable=True),
        sa.Column("matched_booking_reference", sa.String(length=32), nullable=True),
        sa.Column("matched_by", sa.Enum("auto", "manual", name="matched_by_enum"), nullable=True),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("match_note", sa.String(length=500), nullable=True),
        *_audit_columns(),
    )
    op.create_index("ix_sepay_transactions_transaction_code", "sepay_transactions", ["transaction_code"], unique=True)
    op.create_index("ix_sepay_transactions_sepay_transaction_id", "sepay_transactions", ["sepay_transaction_id"])
    op.create_index("ix_sepay_transactions_bank_account_id", "sepay_transactions", ["bank_account_id"])
    op.create_index("ix_sepay_transactions_status", "sepay_transactions", ["status"])
    op.create_index("ix_sepay_transactions_matched_reservation_id", "sepay_transactions", ["matched_reservation_id"])
    op.create_index("ix_sepay_transactions_matched_booking_reference", "sepay_transactions", ["matched_booking_reference"])
    op.create_index(
        "ix_sepay_transactions_status_reservation", "sepay_transactions", ["status", "matched_reservation_id"]
    )

    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("webhook_type", sa.String(length=32), nullable=False),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("request_headers", sa.JSON(), nullable=True),
        sa.Column("request_body", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("http_status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.JSON(), nullable=True),
        sa.Column("transaction_code", sa.String(length=128), nullable=True),
        sa.Column("booking_reference", sa.String(length=32), nullable=True),
        sa.Column("matched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("match_type", sa.String(length=32), nullable=True),
        sa.Column("error_type", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_stack", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processing_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processing_duration_ms", sa.Integer(), nullable=True),
        *_audit_columns(),
    )
    op.create_index("ix_webhook_logs_webhook_type", "webhook_logs", ["webhook_type"])
    op.create_index("ix_webhook_logs_request_id", "webhook_logs", ["request_id"])
    op.create_index("ix_webhook_logs_status", "webhook_logs", ["status"])
    op.create_index("ix_webhook_logs_transaction_code", "webhook_logs", ["transaction_code"])
    op.create_index("ix_webhook_logs_type_status_received", "webhook_logs", ["webhook_type", "status", "received_at"])

    op.create_table(
        "webhook_alerts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("webhook_type", sa.String(length=32), nullable=False),
        sa.Column("alert_type", sa.String(length=64), nullable=False),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_alert_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("alert_cooldown_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("alert_metadata", sa.JSON(), nullable=True),
        *_audit_columns(),
        sa.UniqueConstraint("webhook_type", "alert_type", name="uq_webhook_alerts_type"),
    )


def downgrade() -> None:
    op.drop_table("webhook_alerts")
    op.drop_table("webhook_logs")
    op.drop_table("sepay_transactions")
    op.drop_table("glamping_booking_additional_costs")
    for prefix in ("glamping", "camping"):
        op.drop_table(f"{prefix}_booking_payments")
        op.drop_table(f"{prefix}_bookings")
    op.drop_table("bank_accounts")
    op.drop_table("audit_events")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_name in (
        "matched_by_enum",
        "booking_namespace_enum",
        "sepay_transaction_status_enum",
        "booking_payment_status_enum",
        "booking_status_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
