"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Reference data
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("username", sa.String(100), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.Enum("OWNER", "MANAGER", "STAFF", name="userrole"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "tables",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=True),
        sa.Column("area", sa.String(50), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "dishes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("dietary_tag", sa.String(20), nullable=True),
        sa.Column("image_url", sa.String(500), nullable=True),
        sa.Column("available", sa.Boolean(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "variants",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("dish_id", sa.Integer(), sa.ForeignKey("dishes.id"), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
    )

    op.create_table(
        "sequence_counters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("day", sa.String(8), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.UniqueConstraint("scope", "day", name="uq_sequence_counters_scope_day"),
    )

    # Order aggregate
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(40), unique=True, nullable=False, index=True),
        sa.Column("invoice_number", sa.String(40), unique=True, nullable=True),
        sa.Column("order_type", sa.String(20), nullable=False, index=True),
        sa.Column("third_party_provider", sa.String(20), nullable=True),
        sa.Column("third_party_order_id", sa.String(100), nullable=True),
        sa.Column("order_status", sa.String(20), nullable=False, index=True),
        sa.Column("payment_status", sa.String(20), nullable=False, index=True),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_phone", sa.String(30), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_address", sa.JSON(), nullable=True),
        sa.Column("customer_type", sa.String(20), nullable=True),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id"), nullable=True),
        sa.Column("server_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("captain_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_tax", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_code", sa.String(50), nullable=True),
        sa.Column("discount_reason", sa.String(200), nullable=True),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("delivery_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("packaging_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("service_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("tip", sa.Numeric(12, 2), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("round_off", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_due", sa.Numeric(12, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("cancel_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("dish_id", sa.Integer(), sa.ForeignKey("dishes.id"), nullable=False),
        sa.Column("dish_name", sa.String(200), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("variants.id"), nullable=True),
        sa.Column("variant_name", sa.String(100), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("add_ons", sa.JSON(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("item_status", sa.String(20), nullable=False),
        sa.Column("kot_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("item_total", sa.Numeric(12, 2), nullable=False),
    )

    op.create_table(
        "order_taxes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("tax_name", sa.String(50), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 3), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
    )

    op.create_table(
        "order_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("transaction_id", sa.String(100), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
    )

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )

    # Kitchen tickets
    op.create_table(
        "kots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kot_number", sa.String(40), unique=True, nullable=False, index=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False, index=True),
        sa.Column("order_number", sa.String(40), nullable=False),
        sa.Column("order_type", sa.String(20), nullable=False, index=True),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id"), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("customer_phone", sa.String(30), nullable=True),
        sa.Column("order_item_ids", sa.JSON(), nullable=True),
        sa.Column("kot_status", sa.String(20), nullable=False, index=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("station", sa.String(20), nullable=False, index=True),
        sa.Column("preparation_start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_completion_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("printed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("printed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("print_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("printed_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("printer", sa.String(100), nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "kot_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kot_id", sa.Integer(), sa.ForeignKey("kots.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("order_item_id", sa.Integer(), sa.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True),
        sa.Column("dish_id", sa.Integer(), sa.ForeignKey("dishes.id"), nullable=False),
        sa.Column("dish_name", sa.String(200), nullable=False),
        sa.Column("variant_id", sa.Integer(), sa.ForeignKey("variants.id"), nullable=True),
        sa.Column("variant_name", sa.String(100), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("add_ons", sa.JSON(), nullable=True),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("kot_status", sa.String(20), nullable=False),
    )

    op.create_table(
        "kot_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kot_id", sa.Integer(), sa.ForeignKey("kots.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )

    # Invoices - one per order
    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(40), unique=True, nullable=False, index=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), unique=True, nullable=False),
        sa.Column("order_number", sa.String(40), nullable=False, index=True),
        sa.Column("invoice_date", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_phone", sa.String(30), nullable=False),
        sa.Column("customer_details", sa.JSON(), nullable=False),
        sa.Column("restaurant_details", sa.JSON(), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("tax_breakup", sa.JSON(), nullable=False),
        sa.Column("payment_methods", sa.JSON(), nullable=False),
        sa.Column("additional_info", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount", sa.Numeric(12, 2), nullable=False),
        sa.Column("delivery_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("packaging_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("service_charge", sa.Numeric(12, 2), nullable=False),
        sa.Column("tip", sa.Numeric(12, 2), nullable=False),
        sa.Column("round_off", sa.Numeric(12, 2), nullable=False),
        sa.Column("grand_total", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False),
        sa.Column("change_returned", sa.Numeric(12, 2), nullable=False),
        sa.Column("outstanding_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, index=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_email_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("email_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_sent_to", sa.String(255), nullable=True),
        sa.Column("is_printed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("printed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("print_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("invoices")
    op.drop_table("kot_status_history")
    op.drop_table("kot_items")
    op.drop_table("kots")
    op.drop_table("order_status_history")
    op.drop_table("order_payments")
    op.drop_table("order_taxes")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("sequence_counters")
    op.drop_table("variants")
    op.drop_table("dishes")
    op.drop_table("tables")
    op.drop_table("users")
