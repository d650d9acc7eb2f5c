"""
Initial schema - products, orders, purchase orders, integrations

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Products
    op.create_table(
        "products",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("woocommerce_id", sa.Integer, nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(100)),
        sa.Column("stock_quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("stock_status", sa.String(30), nullable=False, server_default="instock"),
        sa.Column("manage_stock", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("price", sa.String(32), nullable=False, server_default="0"),
        sa.Column("regular_price", sa.String(32), nullable=False, server_default="0"),
        sa.Column("sale_price", sa.String(32), nullable=False, server_default=""),
        sa.Column("permalink", sa.Text),
        sa.Column("product_type", sa.String(30), nullable=False, server_default="simple"),
        sa.Column("status", sa.String(30), nullable=False, server_default="publish"),
        sa.Column("produkttype", sa.String(100)),
        sa.Column("date_created", sa.DateTime(timezone=True)),
        sa.Column("date_modified", sa.DateTime(timezone=True)),
        sa.Column("last_webhook_update", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_products_stock_quantity", "products", ["stock_quantity"])
    op.create_index("ix_products_sku", "products", ["sku"])

    # 2. Customer orders
    op.create_table(
        "customer_orders",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("external_order_id", sa.Integer, nullable=False),
        sa.Column("order_number", sa.String(50), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("total_value", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_items", sa.Integer, nullable=False, server_default="0"),
        sa.Column("date_created", sa.DateTime(timezone=True)),
        sa.Column("delivery_date", sa.Date),
        sa.Column("delivery_type", sa.String(100)),
        sa.Column("shipping_method_title", sa.String(255)),
        sa.Column("billing_address", sa.Text),
        sa.Column("permalink", sa.Text),
        sa.Column("source", sa.String(20), nullable=False, server_default="woocommerce"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("source", "external_order_id", name="uq_customer_order_external"),
        sa.CheckConstraint("source IN ('woocommerce', 'ongoing_wms')", name="ck_customer_order_source"),
    )
    op.create_index("ix_customer_orders_status", "customer_orders", ["status"])
    op.create_index("ix_customer_orders_delivery_date", "customer_orders", ["delivery_date"])

    # 3. Order lines
    op.create_table(
        "order_lines",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "order_id",
            UUID(as_uuid=True),
            sa.ForeignKey("customer_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("line_item_id", sa.Integer, nullable=False),
        sa.Column("product_id", sa.Integer),
        sa.Column("product_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("sku", sa.String(100)),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("tax_amount", sa.Float, nullable=False, server_default="0"),
        sa.Column("delivered_quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("delivery_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("delivery_date", sa.Date),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "line_item_id", name="uq_order_line_item"),
        sa.CheckConstraint(
            "delivery_status IN ('pending', 'partial', 'delivered', 'cancelled')",
            name="ck_order_line_delivery_status",
        ),
    )
    op.create_index("ix_order_lines_product", "order_lines", ["product_id"])

    # 4. Purchase orders
    op.create_table(
        "purchase_orders",
        sa.Column("po_number", sa.String(50), primary_key=True),
        sa.Column("supplier_name", sa.String(255), nullable=False, server_default="Unknown Supplier"),
        sa.Column("supplier_number", sa.String(50)),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="low"),
        sa.Column("value", sa.Float, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="NOK"),
        sa.Column("created_date", sa.Date),
        sa.Column("expected_delivery", sa.Date),
        sa.Column("actual_delivery", sa.Date),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'in-transit', 'delayed', 'delivered')",
            name="ck_purchase_order_status",
        ),
        sa.CheckConstraint("priority IN ('high', 'medium', 'low')", name="ck_purchase_order_priority"),
    )

    # 5. Purchase order lines
    op.create_table(
        "purchase_order_lines",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "po_number",
            sa.String(50),
            sa.ForeignKey("purchase_orders.po_number", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_number", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("qty", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_price", sa.Float, nullable=False, server_default="0"),
        sa.UniqueConstraint("po_number", "product_number", name="uq_po_line_product"),
    )

    # 6. Integrations
    op.create_table(
        "integrations",
        sa.Column(
            "integration_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
        ),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("integration_type", sa.String(30), nullable=False),
        sa.Column("credentials_encrypted", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "integration_type", name="uq_integration_per_user_type"),
        sa.CheckConstraint(
            "integration_type IN ('woocommerce', 'ongoing_wms', 'rackbeat')",
            name="ck_integration_type",
        ),
    )

    # 7. Integration sync logs
    op.create_table(
        "integration_sync_logs",
        sa.Column("sync_id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("integration_type", sa.String(30), nullable=False),
        sa.Column("sync_type", sa.String(30), nullable=False),
        sa.Column("records_fetched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("records_synced", sa.Integer, nullable=False, server_default="0"),
        sa.Column("records_failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("sync_status", sa.String(20), nullable=False),
        sa.Column("error_message", sa.Text),
        sa.Column("sync_metadata", sa.JSON),
        sa.Column("started_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
        sa.CheckConstraint(
            "sync_status IN ('success', 'partial', 'failed', 'no_data')",
            name="ck_sync_log_status",
        ),
    )
    op.create_index("ix_sync_logs_user_started", "integration_sync_logs", ["user_id", "started_at"])


def downgrade() -> None:
    tables = [
        "integration_sync_logs",
        "integrations",
        "purchase_order_lines",
        "purchase_orders",
        "order_lines",
        "customer_orders",
        "products",
    ]
    for table in tables:
        op.drop_table(table)
