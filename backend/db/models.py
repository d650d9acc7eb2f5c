"""
LogiFlow Database Models

Tables:
  1. products               - Catalog mirrored from WooCommerce (natural key: woocommerce_id)
  2. customer_orders        - Orders from WooCommerce / Ongoing WMS (natural key: source + external_order_id)
  3. order_lines            - Line items owned by customer_orders (cascade delete)
  4. purchase_orders        - Supplier POs from Rackbeat (primary key: po_number)
  5. purchase_order_lines   - PO line items keyed by (po_number, product_number)
  6. integrations           - Encrypted credentials, one row per (user_id, integration_type)
  7. integration_sync_logs  - One row per bulk sync run

order_lines.product_id holds the product's woocommerce_id and is deliberately
not a foreign key: the product may not exist yet, or may have been deleted.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from db.session import Base


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


ORDER_LINE_DELIVERY_STATUSES = ("pending", "partial", "delivered", "cancelled")
PURCHASE_ORDER_STATUSES = ("pending", "in-transit", "delayed", "delivered")
PURCHASE_ORDER_PRIORITIES = ("high", "medium", "low")
INTEGRATION_TYPES = ("woocommerce", "ongoing_wms", "rackbeat")


# ─── 1. Products ────────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    woocommerce_id = Column(Integer, nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100))
    stock_quantity = Column(Integer, nullable=False, default=0)  # negative = backordered
    stock_status = Column(String(30), nullable=False, default="instock")
    manage_stock = Column(Boolean, nullable=False, default=False)
    # Prices are kept as the strings WooCommerce sends; price is derived at write time.
    price = Column(String(32), nullable=False, default="0")
    regular_price = Column(String(32), nullable=False, default="0")
    sale_price = Column(String(32), nullable=False, default="")
    permalink = Column(Text)
    product_type = Column(String(30), nullable=False, default="simple")
    status = Column(String(30), nullable=False, default="publish")
    produkttype = Column(String(100))
    date_created = Column(DateTime(timezone=True))
    date_modified = Column(DateTime(timezone=True))
    last_webhook_update = Column(DateTime(timezone=True))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_products_stock_quantity", "stock_quantity"),
        Index("ix_products_sku", "sku"),
    )


# ─── 2. Customer Orders ─────────────────────────────────────────────────────


class CustomerOrder(Base):
    __tablename__ = "customer_orders"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    external_order_id = Column(Integer, nullable=False)
    order_number = Column(String(50), nullable=False)
    customer_name = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False)  # open set controlled by the source system
    total_value = Column(Float, nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=0)
    date_created = Column(DateTime(timezone=True))
    delivery_date = Column(Date)
    delivery_type = Column(String(100))
    shipping_method_title = Column(String(255))
    billing_address = Column(Text)
    permalink = Column(Text)
    source = Column(String(20), nullable=False, default="woocommerce")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("source", "external_order_id", name="uq_customer_order_external"),
        Index("ix_customer_orders_status", "status"),
        Index("ix_customer_orders_delivery_date", "delivery_date"),
        CheckConstraint("source IN ('woocommerce', 'ongoing_wms')", name="ck_customer_order_source"),
    )

    lines = relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# ─── 3. Order Lines ─────────────────────────────────────────────────────────


class OrderLine(Base):
    __tablename__ = "order_lines"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    order_id = Column(GUID(), ForeignKey("customer_orders.id", ondelete="CASCADE"), nullable=False)
    line_item_id = Column(Integer, nullable=False)
    product_id = Column(Integer)  # woocommerce_id of the product; weak reference
    product_name = Column(String(255), nullable=False, default="")
    sku = Column(String(100))
    quantity = Column(Integer, nullable=False, default=0)
    unit_price = Column(Float, nullable=False, default=0)
    total_price = Column(Float, nullable=False, default=0)
    tax_amount = Column(Float, nullable=False, default=0)
    delivered_quantity = Column(Integer, nullable=False, default=0)
    delivery_status = Column(String(20), nullable=False, default="pending")
    delivery_date = Column(Date)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("order_id", "line_item_id", name="uq_order_line_item"),
        Index("ix_order_lines_product", "product_id"),
        CheckConstraint(
            "delivery_status IN ('pending', 'partial', 'delivered', 'cancelled')",
            name="ck_order_line_delivery_status",
        ),
    )

    order = relationship("CustomerOrder", back_populates="lines")


# ─── 4. Purchase Orders ─────────────────────────────────────────────────────


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    po_number = Column(String(50), primary_key=True)
    supplier_name = Column(String(255), nullable=False, default="Unknown Supplier")
    supplier_number = Column(String(50))
    status = Column(String(20), nullable=False, default="pending")
    priority = Column(String(10), nullable=False, default="low")
    value = Column(Float, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="NOK")
    created_date = Column(Date)
    expected_delivery = Column(Date)
    actual_delivery = Column(Date)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in-transit', 'delayed', 'delivered')",
            name="ck_purchase_order_status",
        ),
        CheckConstraint("priority IN ('high', 'medium', 'low')", name="ck_purchase_order_priority"),
    )

    lines = relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    po_number = Column(
        String(50),
        ForeignKey("purchase_orders.po_number", ondelete="CASCADE"),
        nullable=False,
    )
    product_number = Column(String(100), nullable=False)
    product_name = Column(String(255), nullable=False, default="")
    qty = Column(Integer, nullable=False, default=0)
    unit_price = Column(Float, nullable=False, default=0)
    total_price = Column(Float, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("po_number", "product_number", name="uq_po_line_product"),)

    purchase_order = relationship("PurchaseOrder", back_populates="lines")


# ─── 5. Integrations ────────────────────────────────────────────────────────


class Integration(Base):
    __tablename__ = "integrations"

    integration_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False)
    integration_type = Column(String(30), nullable=False)
    credentials_encrypted = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "integration_type", name="uq_integration_per_user_type"),
        CheckConstraint(
            "integration_type IN ('woocommerce', 'ongoing_wms', 'rackbeat')",
            name="ck_integration_type",
        ),
    )


# ─── 6. Integration Sync Log ────────────────────────────────────────────────


class IntegrationSyncLog(Base):
    __tablename__ = "integration_sync_logs"

    sync_id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False)
    integration_type = Column(String(30), nullable=False)
    sync_type = Column(String(30), nullable=False)  # products, orders, purchase_orders
    records_fetched = Column(Integer, nullable=False, default=0)
    records_synced = Column(Integer, nullable=False, default=0)
    records_failed = Column(Integer, nullable=False, default=0)
    sync_status = Column(String(20), nullable=False)
    error_message = Column(Text)
    sync_metadata = Column(JSON)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("ix_sync_logs_user_started", "user_id", "started_at"),
        CheckConstraint(
            "sync_status IN ('success', 'partial', 'failed', 'no_data')",
            name="ck_sync_log_status",
        ),
    )
