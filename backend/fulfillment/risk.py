"""
Order-Risk Classifier — read-side transform over persisted orders.

An order is at risk when it is overdue (promised delivery date before now)
AND at least one of its lines references a product with negative stock.
Risk fields are computed on every read and never written back.

Risk Levels:
  - high:   more than 30 days overdue
  - medium: more than 14 days overdue
  - low:    everything else
"""

import asyncio
import math
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import CustomerOrder, OrderLine, Product
from fulfillment.status import stored_values

logger = structlog.get_logger()

RISK_THRESHOLDS = {
    "high": 30,  # days overdue > 30
    "medium": 14,  # days overdue > 14
}

SECONDS_PER_DAY = 24 * 60 * 60


# ──────────────────────────────────────────────────────────────────────────
# Pure classification
# ──────────────────────────────────────────────────────────────────────────


def _promised_instant(promised: date) -> datetime:
    return datetime.combine(promised, time.min, tzinfo=timezone.utc)


def is_overdue(promised: date | None, now: datetime) -> bool:
    return promised is not None and _promised_instant(promised) < now


def compute_days_overdue(promised: date, now: datetime) -> int:
    """Whole days past the promised date, rounded up."""
    elapsed = (now - _promised_instant(promised)).total_seconds()
    return math.ceil(elapsed / SECONDS_PER_DAY)


def classify_risk_level(days_overdue: int) -> str:
    if days_overdue > RISK_THRESHOLDS["high"]:
        return "high"
    elif days_overdue > RISK_THRESHOLDS["medium"]:
        return "medium"
    return "low"


def format_risk_reason(days_overdue: int, backordered_lines: int) -> str:
    return (
        f"Order is {days_overdue} days past delivery date and contains "
        f"{backordered_lines} backordered product(s)"
    )


@dataclass
class LineStock:
    """An order line with the stock level of its product, if the product is known."""

    line_item_id: int
    product_id: int | None
    sku: str | None
    product_name: str
    quantity: int
    stock_quantity: int | None = None

    @property
    def is_backordered(self) -> bool:
        return self.stock_quantity is not None and self.stock_quantity < 0


@dataclass
class RiskAssessment:
    order_id: uuid.UUID
    external_order_id: int
    order_number: str
    customer_name: str
    status: str
    source: str
    total_value: float
    delivery_date: date | None
    days_overdue: int
    risk_level: str
    risk_reason: str
    backordered_lines: list[LineStock] = field(default_factory=list)
    is_at_risk: bool = True


def classify_order(order: CustomerOrder, lines: list[LineStock], now: datetime) -> RiskAssessment | None:
    """Return the order's risk assessment, or None when it is not at risk."""
    if not is_overdue(order.delivery_date, now):
        return None
    backordered = [line for line in lines if line.is_backordered]
    if not backordered:
        return None

    days = compute_days_overdue(order.delivery_date, now)
    return RiskAssessment(
        order_id=order.id,
        external_order_id=order.external_order_id,
        order_number=order.order_number,
        customer_name=order.customer_name,
        status=order.status,
        source=order.source,
        total_value=order.total_value,
        delivery_date=order.delivery_date,
        days_overdue=days,
        risk_level=classify_risk_level(days),
        risk_reason=format_risk_reason(days, len(backordered)),
        backordered_lines=backordered,
    )


# ──────────────────────────────────────────────────────────────────────────
# Product lookup
# ──────────────────────────────────────────────────────────────────────────


class ProductIndex:
    """
    Resolves an order line's product by WooCommerce id, falling back to SKU.

    Lines from the warehouse carry only an article number, so the SKU path
    is the only way to match them. An unknown product resolves to None.
    """

    def __init__(self, products: list[Product]):
        self._by_id = {p.woocommerce_id: p for p in products}
        self._by_sku = {p.sku: p for p in products if p.sku}

    @classmethod
    async def load(cls, db: AsyncSession, lines: list[OrderLine]) -> "ProductIndex":
        product_ids = {line.product_id for line in lines if line.product_id is not None}
        skus = {line.sku for line in lines if line.sku}
        if not product_ids and not skus:
            return cls([])
        conditions = []
        if product_ids:
            conditions.append(Product.woocommerce_id.in_(product_ids))
        if skus:
            conditions.append(Product.sku.in_(skus))
        result = await db.execute(select(Product).where(or_(*conditions)))
        return cls(list(result.scalars().all()))

    def lookup(self, product_id: int | None, sku: str | None) -> Product | None:
        if product_id is not None and product_id in self._by_id:
            return self._by_id[product_id]
        if sku:
            return self._by_sku.get(sku)
        return None

    def resolve(self, line: OrderLine) -> LineStock:
        product = self.lookup(line.product_id, line.sku)
        return LineStock(
            line_item_id=line.line_item_id,
            product_id=line.product_id,
            sku=line.sku,
            product_name=line.product_name,
            quantity=line.quantity,
            stock_quantity=product.stock_quantity if product is not None else None,
        )


# ──────────────────────────────────────────────────────────────────────────
# Concurrent line fetch
# ──────────────────────────────────────────────────────────────────────────


async def fetch_order_lines(session_factory, order_id: uuid.UUID) -> list[OrderLine]:
    async with session_factory() as session:
        result = await session.execute(select(OrderLine).where(OrderLine.order_id == order_id))
        return list(result.scalars().all())


async def collect_order_lines(
    session_factory,
    order_ids: list[uuid.UUID],
    *,
    concurrency: int | None = None,
    fetch=fetch_order_lines,
) -> dict[uuid.UUID, list[OrderLine]]:
    """
    Fetch lines for many orders concurrently, each on its own session.

    A failed fetch leaves that order with no lines; sibling fetches carry on.
    """
    semaphore = asyncio.Semaphore(concurrency or get_settings().risk_fetch_concurrency)

    async def bounded(order_id: uuid.UUID) -> list[OrderLine]:
        async with semaphore:
            return await fetch(session_factory, order_id)

    results = await asyncio.gather(*(bounded(oid) for oid in order_ids), return_exceptions=True)

    lines_by_order: dict[uuid.UUID, list[OrderLine]] = {}
    for order_id, result in zip(order_ids, results):
        if isinstance(result, Exception):
            logger.warning("risk.lines_fetch_failed", order_id=str(order_id), error=str(result))
            lines_by_order[order_id] = []
        elif isinstance(result, BaseException):
            raise result
        else:
            lines_by_order[order_id] = result
    return lines_by_order


# ──────────────────────────────────────────────────────────────────────────
# Service
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class AtRiskReport:
    orders: list[RiskAssessment]
    total_orders: int
    statuses: list[str]
    evaluated_at: datetime

    @property
    def breakdown(self) -> dict[str, int]:
        counts = Counter(o.risk_level for o in self.orders)
        return {level: counts.get(level, 0) for level in ("high", "medium", "low")}


async def get_at_risk_orders(
    db: AsyncSession,
    session_factory,
    *,
    statuses: list[str] | None = None,
    limit: int | None = None,
    now: datetime | None = None,
) -> AtRiskReport:
    """
    Classify ongoing orders and return only the at-risk ones, most at risk first.

    Only overdue orders can be at risk, so lines are fetched for those alone.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    statuses = statuses or list(settings.risk_default_statuses)
    limit = limit or settings.risk_order_limit

    result = await db.execute(
        select(CustomerOrder)
        .where(CustomerOrder.status.in_(stored_values(statuses)))
        .order_by(CustomerOrder.date_created.desc())
        .limit(limit)
    )
    orders = list(result.scalars().all())
    overdue = [o for o in orders if is_overdue(o.delivery_date, now)]

    lines_by_order = await collect_order_lines(session_factory, [o.id for o in overdue])
    index = await ProductIndex.load(db, [line for lines in lines_by_order.values() for line in lines])

    assessments = []
    for order in overdue:
        assessment = classify_order(order, [index.resolve(line) for line in lines_by_order[order.id]], now)
        if assessment is not None:
            assessments.append(assessment)
    assessments.sort(key=lambda a: a.days_overdue, reverse=True)

    report = AtRiskReport(orders=assessments, total_orders=len(orders), statuses=statuses, evaluated_at=now)
    logger.info(
        "risk.orders_classified",
        total_orders=len(orders),
        overdue_orders=len(overdue),
        at_risk_orders=len(assessments),
        **report.breakdown,
    )
    return report
