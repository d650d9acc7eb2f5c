"""
Retention Sweeper — removes orders that are no longer being fulfilled.

Every order whose status is outside RETENTION_KEEP_STATUSES is deleted along
with its lines. The sweep is idempotent: a run with nothing to delete reports
the database as already clean.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import CustomerOrder, OrderLine
from fulfillment.status import RETENTION_KEEP_STATUSES, OrderStatus

logger = structlog.get_logger()

ALREADY_CLEAN_MESSAGE = "Database is already clean - no orders found that need to be deleted"


@dataclass
class SweepResult:
    deleted_count: int = 0
    status_breakdown: dict[str, int] = field(default_factory=dict)
    deleted_orders: list[dict[str, Any]] = field(default_factory=list)
    sample: list[dict[str, Any]] = field(default_factory=list)
    remaining: int = 0
    swept_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def already_clean(self) -> bool:
        return self.deleted_count == 0

    @property
    def message(self) -> str:
        if self.already_clean:
            return ALREADY_CLEAN_MESSAGE
        return (
            f"Deleted {self.deleted_count} orders with statuses other than: "
            f"{', '.join(RETENTION_KEEP_STATUSES)}"
        )


def _sweep_predicate():
    return CustomerOrder.status.notin_(RETENTION_KEEP_STATUSES)


async def sweep_inactive_orders(db: AsyncSession) -> SweepResult:
    """
    Delete every order outside the keep-set, then verify none remain.

    Commits on success. A non-zero remainder after the delete is logged, not
    raised: an order can legitimately arrive while the sweep runs.
    """
    settings = get_settings()
    candidates = (
        await db.execute(
            select(
                CustomerOrder.id,
                CustomerOrder.order_number,
                CustomerOrder.customer_name,
                CustomerOrder.status,
                CustomerOrder.total_value,
            ).where(_sweep_predicate())
        )
    ).all()

    if not candidates:
        logger.info("retention.already_clean", keep_statuses=list(RETENTION_KEEP_STATUSES))
        return SweepResult()

    breakdown = Counter(str(OrderStatus.parse(row.status)) or "(empty)" for row in candidates)
    deleted_orders = [
        {
            "id": str(row.id),
            "order_number": row.order_number,
            "customer_name": row.customer_name,
            "status": row.status,
            "total_value": row.total_value,
        }
        for row in candidates
    ]
    sample = deleted_orders[: settings.retention_sample_size]
    logger.info(
        "retention.candidates_selected",
        count=len(candidates),
        status_breakdown=dict(breakdown),
        sample=sample,
    )

    # Bulk deletes bypass ORM cascades, so lines go first.
    doomed_orders = select(CustomerOrder.id).where(_sweep_predicate())
    await db.execute(delete(OrderLine).where(OrderLine.order_id.in_(doomed_orders)))
    deleted = await db.execute(delete(CustomerOrder).where(_sweep_predicate()))
    await db.commit()

    remaining = (
        await db.execute(select(func.count()).select_from(CustomerOrder).where(_sweep_predicate()))
    ).scalar_one()
    if remaining:
        logger.warning("retention.orders_remaining", remaining=remaining)

    result = SweepResult(
        deleted_count=deleted.rowcount,
        status_breakdown=dict(breakdown),
        deleted_orders=deleted_orders,
        sample=sample,
        remaining=remaining,
    )
    logger.info("retention.sweep_completed", deleted=result.deleted_count, remaining=remaining)
    return result
