"""
Orders Router — at-risk classification and retention sweep.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, get_session_factory
from fulfillment.retention import sweep_inactive_orders
from fulfillment.risk import get_at_risk_orders

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class BackorderedLineResponse(BaseModel):
    line_item_id: int
    product_id: int | None
    sku: str | None
    product_name: str
    quantity: int
    stock_quantity: int | None

    model_config = {"from_attributes": True}


class AtRiskOrderResponse(BaseModel):
    order_id: UUID
    external_order_id: int
    order_number: str
    customer_name: str
    status: str
    source: str
    total_value: float
    delivery_date: date | None
    is_at_risk: bool
    days_overdue: int
    risk_level: str
    risk_reason: str
    backordered_lines: list[BackorderedLineResponse]

    model_config = {"from_attributes": True}


class AtRiskQuery(BaseModel):
    status: str | list[str] | None = None
    limit: int | None = Field(None, ge=1, le=10000)


def _parse_statuses(value: str | list[str] | None) -> list[str] | None:
    if value is None:
        return None
    parts = value if isinstance(value, list) else value.split(",")
    statuses = [part.strip() for part in parts if part and part.strip()]
    return statuses or None


# ─── At-risk orders ─────────────────────────────────────────────────────────


async def _at_risk_response(db, session_factory, statuses, limit) -> dict:
    report = await get_at_risk_orders(db, session_factory, statuses=statuses, limit=limit)
    return {
        "atRiskOrders": [AtRiskOrderResponse.model_validate(o).model_dump(mode="json") for o in report.orders],
        "totalOrders": report.total_orders,
        "totalAtRiskOrders": len(report.orders),
        "riskBreakdown": report.breakdown,
        "statuses": report.statuses,
        "timestamp": report.evaluated_at.isoformat(),
    }


@router.get("/at-risk")
async def list_at_risk_orders(
    status: str | None = Query(None, description="Comma-separated order statuses"),
    limit: int | None = Query(None, ge=1, le=10000),
    db: AsyncSession = Depends(get_db),
    session_factory=Depends(get_session_factory),
    user: dict = Depends(get_current_user),
):
    """Overdue orders containing backordered products, most overdue first."""
    return await _at_risk_response(db, session_factory, _parse_statuses(status), limit)


@router.post("/at-risk")
async def query_at_risk_orders(
    query: AtRiskQuery | None = Body(None),
    db: AsyncSession = Depends(get_db),
    session_factory=Depends(get_session_factory),
    user: dict = Depends(get_current_user),
):
    """Same as GET, with the filter in a JSON body."""
    query = query or AtRiskQuery()
    return await _at_risk_response(db, session_factory, _parse_statuses(query.status), query.limit)


# ─── Retention ──────────────────────────────────────────────────────────────


@router.post("/retention-sweep")
async def retention_sweep(
    db: AsyncSession = Depends(get_db),
):
    """Delete every order that is no longer being fulfilled."""
    result = await sweep_inactive_orders(db)
    return {
        "success": True,
        "message": result.message,
        "deletedCount": result.deleted_count,
        "ordersDeleted": result.deleted_orders,
        "statusBreakdown": result.status_breakdown,
        "timestamp": result.swept_at.isoformat(),
    }
