"""
Purchase Order Router — supplier POs mirrored from Rackbeat.

Read-only: purchase orders are written by the Rackbeat sync. The ``items``
count of each PO is derived from its stored lines on every read.
"""

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from api.deps import get_current_user, get_db
from db.models import PURCHASE_ORDER_STATUSES, PurchaseOrder

router = APIRouter(prefix="/api/v1/purchase-orders", tags=["purchase-orders"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class POLineResponse(BaseModel):
    product_number: str
    product_name: str
    qty: int
    unit_price: float
    total_price: float

    model_config = {"from_attributes": True}


class POResponse(BaseModel):
    po_number: str
    supplier_name: str
    supplier_number: str | None
    status: str
    priority: str
    value: float
    currency: str
    items: int
    created_date: date | None
    expected_delivery: date | None
    actual_delivery: date | None
    updated_at: datetime
    lines: list[POLineResponse]

    model_config = {"from_attributes": True}


class POSummary(BaseModel):
    total: int
    pending: int
    in_transit: int
    delayed: int
    delivered: int
    total_value: float


def _to_response(po: PurchaseOrder) -> POResponse:
    return POResponse(
        po_number=po.po_number,
        supplier_name=po.supplier_name,
        supplier_number=po.supplier_number,
        status=po.status,
        priority=po.priority,
        value=po.value,
        currency=po.currency,
        items=sum(line.qty for line in po.lines),
        created_date=po.created_date,
        expected_delivery=po.expected_delivery,
        actual_delivery=po.actual_delivery,
        updated_at=po.updated_at,
        lines=[POLineResponse.model_validate(line) for line in po.lines],
    )


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[POResponse])
async def list_purchase_orders(
    status: str | None = None,
    priority: str | None = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List purchase orders, soonest expected delivery first."""
    if status and status not in PURCHASE_ORDER_STATUSES:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    query = select(PurchaseOrder).options(selectinload(PurchaseOrder.lines))
    if status:
        query = query.where(PurchaseOrder.status == status)
    if priority:
        query = query.where(PurchaseOrder.priority == priority)
    query = query.order_by(PurchaseOrder.expected_delivery, PurchaseOrder.po_number).offset(skip).limit(limit)
    result = await db.execute(query)
    return [_to_response(po) for po in result.scalars().all()]


@router.get("/summary", response_model=POSummary)
async def purchase_order_summary(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Counts per status and total open value."""
    result = await db.execute(
        select(PurchaseOrder.status, func.count(), func.coalesce(func.sum(PurchaseOrder.value), 0)).group_by(
            PurchaseOrder.status
        )
    )
    counts: dict[str, int] = {}
    total_value = 0.0
    for status, count, value in result.all():
        counts[status] = count
        total_value += float(value)
    return POSummary(
        total=sum(counts.values()),
        pending=counts.get("pending", 0),
        in_transit=counts.get("in-transit", 0),
        delayed=counts.get("delayed", 0),
        delivered=counts.get("delivered", 0),
        total_value=total_value,
    )


@router.get("/{po_number}", response_model=POResponse)
async def get_purchase_order(
    po_number: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    result = await db.execute(
        select(PurchaseOrder).options(selectinload(PurchaseOrder.lines)).where(PurchaseOrder.po_number == po_number)
    )
    po = result.scalar_one_or_none()
    if not po:
        raise HTTPException(status_code=404, detail="Purchase order not found")
    return _to_response(po)
