"""
Products Router — catalog listing and CSV bootstrap import.
"""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from core.exceptions import ValidationError
from db.models import Product
from db.upsert import upsert_products
from integrations.csv_import import normalize_product_csv

router = APIRouter(prefix="/api/v1/products", tags=["products"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ProductResponse(BaseModel):
    id: UUID
    woocommerce_id: int
    name: str
    sku: str | None
    stock_quantity: int
    stock_status: str
    manage_stock: bool
    price: str
    regular_price: str
    sale_price: str
    permalink: str | None
    product_type: str
    status: str
    produkttype: str | None
    date_created: datetime | None
    date_modified: datetime | None
    last_webhook_update: datetime | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class CsvImportRequest(BaseModel):
    csvContent: str = Field(..., min_length=1)


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[ProductResponse])
async def list_products(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    backordered: bool | None = None,
    produkttype: str | None = None,
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List products; ``backordered=true`` returns only negative-stock products."""
    query = select(Product)
    if backordered is True:
        query = query.where(Product.stock_quantity < 0)
    elif backordered is False:
        query = query.where(Product.stock_quantity >= 0)
    if produkttype:
        query = query.where(Product.produkttype == produkttype)
    if status:
        query = query.where(Product.status == status)
    query = query.order_by(Product.name).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{woocommerce_id}", response_model=ProductResponse)
async def get_product(
    woocommerce_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Get a single product by its WooCommerce id."""
    result = await db.execute(select(Product).where(Product.woocommerce_id == woocommerce_id))
    product = result.scalar_one_or_none()
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/import-csv")
async def import_products_csv(
    body: CsvImportRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """
    Bootstrap the catalog from a CSV export.

    The whole file is parsed first; a bad row rejects it with 400 and
    nothing is written.
    """
    try:
        products = normalize_product_csv(body.csvContent, now=datetime.now(timezone.utc))
    except ValidationError as exc:
        raise ValidationError(f"CSV parsing error: {exc.message}", details=exc.details) from exc
    if not products:
        raise HTTPException(status_code=400, detail="No valid products found in CSV")

    result = await upsert_products(db, products)
    await db.commit()

    return {
        "success": True,
        "message": (
            f"CSV import completed: {result.succeeded} products imported, {result.failed} errors"
        ),
        "importedCount": result.succeeded,
        "errorCount": result.failed,
        "totalProcessed": len(products),
        "errorDetails": [failure.to_dict() for failure in result.failures[:10]],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
