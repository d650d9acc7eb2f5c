"""
Sync Router — on-demand bulk pulls from connected systems.

Runs the same pipelines the scheduled Celery tasks run, for the calling
user's stored credentials. WooCommerce pulls take an optional sync window
(full, incremental since the last successful run, or a date range).
"""

from datetime import date, datetime, timezone

import httpx
from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from integrations.base import IntegrationType, SyncResult
from workers.sync import SyncMode, audit_missing_products, configured_client, run_configured_sync

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


class SyncRequest(BaseModel):
    syncMode: SyncMode = SyncMode.FULL
    startDate: date | None = None
    endDate: date | None = None


def get_upstream_transport() -> httpx.AsyncBaseTransport | None:
    """HTTP transport for upstream clients; None means the default network transport."""
    return None


def _summary(result: SyncResult, total_key: str) -> dict:
    return {
        "success": True,
        "status": result.status.value,
        "syncMode": result.metadata.get("sync_mode", SyncMode.FULL.value),
        "syncedCount": result.records_synced,
        "errorCount": result.records_failed,
        total_key: result.records_fetched,
        "pagesFetched": result.pages_fetched,
        "errors": result.errors[:10],
    }


def _window_options(body: SyncRequest | None) -> dict:
    body = body or SyncRequest()
    return {"sync_mode": body.syncMode, "start_date": body.startDate, "end_date": body.endDate}


@router.post("/woocommerce/products")
async def sync_woocommerce_products(
    body: SyncRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    transport: httpx.AsyncBaseTransport | None = Depends(get_upstream_transport),
):
    """Pull the WooCommerce catalog (or the requested slice of it) and upsert it."""
    result = await run_configured_sync(
        db,
        user_id=user["sub"],
        integration="woocommerce",
        sync_type="products",
        transport=transport,
        **_window_options(body),
    )
    return _summary(result, "totalProducts")


@router.post("/woocommerce/products/audit")
async def audit_woocommerce_products(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    transport: httpx.AsyncBaseTransport | None = Depends(get_upstream_transport),
):
    """List catalog products that are missing from the local products table."""
    client = await configured_client(
        db, user_id=user["sub"], integration_type=IntegrationType.WOOCOMMERCE, transport=transport
    )
    audit = await audit_missing_products(db, client=client)
    return {
        "success": True,
        "totalWooProducts": audit.total_upstream,
        "totalStoredProducts": audit.total_stored,
        "existingProductsCount": audit.existing_count,
        "missingProducts": audit.missing,
        "auditTimestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/woocommerce/orders")
async def sync_woocommerce_orders(
    body: SyncRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    transport: httpx.AsyncBaseTransport | None = Depends(get_upstream_transport),
):
    """Pull open WooCommerce orders with their lines."""
    result = await run_configured_sync(
        db,
        user_id=user["sub"],
        integration="woocommerce",
        sync_type="orders",
        transport=transport,
        **_window_options(body),
    )
    return _summary(result, "totalOrders")


@router.post("/ongoing/orders")
async def sync_ongoing_orders(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    transport: httpx.AsyncBaseTransport | None = Depends(get_upstream_transport),
):
    """Pull warehouse orders from Ongoing WMS."""
    result = await run_configured_sync(
        db, user_id=user["sub"], integration="ongoing_wms", sync_type="orders", transport=transport
    )
    return _summary(result, "totalOrders")


@router.post("/rackbeat/purchase-orders")
async def sync_rackbeat_purchase_orders(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
    transport: httpx.AsyncBaseTransport | None = Depends(get_upstream_transport),
):
    """Pull open supplier purchase orders and their lines from Rackbeat."""
    result = await run_configured_sync(
        db, user_id=user["sub"], integration="rackbeat", sync_type="purchase_orders", transport=transport
    )
    return _summary(result, "totalPurchaseOrders")
