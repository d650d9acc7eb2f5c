"""
Bulk Sync Workers — pull datasets from upstream systems.

Pipelines:
  1. run_product_sync_pipeline: WooCommerce products → products
  2. run_order_sync_pipeline: WooCommerce open orders → customer_orders + order_lines
  3. run_warehouse_order_sync: Ongoing WMS orders → customer_orders + order_lines
  4. run_purchase_order_sync: Rackbeat purchase orders → purchase_orders + lines

Pages are fetched strictly one after another up to the configured ceiling,
and each page is normalized, upserted and committed before the next one is
requested. Nothing is retried: an upstream failure stops the run, keeps the
pages already written, is recorded in integration_sync_logs, and is surfaced
to the caller with the progress made so far.

WooCommerce pipelines also run incrementally (``modified_after`` the last
successful run) or over a date range (``after``/``before``).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from core.config import get_settings
from core.exceptions import PipelineError, ValidationError
from db.models import IntegrationSyncLog, Product
from db.upsert import UpsertResult, upsert_orders, upsert_products, upsert_purchase_orders
from integrations.base import IntegrationType, SyncResult, SyncStatus
from integrations.normalizer import normalize_purchase_order, normalize_record
from workers.celery_app import celery_app

logger = structlog.get_logger()

FetchPage = Callable[[int], Awaitable[list[dict[str, Any]]]]

# Runs that count as a baseline for the next incremental sync.
BASELINE_STATUSES = (SyncStatus.SUCCESS.value, SyncStatus.PARTIAL.value, SyncStatus.NO_DATA.value)


# ── Sync windows ──────────────────────────────────────────────────────────


class SyncMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"  # records modified since the last successful run
    DATE_RANGE = "date-range"  # records created inside [start, end]


def _woocommerce_timestamp(value: datetime) -> str:
    # WooCommerce expects ISO-8601 without an offset, in the store's UTC view.
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S")


@dataclass
class SyncWindow:
    """Which slice of the upstream dataset a run pulls."""

    mode: SyncMode = SyncMode.FULL
    start: datetime | None = None
    end: datetime | None = None

    def woocommerce_filters(self) -> dict[str, str]:
        if self.start is None:
            return {}
        if self.mode is SyncMode.INCREMENTAL:
            return {"modified_after": _woocommerce_timestamp(self.start)}
        filters = {"after": _woocommerce_timestamp(self.start)}
        if self.end is not None:
            filters["before"] = _woocommerce_timestamp(self.end)
        return filters

    def as_metadata(self) -> dict[str, Any]:
        return {
            "sync_mode": self.mode.value,
            "start_date": self.start.isoformat() if self.start else None,
            "end_date": self.end.isoformat() if self.end else None,
        }


def _as_datetime(value: date | datetime | None, *, end_of_day: bool = False) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time(23, 59, 59) if end_of_day else time.min)


async def last_successful_sync(
    db, *, user_id: str, integration_type: IntegrationType, sync_type: str
) -> datetime | None:
    """Start time of the user's most recent run that completed, or None."""
    return (
        await db.execute(
            select(IntegrationSyncLog.started_at)
            .where(
                IntegrationSyncLog.user_id == user_id,
                IntegrationSyncLog.integration_type == integration_type.value,
                IntegrationSyncLog.sync_type == sync_type,
                IntegrationSyncLog.sync_status.in_(BASELINE_STATUSES),
            )
            .order_by(IntegrationSyncLog.started_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()


async def resolve_sync_window(
    db,
    *,
    user_id: str,
    integration_type: IntegrationType,
    sync_type: str,
    mode: SyncMode | str = SyncMode.FULL,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
) -> SyncWindow:
    """
    Turn request options into a SyncWindow.

    Incremental runs without a start date continue from the last successful
    run; with no previous run they pull everything. Date-range runs need a
    start date; plain dates cover whole days.
    """
    try:
        mode = SyncMode(mode)
    except ValueError as exc:
        raise ValidationError(f"Unknown sync mode: {mode}") from exc

    if mode is SyncMode.FULL:
        return SyncWindow()

    start = _as_datetime(start_date)
    end = _as_datetime(end_date, end_of_day=True)
    if mode is SyncMode.DATE_RANGE:
        if start is None:
            raise ValidationError("startDate is required for a date-range sync")
        if end is not None and end < start:
            raise ValidationError("startDate must not be after endDate")
        return SyncWindow(mode, start, end)

    if start is None:
        start = await last_successful_sync(
            db, user_id=user_id, integration_type=integration_type, sync_type=sync_type
        )
        if start is None:
            logger.info("sync.incremental_without_baseline", user_id=user_id, sync_type=sync_type)
    return SyncWindow(mode, start)


# ── Page loop ─────────────────────────────────────────────────────────────


async def iter_pages(
    fetch_page: FetchPage,
    *,
    entity: str,
    result: SyncResult,
    max_pages: int | None = None,
    has_more: Callable[[int], bool] | None = None,
) -> AsyncIterator[list[dict[str, Any]]]:
    """
    Yield pages 1..max_pages in order until one comes back empty.

    The next page is only requested once the caller is done with the current
    one. ``has_more(page)`` lets a client stop early using upstream
    pagination metadata.
    """
    max_pages = max_pages or get_settings().sync_max_pages
    page = 1
    while page <= max_pages:
        batch = await fetch_page(page)
        if not batch:
            break
        result.pages_fetched = page
        logger.info(f"sync.{entity}.page_fetched", page=page, records=len(batch))
        yield batch
        if has_more is not None and not has_more(page):
            break
        page += 1
    else:
        logger.warning(f"sync.{entity}.page_ceiling_reached", max_pages=max_pages)
        result.metadata["page_ceiling_reached"] = True


async def fetch_all_pages(fetch_page: FetchPage, *, entity: str, result: SyncResult, **kwargs) -> list[dict[str, Any]]:
    """Collect every page into one list."""
    records: list[dict[str, Any]] = []
    async for batch in iter_pages(fetch_page, entity=entity, result=result, **kwargs):
        records.extend(batch)
    return records


def normalize_batch(
    records: list[dict[str, Any]],
    kind: str,
    result: SyncResult,
    *,
    now: datetime,
    normalize: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
) -> list[dict[str, Any]]:
    """Normalize each record; invalid ones are counted as failed and skipped."""
    normalized = []
    for record in records:
        try:
            normalized.append(normalize(record) if normalize else normalize_record(record, kind, now=now))
        except ValidationError as exc:
            result.records_failed += 1
            result.errors.append(exc.message)
    return normalized


def apply_upsert(result: SyncResult, upsert: UpsertResult) -> None:
    result.records_synced += upsert.succeeded
    result.records_failed += upsert.failed
    result.errors.extend(f"Chunk at offset {f.offset}: {f.error}" for f in upsert.failures)


async def write_page(
    db,
    result: SyncResult,
    rows: list[dict[str, Any]],
    upsert: Callable[..., Awaitable[UpsertResult]],
) -> None:
    """Upsert one page of normalized rows and commit it."""
    if rows:
        apply_upsert(result, await upsert(db, rows))
    await db.commit()


def progress_details(result: SyncResult) -> dict[str, Any]:
    return {
        "syncedCount": result.records_synced,
        "errorCount": result.records_failed,
        "fetchedCount": result.records_fetched,
        "pagesFetched": result.pages_fetched,
    }


async def record_sync_log(
    db,
    result: SyncResult,
    *,
    user_id: str,
    integration_type: IntegrationType,
    sync_type: str,
    error_message: str | None = None,
) -> None:
    """Persist one integration_sync_logs row for the run and commit."""
    errors = "; ".join(result.errors[:10]) if result.errors else None
    db.add(
        IntegrationSyncLog(
            user_id=user_id,
            integration_type=integration_type.value,
            sync_type=sync_type,
            records_fetched=result.records_fetched,
            records_synced=result.records_synced,
            records_failed=result.records_failed,
            sync_status=result.status.value,
            error_message=error_message or errors,
            sync_metadata={"pages_fetched": result.pages_fetched, **result.metadata},
            started_at=result.started_at,
            completed_at=result.completed_at or datetime.utcnow(),
        )
    )
    await db.commit()


async def _run_pipeline(
    db,
    *,
    user_id: str,
    integration_type: IntegrationType,
    sync_type: str,
    body: Callable[[SyncResult], Awaitable[None]],
    window: SyncWindow | None = None,
) -> SyncResult:
    result = SyncResult()
    if window is not None:
        result.metadata.update(window.as_metadata())
    log = logger.bind(user_id=user_id, integration=integration_type.value, sync_type=sync_type)
    log.info("sync.started", **result.metadata)
    try:
        await body(result)
    except PipelineError as exc:
        log.error("sync.failed", error=exc.message, **progress_details(result))
        # Only the page in flight is discarded; earlier pages are committed.
        await db.rollback()
        result.status = SyncStatus.FAILED
        result.completed_at = datetime.utcnow()
        try:
            await record_sync_log(
                db,
                result,
                user_id=user_id,
                integration_type=integration_type,
                sync_type=sync_type,
                error_message=exc.message,
            )
        except SQLAlchemyError as log_exc:
            log.warning("sync.log_write_failed", error=str(log_exc))
        progress = progress_details(result)
        if isinstance(exc.details, dict):
            exc.details = {**exc.details, **progress}
        elif exc.details is not None:
            exc.details = {"upstream": exc.details, **progress}
        else:
            exc.details = progress
        raise

    result.complete()
    await record_sync_log(db, result, user_id=user_id, integration_type=integration_type, sync_type=sync_type)
    log.info(
        "sync.completed",
        status=result.status.value,
        fetched=result.records_fetched,
        synced=result.records_synced,
        failed=result.records_failed,
        pages=result.pages_fetched,
    )
    return result


# ── Pipelines ──────────────────────────────────────────────────────────────


async def run_product_sync_pipeline(db, *, user_id: str, client, window: SyncWindow | None = None) -> SyncResult:
    """WooCommerce catalog pull, upserted by woocommerce_id page by page."""
    window = window or SyncWindow()
    fetch = partial(client.fetch_products, **window.woocommerce_filters())

    async def body(result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        async for records in iter_pages(fetch, entity="products", result=result):
            result.records_fetched += len(records)
            await write_page(db, result, normalize_batch(records, "product", result, now=now), upsert_products)

    return await _run_pipeline(
        db,
        user_id=user_id,
        integration_type=IntegrationType.WOOCOMMERCE,
        sync_type="products",
        body=body,
        window=window,
    )


async def run_order_sync_pipeline(db, *, user_id: str, client, window: SyncWindow | None = None) -> SyncResult:
    """Open WooCommerce orders with their lines."""
    window = window or SyncWindow()
    fetch = partial(client.fetch_orders, **window.woocommerce_filters())

    async def body(result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        async for records in iter_pages(fetch, entity="orders", result=result):
            result.records_fetched += len(records)
            await write_page(db, result, normalize_batch(records, "order", result, now=now), upsert_orders)

    return await _run_pipeline(
        db,
        user_id=user_id,
        integration_type=IntegrationType.WOOCOMMERCE,
        sync_type="orders",
        body=body,
        window=window,
    )


async def run_warehouse_order_sync(db, *, user_id: str, client, window: SyncWindow | None = None) -> SyncResult:
    """Warehouse orders from Ongoing WMS, stored alongside WooCommerce orders."""

    async def body(result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        async for records in iter_pages(client.fetch_page, entity="warehouse_orders", result=result):
            result.records_fetched += len(records)
            await write_page(
                db, result, normalize_batch(records, "warehouse_order", result, now=now), upsert_orders
            )

    return await _run_pipeline(
        db, user_id=user_id, integration_type=IntegrationType.ONGOING_WMS, sync_type="orders", body=body
    )


async def run_purchase_order_sync(db, *, user_id: str, client, window: SyncWindow | None = None) -> SyncResult:
    """Open supplier purchase orders from Rackbeat, lines fetched per PO."""

    async def body(result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        result.metadata["skipped_received"] = 0
        async for records in iter_pages(
            client.fetch_page,
            entity="purchase_orders",
            result=result,
            has_more=client.has_more_pages,
        ):
            open_orders = [po for po in records if isinstance(po, dict) and not po.get("is_received")]
            result.metadata["skipped_received"] += len(records) - len(open_orders)
            result.records_fetched += len(open_orders)

            lines_by_number: dict[str, list[dict[str, Any]]] = {}
            for po in open_orders:
                if po.get("number") is not None:
                    lines_by_number[str(po["number"])] = await client.fetch_lines(str(po["number"]))

            rows = normalize_batch(
                open_orders,
                "purchase_order",
                result,
                now=now,
                normalize=lambda po: normalize_purchase_order(po, lines_by_number.get(str(po.get("number")), [])),
            )
            await write_page(db, result, rows, upsert_purchase_orders)

    return await _run_pipeline(
        db, user_id=user_id, integration_type=IntegrationType.RACKBEAT, sync_type="purchase_orders", body=body
    )


PIPELINES = {
    ("woocommerce", "products"): (IntegrationType.WOOCOMMERCE, run_product_sync_pipeline),
    ("woocommerce", "orders"): (IntegrationType.WOOCOMMERCE, run_order_sync_pipeline),
    ("ongoing_wms", "orders"): (IntegrationType.ONGOING_WMS, run_warehouse_order_sync),
    ("rackbeat", "purchase_orders"): (IntegrationType.RACKBEAT, run_purchase_order_sync),
}

# Upstream APIs that accept date filters.
WINDOWED_INTEGRATIONS = {IntegrationType.WOOCOMMERCE}


async def configured_client(db, *, user_id: str, integration_type: IntegrationType, transport=None):
    """Client for the user's stored credentials of the given type."""
    from integrations.base import get_client
    from integrations.credentials import load_credentials

    credentials = await load_credentials(db, user_id, integration_type)
    return get_client(integration_type, user_id, credentials, transport=transport)


async def run_configured_sync(
    db,
    *,
    user_id: str,
    integration: str,
    sync_type: str,
    transport=None,
    sync_mode: SyncMode | str = SyncMode.FULL,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
) -> SyncResult:
    """Load the user's stored credentials and run the matching pipeline."""
    integration_type, pipeline = PIPELINES[(integration, sync_type)]
    window = None
    if sync_mode != SyncMode.FULL or start_date is not None:
        if integration_type not in WINDOWED_INTEGRATIONS:
            raise ValidationError(f"{integration_type.value} only supports full syncs")
        window = await resolve_sync_window(
            db,
            user_id=user_id,
            integration_type=integration_type,
            sync_type=sync_type,
            mode=sync_mode,
            start_date=start_date,
            end_date=end_date,
        )
    client = await configured_client(db, user_id=user_id, integration_type=integration_type, transport=transport)
    return await pipeline(db, user_id=user_id, client=client, window=window)


# ── Missing-product audit ─────────────────────────────────────────────────


@dataclass
class ProductAudit:
    total_upstream: int
    total_stored: int
    existing_count: int
    missing: list[dict[str, Any]]


async def audit_missing_products(db, *, client) -> ProductAudit:
    """
    Compare the full WooCommerce catalog with the products table.

    Read-only: lists catalog entries whose id has never been stored, sorted
    by name, so they can be pulled with a sync or re-sent by a webhook.
    """
    catalog = await fetch_all_pages(client.fetch_products, entity="product_audit", result=SyncResult())
    stored_ids = set((await db.execute(select(Product.woocommerce_id))).scalars().all())

    missing = []
    existing_count = 0
    for record in catalog:
        if not isinstance(record, dict):
            continue
        woocommerce_id = record.get("id")
        if isinstance(woocommerce_id, int) and woocommerce_id in stored_ids:
            existing_count += 1
            continue
        missing.append(
            {
                "id": record.get("id"),
                "name": record.get("name") or "",
                "sku": record.get("sku") or "",
                "status": record.get("status"),
                "type": record.get("type"),
                "stock_quantity": record.get("stock_quantity") or 0,
                "price": record.get("price") or "0",
                "date_created": record.get("date_created"),
                "date_modified": record.get("date_modified"),
            }
        )
    missing.sort(key=lambda product: str(product["name"]).casefold())

    logger.info(
        "sync.product_audit_completed",
        upstream=len(catalog),
        stored=len(stored_ids),
        existing=existing_count,
        missing=len(missing),
    )
    return ProductAudit(
        total_upstream=len(catalog),
        total_stored=len(stored_ids),
        existing_count=existing_count,
        missing=missing,
    )


# ── Celery tasks ───────────────────────────────────────────────────────────


def _run_sync_task(task, *, user_id: str, integration: str, sync_type: str, sync_mode: str = "full") -> dict:
    import asyncio

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    run_id = task.request.id or "manual"
    logger.info(f"sync.{integration}.{sync_type}.task_started", user_id=user_id, run_id=run_id)

    async def _sync():
        from core.config import get_settings

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with async_session() as db:
                result = await run_configured_sync(
                    db, user_id=user_id, integration=integration, sync_type=sync_type, sync_mode=sync_mode
                )
                return {
                    "status": result.status.value,
                    "user_id": user_id,
                    "records_fetched": result.records_fetched,
                    "records_synced": result.records_synced,
                    "records_failed": result.records_failed,
                    "run_id": run_id,
                }
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_sync())
    except PipelineError as exc:
        logger.error(f"sync.{integration}.{sync_type}.task_failed", user_id=user_id, error=exc.message)
        return {
            "status": "failed",
            "user_id": user_id,
            "error": exc.message,
            "details": exc.details,
            "run_id": run_id,
        }


@celery_app.task(name="workers.sync.sync_woocommerce_products", bind=True, acks_late=True)
def sync_woocommerce_products(self, user_id: str, sync_mode: str = "full"):
    """Scheduled catalog pull (hourly via Celery Beat)."""
    return _run_sync_task(self, user_id=user_id, integration="woocommerce", sync_type="products", sync_mode=sync_mode)


@celery_app.task(name="workers.sync.sync_woocommerce_orders", bind=True, acks_late=True)
def sync_woocommerce_orders(self, user_id: str, sync_mode: str = "full"):
    return _run_sync_task(self, user_id=user_id, integration="woocommerce", sync_type="orders", sync_mode=sync_mode)


@celery_app.task(name="workers.sync.sync_ongoing_orders", bind=True, acks_late=True)
def sync_ongoing_orders(self, user_id: str):
    return _run_sync_task(self, user_id=user_id, integration="ongoing_wms", sync_type="orders")


@celery_app.task(name="workers.sync.sync_rackbeat_purchase_orders", bind=True, acks_late=True)
def sync_rackbeat_purchase_orders(self, user_id: str):
    return _run_sync_task(self, user_id=user_id, integration="rackbeat", sync_type="purchase_orders")
