"""
Idempotent Upsert Writer

Writes normalized records keyed by their natural key with
INSERT ... ON CONFLICT DO UPDATE, replacing every non-key column. Records are
written in fixed-size chunks, each inside its own SAVEPOINT, so a rejected
chunk is recorded and skipped without undoing the chunks before it.

Callers own the surrounding transaction and commit once they are done.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import Table, delete, insert as core_insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.exceptions import StorageError
from db.models import CustomerOrder, OrderLine, Product, PurchaseOrder, PurchaseOrderLine

logger = structlog.get_logger()

# Columns an upsert never overwrites on an existing row.
PRESERVED_COLUMNS = {"id", "created_at"}


# ── Result containers ─────────────────────────────────────────────────────


@dataclass
class ChunkFailure:
    """One rejected chunk: where it started, why, and what was in it."""

    offset: int
    error: str
    records: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.offset + 1, "error": self.error, "data": self.records}


@dataclass
class UpsertResult:
    succeeded: int = 0
    failed: int = 0
    failures: list[ChunkFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def merge(self, other: "UpsertResult") -> "UpsertResult":
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.failures.extend(other.failures)
        return self


# ── Helpers ───────────────────────────────────────────────────────────────


def _dialect_insert(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise StorageError(f"Upsert is not supported on the {dialect} dialect")


def dedupe_by_key(records: list[dict[str, Any]], key_columns: tuple[str, ...]) -> list[dict[str, Any]]:
    """Collapse records sharing a natural key; the last occurrence wins."""
    latest: dict[tuple, dict[str, Any]] = {}
    for record in records:
        latest[tuple(record.get(column) for column in key_columns)] = record
    return list(latest.values())


def build_upsert(db: AsyncSession, table: Table, rows: list[dict[str, Any]], key_columns: tuple[str, ...]):
    insert = _dialect_insert(db)
    now = datetime.utcnow()
    if "updated_at" in table.c:
        rows = [{**row, "updated_at": now} for row in rows]
    stmt = insert(table).values(rows)
    update_columns = {
        column.name: stmt.excluded[column.name]
        for column in table.columns
        if column.name not in key_columns
        and column.name not in PRESERVED_COLUMNS
        and column.name in rows[0]
    }
    return stmt.on_conflict_do_update(index_elements=list(key_columns), set_=update_columns)


def _is_disconnect(exc: SQLAlchemyError) -> bool:
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


async def write_in_chunks(
    db: AsyncSession,
    records: list[dict[str, Any]],
    write_chunk,
    *,
    entity: str,
    chunk_size: int | None = None,
) -> UpsertResult:
    """
    Run ``write_chunk(db, chunk)`` for each chunk inside a SAVEPOINT.

    Rejected chunks become ChunkFailure entries. A lost connection aborts the
    whole batch with StorageError.
    """
    size = chunk_size or get_settings().upsert_chunk_size
    result = UpsertResult()

    for offset in range(0, len(records), size):
        chunk = records[offset : offset + size]
        try:
            async with db.begin_nested():
                await write_chunk(db, chunk)
        except SQLAlchemyError as exc:
            if _is_disconnect(exc):
                raise StorageError("Database connection lost during upsert", details=str(exc)) from exc
            message = str(getattr(exc, "orig", None) or exc)
            logger.warning(
                "upsert.chunk_failed",
                entity=entity,
                offset=offset,
                size=len(chunk),
                error=message,
            )
            result.failed += len(chunk)
            result.failures.append(ChunkFailure(offset=offset, error=message, records=chunk))
        else:
            result.succeeded += len(chunk)

    logger.info(
        "upsert.completed",
        entity=entity,
        succeeded=result.succeeded,
        failed=result.failed,
    )
    return result


# ── Entity writers ────────────────────────────────────────────────────────


async def upsert_records(
    db: AsyncSession,
    table: Table,
    records: list[dict[str, Any]],
    key_columns: tuple[str, ...],
    *,
    chunk_size: int | None = None,
) -> UpsertResult:
    """Generic natural-key upsert for flat records (no child rows)."""
    rows = dedupe_by_key(records, key_columns)

    async def write_chunk(session: AsyncSession, chunk: list[dict[str, Any]]) -> None:
        await session.execute(build_upsert(session, table, chunk, key_columns))

    return await write_in_chunks(db, rows, write_chunk, entity=table.name, chunk_size=chunk_size)


async def upsert_products(
    db: AsyncSession, records: list[dict[str, Any]], *, chunk_size: int | None = None
) -> UpsertResult:
    return await upsert_records(db, Product.__table__, records, ("woocommerce_id",), chunk_size=chunk_size)


async def upsert_orders(
    db: AsyncSession, records: list[dict[str, Any]], *, chunk_size: int | None = None
) -> UpsertResult:
    """
    Upsert orders by (source, external_order_id) and replace their lines.

    Each record carries its lines under ``lines``; an order and its lines
    succeed or fail together.
    """
    key_columns = ("source", "external_order_id")
    orders_table = CustomerOrder.__table__
    lines_table = OrderLine.__table__
    rows = dedupe_by_key(records, key_columns)

    async def write_chunk(session: AsyncSession, chunk: list[dict[str, Any]]) -> None:
        order_rows = [{k: v for k, v in record.items() if k != "lines"} for record in chunk]
        stmt = build_upsert(session, orders_table, order_rows, key_columns).returning(
            orders_table.c.id, orders_table.c.source, orders_table.c.external_order_id
        )
        returned = (await session.execute(stmt)).all()
        order_ids = {(row.source, row.external_order_id): row.id for row in returned}

        await session.execute(delete(lines_table).where(lines_table.c.order_id.in_(list(order_ids.values()))))
        line_rows = [
            {**line, "order_id": order_ids[(record["source"], record["external_order_id"])]}
            for record in chunk
            for line in dedupe_by_key(record.get("lines") or [], ("line_item_id",))
        ]
        if line_rows:
            await session.execute(core_insert(lines_table), line_rows)

    return await write_in_chunks(db, rows, write_chunk, entity="customer_orders", chunk_size=chunk_size)


async def upsert_purchase_orders(
    db: AsyncSession, records: list[dict[str, Any]], *, chunk_size: int | None = None
) -> UpsertResult:
    """Upsert purchase orders by po_number and their lines by (po_number, product_number)."""
    po_table = PurchaseOrder.__table__
    lines_table = PurchaseOrderLine.__table__
    rows = dedupe_by_key(records, ("po_number",))

    async def write_chunk(session: AsyncSession, chunk: list[dict[str, Any]]) -> None:
        po_rows = [{k: v for k, v in record.items() if k != "lines"} for record in chunk]
        await session.execute(build_upsert(session, po_table, po_rows, ("po_number",)))
        line_rows = [
            line
            for record in chunk
            for line in dedupe_by_key(record.get("lines") or [], ("po_number", "product_number"))
        ]
        if line_rows:
            await session.execute(
                build_upsert(session, lines_table, line_rows, ("po_number", "product_number"))
            )

    return await write_in_chunks(db, rows, write_chunk, entity="purchase_orders", chunk_size=chunk_size)
