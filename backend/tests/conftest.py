"""
Test Configuration — Fixtures for async DB, test client, and mock data.

Uses per-test transactions with SAVEPOINT/rollback so each test gets a
clean database state; application commits only release savepoints.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from api.deps import get_current_user, get_db, get_session_factory
from api.main import app
from db.session import Base

# In-memory SQLite for tests; StaticPool keeps one connection per engine.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

USER_ID = "auth0|test-user-id"


@pytest.fixture
async def test_engine():
    """Create a test database engine and build all tables."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take it over.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """A session inside an outer transaction that rolls back after each test."""
    async with test_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint")

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
def session_factory(test_db):
    """
    Stand-in for the app session factory: hands out the test session, one
    borrower at a time, without closing it.
    """
    lock = asyncio.Lock()

    @asynccontextmanager
    async def factory():
        async with lock:
            yield test_db

    return factory


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {"sub": USER_ID, "email": "test@logiflow.local"}


@pytest.fixture
async def client(test_db, mock_user, session_factory):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """
    Seed products and orders covering every risk case:

      - ORD-OVERDUE-BACKORDER: 20 days late, one backordered product → medium risk
      - ORD-OVERDUE-INSTOCK:   late, only in-stock products → not at risk
      - ORD-FUTURE-BACKORDER:  backordered product, delivery next week → not at risk
      - ORD-NO-DATE:           backordered product, no promised date → not at risk
      - ORD-COMPLETED:         completed (outside the keep-set)
      - ORD-WMS:               warehouse order, line matched to a product by SKU
    """
    from db.models import CustomerOrder, OrderLine, Product

    today = datetime.now(timezone.utc).date()

    backordered = Product(woocommerce_id=101, name="Oak Shelf", sku="SHELF-OAK", stock_quantity=-3, price="499")
    in_stock = Product(woocommerce_id=102, name="Pine Shelf", sku="SHELF-PINE", stock_quantity=12, price="299")
    wms_backordered = Product(woocommerce_id=103, name="Wall Bracket", sku="BRK-01", stock_quantity=-1, price="49")
    test_db.add_all([backordered, in_stock, wms_backordered])

    def order(external_id: int, number: str, status: str, delivery: date | None, lines, source="woocommerce"):
        o = CustomerOrder(
            id=uuid.uuid4(),
            external_order_id=external_id,
            order_number=number,
            customer_name=f"Customer {number}",
            status=status,
            total_value=1000.0,
            total_items=sum(q for _, _, q in lines),
            date_created=datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(days=external_id),
            delivery_date=delivery,
            source=source,
        )
        o.lines = [
            OrderLine(line_item_id=i + 1, product_id=pid, sku=sku, product_name="Item", quantity=q)
            for i, (pid, sku, q) in enumerate(lines)
        ]
        return o

    orders = {
        "overdue_backorder": order(
            5001, "ORD-OVERDUE-BACKORDER", "processing", today - timedelta(days=20),
            [(101, "SHELF-OAK", 2), (102, "SHELF-PINE", 1)],
        ),
        "overdue_instock": order(
            5002, "ORD-OVERDUE-INSTOCK", "processing", today - timedelta(days=40), [(102, "SHELF-PINE", 1)]
        ),
        "future_backorder": order(
            5003, "ORD-FUTURE-BACKORDER", "on-hold", today + timedelta(days=7), [(101, "SHELF-OAK", 1)]
        ),
        "no_date": order(5004, "ORD-NO-DATE", "pending", None, [(101, "SHELF-OAK", 1)]),
        "completed": order(
            5005, "ORD-COMPLETED", "completed", today - timedelta(days=60), [(101, "SHELF-OAK", 1)]
        ),
        "wms": order(
            9001, "ORD-WMS", "partially-shipped", today - timedelta(days=35), [(None, "BRK-01", 4)],
            source="ongoing_wms",
        ),
    }
    test_db.add_all(orders.values())
    await test_db.flush()
    await test_db.commit()

    return {
        "products": {"backordered": backordered, "in_stock": in_stock, "wms_backordered": wms_backordered},
        "orders": orders,
        "today": today,
    }
