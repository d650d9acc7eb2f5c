"""
Tests for the order-risk classifier — pure rules plus the DB-backed service.
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from fulfillment.risk import (
    LineStock,
    ProductIndex,
    classify_order,
    classify_risk_level,
    collect_order_lines,
    compute_days_overdue,
    format_risk_reason,
    get_at_risk_orders,
    is_overdue,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _order(delivery: date | None, **overrides):
    fields = {
        "id": uuid.uuid4(),
        "external_order_id": 1,
        "order_number": "1",
        "customer_name": "Kari",
        "status": "processing",
        "source": "woocommerce",
        "total_value": 100.0,
        "delivery_date": delivery,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _line(stock: int | None, line_item_id: int = 1) -> LineStock:
    return LineStock(
        line_item_id=line_item_id,
        product_id=100 + line_item_id,
        sku=None,
        product_name="Item",
        quantity=1,
        stock_quantity=stock,
    )


class TestRules:
    def test_overdue_is_strictly_before_now(self):
        assert is_overdue(date(2026, 2, 28), NOW)
        assert is_overdue(date(2026, 3, 1), NOW)  # midnight UTC has passed
        assert not is_overdue(date(2026, 3, 2), NOW)
        assert not is_overdue(None, NOW)

    def test_days_overdue_rounds_up(self):
        assert compute_days_overdue(date(2026, 2, 20), NOW) == 10  # 9.5 days
        assert compute_days_overdue(date(2026, 2, 20), datetime(2026, 3, 1, tzinfo=timezone.utc)) == 9

    @pytest.mark.parametrize(
        "days,level",
        [(1, "low"), (10, "low"), (14, "low"), (15, "medium"), (30, "medium"), (31, "high"), (120, "high")],
    )
    def test_risk_level_thresholds(self, days, level):
        assert classify_risk_level(days) == level

    def test_reason_text(self):
        assert format_risk_reason(20, 2) == (
            "Order is 20 days past delivery date and contains 2 backordered product(s)"
        )


class TestClassifyOrder:
    def test_overdue_with_backorder_is_at_risk(self):
        order = _order(date(2026, 2, 10))
        assessment = classify_order(order, [_line(-3, 1), _line(5, 2)], NOW)
        assert assessment is not None
        assert assessment.is_at_risk
        assert assessment.days_overdue == 20
        assert assessment.risk_level == "medium"
        assert [line.line_item_id for line in assessment.backordered_lines] == [1]
        assert "1 backordered product(s)" in assessment.risk_reason

    def test_overdue_without_backorder(self):
        assert classify_order(_order(date(2026, 1, 1)), [_line(0), _line(4, 2)], NOW) is None

    def test_backorder_not_yet_due(self):
        assert classify_order(_order(date(2026, 3, 10)), [_line(-1)], NOW) is None

    def test_no_promised_date(self):
        assert classify_order(_order(None), [_line(-1)], NOW) is None

    def test_unknown_product_is_not_backordered(self):
        assert classify_order(_order(date(2026, 1, 1)), [_line(None)], NOW) is None

    def test_no_lines(self):
        assert classify_order(_order(date(2026, 1, 1)), [], NOW) is None

    def test_high_risk(self):
        assessment = classify_order(_order(date(2026, 1, 1)), [_line(-1)], NOW)
        assert assessment.risk_level == "high"


class TestProductIndex:
    def test_lookup_prefers_woocommerce_id_then_sku(self):
        by_id = SimpleNamespace(woocommerce_id=1, sku="A", stock_quantity=-1)
        by_sku = SimpleNamespace(woocommerce_id=2, sku="B", stock_quantity=3)
        index = ProductIndex([by_id, by_sku])
        assert index.lookup(1, "B") is by_id
        assert index.lookup(None, "B") is by_sku
        assert index.lookup(99, "B") is by_sku
        assert index.lookup(99, None) is None

    def test_resolve_unknown_product(self):
        line = SimpleNamespace(line_item_id=1, product_id=5, sku="X", product_name="Gone", quantity=2)
        resolved = ProductIndex([]).resolve(line)
        assert resolved.stock_quantity is None
        assert not resolved.is_backordered


@pytest.mark.asyncio
class TestCollectOrderLines:
    async def test_failed_fetch_yields_empty_lines(self):
        good, bad = uuid.uuid4(), uuid.uuid4()

        async def fetch(session_factory, order_id):
            if order_id == bad:
                raise RuntimeError("connection reset")
            return ["line"]

        lines = await collect_order_lines(None, [good, bad], concurrency=2, fetch=fetch)
        assert lines == {good: ["line"], bad: []}


@pytest.mark.asyncio
class TestGetAtRiskOrders:
    async def test_classifies_seeded_orders(self, test_db, seeded_db, session_factory):
        report = await get_at_risk_orders(test_db, session_factory)

        numbers = [o.order_number for o in report.orders]
        assert numbers == ["ORD-WMS", "ORD-OVERDUE-BACKORDER"]
        assert report.orders[0].risk_level == "high"
        assert report.orders[1].risk_level == "medium"
        # completed orders are outside the default status filter
        assert report.total_orders == 5
        assert report.breakdown == {"high": 1, "medium": 1, "low": 0}

    async def test_warehouse_line_matched_by_sku(self, test_db, seeded_db, session_factory):
        report = await get_at_risk_orders(test_db, session_factory, statuses=["partially-shipped"])
        [assessment] = report.orders
        assert assessment.source == "ongoing_wms"
        assert assessment.backordered_lines[0].sku == "BRK-01"
        assert assessment.backordered_lines[0].stock_quantity == -1

    async def test_status_filter(self, test_db, seeded_db, session_factory):
        report = await get_at_risk_orders(test_db, session_factory, statuses=["on-hold"])
        assert report.total_orders == 1
        assert report.orders == []

    async def test_alias_status_matched(self, test_db, seeded_db, session_factory):
        seeded_db["orders"]["wms"].status = "delvis-levert"
        await test_db.commit()
        report = await get_at_risk_orders(test_db, session_factory, statuses=["partially-shipped"])
        assert [o.order_number for o in report.orders] == ["ORD-WMS"]

    async def test_fixed_clock(self, test_db, seeded_db, session_factory):
        today = seeded_db["today"]
        now = datetime.combine(today, datetime.min.time(), tzinfo=timezone.utc) + timedelta(hours=1)
        report = await get_at_risk_orders(test_db, session_factory, now=now)
        days = {o.order_number: o.days_overdue for o in report.orders}
        assert days == {"ORD-WMS": 36, "ORD-OVERDUE-BACKORDER": 21}
