"""
Tests for the retention sweeper.
"""

import pytest
from sqlalchemy import func, select

from db.models import CustomerOrder, OrderLine
from fulfillment.retention import ALREADY_CLEAN_MESSAGE, sweep_inactive_orders
from fulfillment.status import RETENTION_KEEP_STATUSES, OrderStatus, stored_values


class TestStatus:
    def test_keep_set(self):
        assert set(RETENTION_KEEP_STATUSES) == {"processing", "partially-shipped", "delvis-levert"}

    def test_parse_active(self):
        assert OrderStatus.parse("Processing").is_active
        assert OrderStatus.parse("delvis-levert").active.value == "partially-shipped"

    def test_parse_custom_status_kept_verbatim(self):
        status = OrderStatus.parse("wc-awaiting-pickup")
        assert not status.is_active
        assert str(status) == "wc-awaiting-pickup"

    def test_stored_values_expands_aliases(self):
        assert stored_values(["partially-shipped", "on-hold"]) == ["partially-shipped", "delvis-levert", "on-hold"]


@pytest.mark.asyncio
class TestSweep:
    async def test_deletes_orders_outside_keep_set(self, test_db, seeded_db):
        result = await sweep_inactive_orders(test_db)

        # on-hold, pending and completed go; processing x2 and partially-shipped stay
        assert result.deleted_count == 3
        assert result.status_breakdown == {"on-hold": 1, "pending": 1, "completed": 1}
        assert result.remaining == 0
        assert not result.already_clean
        assert {row["order_number"] for row in result.sample} == {
            "ORD-FUTURE-BACKORDER",
            "ORD-NO-DATE",
            "ORD-COMPLETED",
        }

        statuses = (await test_db.execute(select(CustomerOrder.status))).scalars().all()
        assert sorted(statuses) == ["partially-shipped", "processing", "processing"]

    async def test_lines_of_deleted_orders_removed(self, test_db, seeded_db):
        await sweep_inactive_orders(test_db)
        orphaned = (
            await test_db.execute(
                select(func.count())
                .select_from(OrderLine)
                .where(OrderLine.order_id.notin_(select(CustomerOrder.id)))
            )
        ).scalar_one()
        assert orphaned == 0
        assert (await test_db.execute(select(func.count()).select_from(OrderLine))).scalar_one() == 4

    async def test_second_run_reports_already_clean(self, test_db, seeded_db):
        await sweep_inactive_orders(test_db)
        second = await sweep_inactive_orders(test_db)
        assert second.deleted_count == 0
        assert second.already_clean
        assert second.message == ALREADY_CLEAN_MESSAGE

    async def test_alias_status_is_kept(self, test_db, seeded_db):
        seeded_db["orders"]["no_date"].status = "delvis-levert"
        await test_db.commit()

        await sweep_inactive_orders(test_db)
        kept = (
            await test_db.execute(select(CustomerOrder.order_number).where(CustomerOrder.status == "delvis-levert"))
        ).scalars().all()
        assert kept == ["ORD-NO-DATE"]

    async def test_empty_database(self, test_db):
        result = await sweep_inactive_orders(test_db)
        assert result.already_clean
        assert result.status_breakdown == {}

    async def test_every_deleted_order_reported_while_log_sample_is_capped(self, test_db):
        test_db.add_all(
            CustomerOrder(
                external_order_id=800 + n,
                order_number=f"ORD-DONE-{n}",
                customer_name="Done",
                status="completed",
                source="woocommerce",
            )
            for n in range(7)
        )
        await test_db.commit()

        result = await sweep_inactive_orders(test_db)
        assert result.deleted_count == 7
        assert len(result.deleted_orders) == 7
        assert len(result.sample) == 5
        assert {row["order_number"] for row in result.deleted_orders} == {f"ORD-DONE-{n}" for n in range(7)}
