"""
API Tests — WooCommerce webhook ingestion.
"""

import json

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from core.security import compute_webhook_signature
from db.models import CustomerOrder, OrderLine, Product

SECRET = "whsec_products"
ORDER_SECRET = "whsec_orders"

PRODUCT = {
    "id": 101,
    "name": "Oak Shelf",
    "sku": "SHELF-OAK",
    "stock_quantity": -3,
    "regular_price": "499",
    "sale_price": "",
    "meta_data": [{"key": "produkttype", "value": [{"name": "Hyller"}]}],
}


@pytest.fixture
def webhook_secrets(monkeypatch):
    from api.v1.routers import webhooks

    monkeypatch.setattr(webhooks.settings, "woocommerce_product_webhook_secret", SECRET)
    monkeypatch.setattr(webhooks.settings, "woocommerce_order_webhook_secret", ORDER_SECRET)


def _signed(payload, secret: str = SECRET, header: str = "X-Webhook-Signature") -> dict:
    return _signed_body(json.dumps(payload).encode(), secret, header)


def _signed_body(body: bytes, secret: str = SECRET, header: str = "X-Webhook-Signature") -> dict:
    return {
        "content": body,
        "headers": {"Content-Type": "application/json", header: compute_webhook_signature(body, secret)},
    }


@pytest.mark.asyncio
class TestProductWebhook:
    async def test_valid_delivery_upserts_product(self, client: AsyncClient, test_db, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **_signed(PRODUCT))
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["message"] == "Product 101 updated successfully"
        assert "timestamp" in data

        product = (await test_db.execute(select(Product).where(Product.woocommerce_id == 101))).scalar_one()
        assert product.stock_quantity == -3
        assert product.price == "499"
        assert product.produkttype == "Hyller"
        assert product.last_webhook_update is not None

    async def test_redelivery_updates_in_place(self, client: AsyncClient, test_db, webhook_secrets):
        await client.post("/api/v1/webhooks/woocommerce/products", **_signed(PRODUCT))
        resp = await client.post(
            "/api/v1/webhooks/woocommerce/products", **_signed({**PRODUCT, "stock_quantity": 8})
        )
        assert resp.status_code == 200
        rows = (await test_db.execute(select(Product.stock_quantity))).scalars().all()
        assert rows == [8]

    async def test_woocommerce_header_accepted(self, client: AsyncClient, webhook_secrets):
        resp = await client.post(
            "/api/v1/webhooks/woocommerce/products", **_signed(PRODUCT, header="X-WC-Webhook-Signature")
        )
        assert resp.status_code == 200

    async def test_tampered_body_rejected(self, client: AsyncClient, test_db, webhook_secrets):
        request = _signed(PRODUCT)
        request["content"] = request["content"].replace(b"-3", b"99")
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **request)
        assert resp.status_code == 401
        assert resp.json()["error"] == "Invalid webhook signature"
        assert (await test_db.execute(select(Product))).scalars().all() == []

    async def test_missing_signature_rejected(self, client: AsyncClient, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/products", json=PRODUCT)
        assert resp.status_code == 401
        assert resp.json()["error"] == "Missing webhook signature"

    async def test_signature_with_wrong_secret(self, client: AsyncClient, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **_signed(PRODUCT, secret="other"))
        assert resp.status_code == 401

    async def test_invalid_json(self, client: AsyncClient, webhook_secrets):
        body = b"{not json"
        resp = await client.post(
            "/api/v1/webhooks/woocommerce/products",
            content=body,
            headers={"X-Webhook-Signature": compute_webhook_signature(body, SECRET)},
        )
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "Invalid JSON payload"
        assert "Failed to parse" in data["details"]

    async def test_json_array_rejected(self, client: AsyncClient, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **_signed([PRODUCT]))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid JSON payload"

    async def test_missing_id(self, client: AsyncClient, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **_signed({"name": "No id"}))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid product data: missing ID"

    async def test_out_of_range_stock_defaults_to_zero(self, client: AsyncClient, test_db, webhook_secrets):
        body = b'{"id": 5, "name": "X", "stock_quantity": 1e400}'
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **_signed_body(body))
        assert resp.status_code == 200
        product = (await test_db.execute(select(Product).where(Product.woocommerce_id == 5))).scalar_one()
        assert product.stock_quantity == 0

    @pytest.mark.parametrize("raw_id", [b"1e400", b"Infinity", b"NaN", b"99999999999"])
    async def test_out_of_range_id_rejected(self, client: AsyncClient, webhook_secrets, raw_id):
        body = b'{"id": ' + raw_id + b', "name": "X"}'
        resp = await client.post("/api/v1/webhooks/woocommerce/products", **_signed_body(body))
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid product data: missing ID"

    async def test_unsigned_accepted_without_secret(self, client: AsyncClient, monkeypatch):
        from api.v1.routers import webhooks

        monkeypatch.setattr(webhooks.settings, "woocommerce_product_webhook_secret", "")
        resp = await client.post("/api/v1/webhooks/woocommerce/products", json=PRODUCT)
        assert resp.status_code == 200


@pytest.mark.asyncio
class TestOrderWebhook:
    ORDER = {
        "id": 5001,
        "status": "processing",
        "billing": {"company": "Nordmann AS"},
        "meta_data": [{"key": "_delivery_date", "value": "01.02.2026"}],
        "line_items": [{"id": 1, "product_id": 101, "quantity": 2}, {"id": 2, "product_id": 102}],
    }

    async def test_order_and_lines_stored(self, client: AsyncClient, test_db, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/orders", **_signed(self.ORDER, ORDER_SECRET))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Order 5001 updated successfully"

        order = (await test_db.execute(select(CustomerOrder))).scalar_one()
        assert order.customer_name == "Nordmann AS"
        lines = (await test_db.execute(select(OrderLine))).scalars().all()
        assert len(lines) == 2

    async def test_lines_replaced_on_update(self, client: AsyncClient, test_db, webhook_secrets):
        await client.post("/api/v1/webhooks/woocommerce/orders", **_signed(self.ORDER, ORDER_SECRET))
        updated = {**self.ORDER, "line_items": [{"id": 3, "product_id": 103}]}
        await client.post("/api/v1/webhooks/woocommerce/orders", **_signed(updated, ORDER_SECRET))

        line_ids = (await test_db.execute(select(OrderLine.line_item_id))).scalars().all()
        assert line_ids == [3]

    async def test_product_secret_does_not_sign_orders(self, client: AsyncClient, webhook_secrets):
        resp = await client.post("/api/v1/webhooks/woocommerce/orders", **_signed(self.ORDER, SECRET))
        assert resp.status_code == 401
