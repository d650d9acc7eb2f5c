"""
API Tests — product listing and CSV import.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from db.models import Product

CSV = (
    "woocommerce_id,name,sku,stock_quantity,regular_price,sale_price,produkttype\n"
    '201,"Shelf, oak",OAK-1,-2,499,449,Hyller\n'
    "202,Lamp,LMP-1,5,299,,Lamper\n"
)


@pytest.mark.asyncio
class TestProductsList:
    async def test_list_products(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/products/")
        assert resp.status_code == 200
        names = [p["name"] for p in resp.json()]
        assert names == ["Oak Shelf", "Pine Shelf", "Wall Bracket"]

    async def test_backordered_filter(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/products/", params={"backordered": "true"})
        assert resp.status_code == 200
        assert {p["woocommerce_id"] for p in resp.json()} == {101, 103}

    async def test_get_by_woocommerce_id(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/products/102")
        assert resp.status_code == 200
        assert resp.json()["sku"] == "SHELF-PINE"

    async def test_get_not_found(self, client: AsyncClient):
        resp = await client.get("/api/v1/products/999")
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestCsvImport:
    async def test_import(self, client: AsyncClient, test_db):
        resp = await client.post("/api/v1/products/import-csv", json={"csvContent": CSV})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["importedCount"] == 2
        assert data["errorCount"] == 0
        assert data["totalProcessed"] == 2
        assert data["errorDetails"] == []

        product = (await test_db.execute(select(Product).where(Product.woocommerce_id == 201))).scalar_one()
        assert product.name == "Shelf, oak"
        assert product.price == "449"
        assert product.produkttype == "Hyller"

    async def test_reimport_is_idempotent(self, client: AsyncClient, test_db):
        await client.post("/api/v1/products/import-csv", json={"csvContent": CSV})
        await client.post("/api/v1/products/import-csv", json={"csvContent": CSV})
        assert (await test_db.execute(select(func.count()).select_from(Product))).scalar_one() == 2

    async def test_bad_row_rejects_whole_file(self, client: AsyncClient, test_db):
        content = CSV + ",Nameless id,X,1,1,,\n"
        resp = await client.post("/api/v1/products/import-csv", json={"csvContent": content})
        assert resp.status_code == 400
        assert resp.json()["error"] == "CSV parsing error: Row 4: Missing required fields (woocommerce_id, name)"
        assert (await test_db.execute(select(func.count()).select_from(Product))).scalar_one() == 0

    async def test_header_only(self, client: AsyncClient):
        resp = await client.post("/api/v1/products/import-csv", json={"csvContent": "woocommerce_id,name"})
        assert resp.status_code == 400
        assert "at least a header row" in resp.json()["error"]

    async def test_missing_content(self, client: AsyncClient):
        resp = await client.post("/api/v1/products/import-csv", json={})
        assert resp.status_code == 422
