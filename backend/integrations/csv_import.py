"""
Product catalog CSV import.

Bootstraps the ``products`` table from a WooCommerce catalog export. The
whole file is validated before anything is written: one bad row rejects the
import with a row-numbered message (the header counts as row 1).
"""

import csv
import io
from datetime import datetime
from typing import Any

import structlog

from core.exceptions import ValidationError
from integrations.normalizer import normalize_product

logger = structlog.get_logger()

TRUE_VALUES = {"true", "1", "yes"}

# Column → product payload key understood by normalize_product.
COLUMN_MAPPING = {
    "woocommerce_id": "id",
    "name": "name",
    "sku": "sku",
    "stock_quantity": "stock_quantity",
    "stock_status": "stock_status",
    "manage_stock": "manage_stock",
    "regular_price": "regular_price",
    "sale_price": "sale_price",
    "permalink": "permalink",
    "product_type": "type",
    "status": "status",
    "produkttype": "produkttype",
}


def parse_csv_line(line: str) -> list[str]:
    """Split one CSV line. Quoted fields may contain commas and ``""`` escapes."""
    return next(csv.reader([line]), [""])


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_VALUES


def parse_product_csv(content: str) -> list[dict[str, Any]]:
    """
    Parse catalog CSV text into product payloads.

    Unknown columns and the ``price`` column are ignored; price is always
    derived from sale/regular price at normalization time.

    Raises:
        ValidationError: no data rows, or a row without woocommerce_id/name.
    """
    rows = list(csv.reader(io.StringIO(content.strip())))
    if len(rows) < 2:
        raise ValidationError("CSV must contain at least a header row and one data row")

    headers = [header.strip().lower() for header in rows[0]]
    payloads: list[dict[str, Any]] = []

    for index, values in enumerate(rows[1:], start=1):
        if not values or (len(values) == 1 and not values[0].strip()):
            continue

        payload: dict[str, Any] = {}
        for position, header in enumerate(headers):
            key = COLUMN_MAPPING.get(header)
            if key is None:
                continue
            value = values[position].strip() if position < len(values) else ""
            payload[key] = _parse_bool(value) if header == "manage_stock" else value

        raw_id = str(payload.get("id") or "")
        if not raw_id.isdigit() or int(raw_id) == 0 or not payload.get("name"):
            raise ValidationError(f"Row {index + 1}: Missing required fields (woocommerce_id, name)")
        payload["id"] = int(raw_id)
        payloads.append(payload)

    logger.info("csv_import.parsed", rows=len(payloads), columns=len(headers))
    return payloads


def normalize_product_csv(content: str, *, now: datetime) -> list[dict[str, Any]]:
    """Parse and normalize a catalog CSV into ``products`` rows stamped with ``now``."""
    return [normalize_product(payload, now=now) for payload in parse_product_csv(content)]
