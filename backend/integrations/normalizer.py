"""
Schema Normalizer — external payloads → canonical LogiFlow records.

Every function here is pure: no I/O and no clock reads. Callers that stamp
a receive time pass ``now``. Required identity fields missing →
ValidationError; every other absent or malformed field falls back to a
default.

Record kinds:
    product          WooCommerce product (webhook, REST listing, CSV row)
    order            WooCommerce order
    warehouse_order  Ongoing WMS order (orderInfo / consignee / orderLines)
    purchase_order   Rackbeat purchase order (+ its lines)
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any

from core.exceptions import ValidationError

PRODUCT_DEFAULTS = {
    "stock_status": "instock",
    "product_type": "simple",
    "status": "publish",
}

PRODUKTTYPE_META_KEYS = ("produkttype", "_produkttype")

# Ids and quantities are stored in Integer columns.
MAX_INTEGER = 2**31 - 1

_DOTTED_DATE = re.compile(r"^\d{2}\.\d{2}\.\d{4}$")


# ── Scalar coercion ───────────────────────────────────────────────────────


def _to_finite(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    # "inf", "nan" and 1e400 parse without error
    return number if math.isfinite(number) else None


def _to_int(value: Any, default: int = 0) -> int:
    number = _to_finite(value)
    if number is None or abs(number) > MAX_INTEGER:
        return default
    return int(number)


def _to_float(value: Any, default: float = 0.0) -> float:
    number = _to_finite(value)
    return default if number is None else number


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _external_id(value: Any) -> int | None:
    identity = _to_int(value, default=0)
    return identity if identity > 0 else None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a source date-time string into an aware UTC datetime.

    Naive values are treated as UTC. Absent or unparseable input → None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Any) -> date | None:
    """Parse DD.MM.YYYY (WooCommerce delivery plugin) or ISO date/date-time."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if _DOTTED_DATE.match(text):
        day, month, year = text.split(".")
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def derive_effective_price(regular_price: str, sale_price: str) -> str:
    """Sale price when present and non-empty, else regular price."""
    if sale_price and sale_price.strip():
        return sale_price
    return regular_price


def derive_delivery_status(ordered: int, delivered: int) -> str:
    if delivered <= 0:
        return "pending"
    if delivered < ordered:
        return "partial"
    return "delivered"


def _meta_value(meta_data: Any, *keys: str) -> Any:
    if not isinstance(meta_data, list):
        return None
    for meta in meta_data:
        if isinstance(meta, dict) and meta.get("key") in keys:
            return meta.get("value")
    return None


def _tag_name(value: Any) -> str | None:
    if isinstance(value, list):
        if value and isinstance(value[0], dict):
            return _to_str(value[0].get("name"))
        return None
    if isinstance(value, str):
        return _to_str(value)
    return None


def extract_produkttype(payload: dict[str, Any]) -> str | None:
    """
    Category tag: direct ``produkttype`` field first, ``meta_data`` fallback.

    Either source may hold a list of tagged objects (first element's name
    wins) or a plain string.
    """
    direct = _tag_name(payload.get("produkttype"))
    if direct:
        return direct
    return _tag_name(_meta_value(payload.get("meta_data"), *PRODUKTTYPE_META_KEYS))


# ── Products ──────────────────────────────────────────────────────────────


def normalize_product(payload: dict[str, Any], *, now: datetime) -> dict[str, Any]:
    """Map a WooCommerce product payload to a ``products`` row."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid product data: expected an object")
    woocommerce_id = _external_id(payload.get("id", payload.get("woocommerce_id")))
    if woocommerce_id is None:
        raise ValidationError("Invalid product data: missing ID")
    name = _to_str(payload.get("name"))
    if not name:
        raise ValidationError(f"Invalid product data: missing name for product {woocommerce_id}")

    regular_price = str(payload.get("regular_price") or "0")
    sale_price = str(payload.get("sale_price") or "")

    return {
        "woocommerce_id": woocommerce_id,
        "name": name,
        "sku": _to_str(payload.get("sku")),
        "stock_quantity": _to_int(payload.get("stock_quantity")),
        "stock_status": _to_str(payload.get("stock_status")) or PRODUCT_DEFAULTS["stock_status"],
        "manage_stock": bool(payload.get("manage_stock") or False),
        "price": derive_effective_price(regular_price, sale_price),
        "regular_price": regular_price,
        "sale_price": sale_price,
        "permalink": _to_str(payload.get("permalink")),
        "product_type": _to_str(payload.get("type", payload.get("product_type")))
        or PRODUCT_DEFAULTS["product_type"],
        "status": _to_str(payload.get("status")) or PRODUCT_DEFAULTS["status"],
        "produkttype": extract_produkttype(payload),
        "date_created": parse_timestamp(payload.get("date_created")),
        "date_modified": parse_timestamp(payload.get("date_modified")),
        "last_webhook_update": now,
    }


# ── WooCommerce orders ────────────────────────────────────────────────────


def _customer_name(billing: dict[str, Any], customer_id: Any) -> str:
    company = _to_str(billing.get("company"))
    if company:
        return company
    full_name = f"{billing.get('first_name') or ''} {billing.get('last_name') or ''}".strip()
    return full_name or f"Customer #{customer_id or 0}"


def format_billing_address(billing: dict[str, Any]) -> str | None:
    """``address_1\\npostcode city``, or None when any part is missing."""
    address = _to_str(billing.get("address_1"))
    postcode = _to_str(billing.get("postcode"))
    city = _to_str(billing.get("city"))
    if not (address and postcode and city):
        return None
    return f"{address}\n{postcode} {city}"


def _normalize_order_line(item: dict[str, Any]) -> dict[str, Any]:
    line_item_id = _external_id(item.get("id"))
    if line_item_id is None:
        raise ValidationError("Invalid order data: line item missing ID")
    quantity = _to_int(item.get("quantity"), default=1)
    return {
        "line_item_id": line_item_id,
        "product_id": _external_id(item.get("product_id")),
        "product_name": _to_str(item.get("name")) or "",
        "sku": _to_str(item.get("sku")),
        "quantity": quantity,
        "unit_price": _to_float(item.get("price")),
        "total_price": _to_float(item.get("total")),
        "tax_amount": _to_float(item.get("total_tax")),
        "delivered_quantity": 0,
        "delivery_status": "pending",
        "delivery_date": None,
    }


def normalize_order(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a WooCommerce order payload to a ``customer_orders`` row with ``lines``."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid order data: expected an object")
    order_id = _external_id(payload.get("id"))
    if order_id is None:
        raise ValidationError("Invalid order data: missing ID")

    billing = payload.get("billing") if isinstance(payload.get("billing"), dict) else {}
    raw_lines = payload.get("line_items") if isinstance(payload.get("line_items"), list) else []
    lines = [_normalize_order_line(item) for item in raw_lines if isinstance(item, dict)]
    meta_data = payload.get("meta_data")
    shipping_lines = payload.get("shipping_lines") or []
    shipping_method = None
    if isinstance(shipping_lines, list) and shipping_lines and isinstance(shipping_lines[0], dict):
        shipping_method = _to_str(shipping_lines[0].get("method_title"))

    return {
        "external_order_id": order_id,
        "source": "woocommerce",
        "order_number": _to_str(payload.get("number")) or str(order_id),
        "customer_name": _customer_name(billing, payload.get("customer_id")),
        "status": _to_str(payload.get("status")) or "pending",
        "total_value": _to_float(payload.get("total")),
        "total_items": sum(line["quantity"] for line in lines),
        "date_created": parse_timestamp(payload.get("date_created")),
        "delivery_date": parse_date(_meta_value(meta_data, "_delivery_date")),
        "delivery_type": _to_str(_meta_value(meta_data, "_delivery_type")),
        "shipping_method_title": shipping_method,
        "billing_address": format_billing_address(billing),
        "permalink": _to_str(payload.get("permalink")),
        "lines": lines,
    }


# ── Ongoing WMS orders ────────────────────────────────────────────────────


def _status_text(value: Any) -> str | None:
    # Ongoing returns orderStatus as {"number": 200, "text": "Plockad"}
    if isinstance(value, dict):
        return _to_str(value.get("text")) or _to_str(value.get("number"))
    return _to_str(value)


def normalize_warehouse_order(payload: dict[str, Any]) -> dict[str, Any]:
    """Map an Ongoing WMS order to a ``customer_orders`` row with ``lines``."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid warehouse order: expected an object")
    info = payload.get("orderInfo") if isinstance(payload.get("orderInfo"), dict) else {}
    consignee = payload.get("consignee") if isinstance(payload.get("consignee"), dict) else {}
    order_id = _external_id(info.get("orderId"))
    if order_id is None:
        raise ValidationError("Invalid warehouse order: missing orderInfo.orderId")

    lines = []
    for line in payload.get("orderLines") or []:
        if not isinstance(line, dict):
            continue
        line_item_id = _external_id(line.get("id"))
        if line_item_id is None:
            raise ValidationError(f"Invalid warehouse order {order_id}: line missing ID")
        article = line.get("article") if isinstance(line.get("article"), dict) else {}
        prices = line.get("prices") if isinstance(line.get("prices"), dict) else {}
        ordered = _to_int(line.get("orderedNumberOfItems"))
        delivered = _to_int(line.get("pickedNumberOfItems"))
        lines.append(
            {
                "line_item_id": line_item_id,
                "product_id": None,
                "product_name": _to_str(article.get("articleName")) or "",
                "sku": _to_str(article.get("articleNumber")),
                "quantity": ordered,
                "unit_price": _to_float(prices.get("customerLinePrice") or prices.get("linePrice")),
                "total_price": _to_float(prices.get("linePrice")),
                "tax_amount": 0.0,
                "delivered_quantity": delivered,
                "delivery_status": derive_delivery_status(ordered, delivered),
                "delivery_date": parse_date(line.get("deliveryDate")),
            }
        )

    address_parts = [
        _to_str(consignee.get("address1")),
        " ".join(p for p in (_to_str(consignee.get("postCode")), _to_str(consignee.get("city"))) if p),
    ]
    transporter = payload.get("transporter") if isinstance(payload.get("transporter"), dict) else {}

    return {
        "external_order_id": order_id,
        "source": "ongoing_wms",
        "order_number": _to_str(info.get("orderNumber")) or str(order_id),
        "customer_name": _to_str(consignee.get("name")) or f"Customer #{consignee.get('customerNumber') or 0}",
        "status": _status_text(info.get("orderStatus")) or "pending",
        "total_value": _to_float(info.get("customerPrice")),
        "total_items": _to_int(info.get("orderedNumberOfItems")) or sum(line["quantity"] for line in lines),
        "date_created": parse_timestamp(info.get("createdDate")),
        "delivery_date": parse_date(info.get("deliveryDate")),
        "delivery_type": _to_str(info.get("wayOfDelivery")),
        "shipping_method_title": _to_str(transporter.get("transporterName")),
        "billing_address": "\n".join(p for p in address_parts if p) or None,
        "permalink": None,
        "lines": lines,
    }


# ── Rackbeat purchase orders ──────────────────────────────────────────────


def map_purchase_order_status(po: dict[str, Any]) -> str:
    if po.get("is_received") is True:
        return "delivered"
    text = (po.get("status") or "").lower() if isinstance(po.get("status"), str) else ""
    if any(word in text for word in ("transit", "shipped", "sent")):
        return "in-transit"
    if "delayed" in text or "overdue" in text:
        return "delayed"
    return "pending"


def classify_purchase_order_priority(value: float) -> str:
    if value > 50000:
        return "high"
    if value > 20000:
        return "medium"
    return "low"


def _line_product_number(line: dict[str, Any], position: int) -> str:
    # Lines are keyed by (po_number, product_number); without a supplier number
    # the line id (or position) keeps unkeyed lines distinct.
    supplier_number = _to_str(line.get("supplier_product_number"))
    if supplier_number:
        return supplier_number
    return f"line-{_to_str(line.get('id')) or position}"


def normalize_purchase_order(payload: dict[str, Any], lines: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    """Map a Rackbeat purchase order and its line payloads to ``purchase_orders`` rows."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid purchase order: expected an object")
    number = _to_str(payload.get("number"))
    if not number:
        po_id = _external_id(payload.get("id"))
        if po_id is None:
            raise ValidationError("Invalid purchase order: missing number and id")
        number = f"PO-{po_id}"

    value = _to_float(
        payload.get("total_subtotal") or payload.get("total_amount") or payload.get("total_price_excl_vat")
    )
    supplier = payload.get("supplier") if isinstance(payload.get("supplier"), dict) else {}
    supplier_id = _to_int(payload.get("supplier_id"))

    normalized_lines = []
    for position, line in enumerate(lines or [], start=1):
        if not isinstance(line, dict):
            continue
        normalized_lines.append(
            {
                "po_number": number,
                "product_number": _line_product_number(line, position),
                "product_name": _to_str(line.get("name")) or "",
                "qty": _to_int(line.get("quantity")),
                "unit_price": _to_float(line.get("line_price")),
                "total_price": _to_float(line.get("line_total")),
            }
        )

    return {
        "po_number": number,
        "supplier_name": _to_str(supplier.get("name")) or _to_str(payload.get("supplier_name")) or "Unknown Supplier",
        "supplier_number": _to_str(payload.get("supplier_number")) or f"S-{supplier_id}",
        "status": map_purchase_order_status(payload),
        "priority": classify_purchase_order_priority(value),
        "value": value,
        "currency": _to_str(payload.get("currency_code")) or "NOK",
        "created_date": parse_date(payload.get("created_at")),
        "expected_delivery": parse_date(payload.get("preferred_delivery_date"))
        or parse_date(payload.get("expected_delivery_date")),
        "actual_delivery": parse_date(payload.get("actual_delivery_date")),
        "lines": normalized_lines,
    }


# ── Dispatch ──────────────────────────────────────────────────────────────

_NORMALIZERS = {
    "product": normalize_product,
    "order": normalize_order,
    "warehouse_order": normalize_warehouse_order,
    "purchase_order": normalize_purchase_order,
}


def normalize_record(payload: Any, kind: str, *, now: datetime) -> dict[str, Any]:
    """Normalize one external record of the given kind; ``now`` stamps products."""
    normalizer = _NORMALIZERS.get(kind)
    if normalizer is None:
        raise ValueError(f"Unknown record kind: {kind}")
    if kind == "product":
        return normalizer(payload, now=now)
    return normalizer(payload)
