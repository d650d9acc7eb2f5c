"""
Webhooks Router — WooCommerce product and order push notifications.

Each delivery is verified against the raw request body before parsing:
base64(HMAC-SHA256(body, secret)) must equal the signature header.
"""

import json
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db
from core.config import get_settings
from core.exceptions import AuthError, StorageError, ValidationError
from core.security import verify_webhook_signature
from db.upsert import UpsertResult, upsert_orders, upsert_products
from integrations.normalizer import normalize_order, normalize_product

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])
settings = get_settings()
logger = structlog.get_logger()

SIGNATURE_HEADERS = ("x-webhook-signature", "x-wc-webhook-signature")


def _signature_from(request: Request) -> str | None:
    for header in SIGNATURE_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


async def read_verified_payload(request: Request, *, secret: str, topic: str) -> dict[str, Any]:
    """
    Received → SignatureVerified → Parsed.

    Raises AuthError (401) for a missing/mismatched signature and
    ValidationError (400) for a body that is not a JSON object.
    """
    raw_body = await request.body()

    if secret:
        signature = _signature_from(request)
        if not signature:
            logger.warning(f"webhook.{topic}.rejected", reason="missing_signature")
            raise AuthError("Missing webhook signature")
        if not verify_webhook_signature(raw_body, signature, secret):
            logger.warning(f"webhook.{topic}.rejected", reason="invalid_signature", body_bytes=len(raw_body))
            raise AuthError("Invalid webhook signature")
    else:
        logger.warning(f"webhook.{topic}.signature_unchecked", reason="no_secret_configured")

    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError(
            "Invalid JSON payload",
            details=f"Failed to parse request body as JSON: {exc}",
        ) from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload", details="Expected a JSON object")
    return payload


def _write_failure(result: UpsertResult, entity: str) -> JSONResponse | None:
    if not result.failures:
        return None
    return JSONResponse(
        status_code=500,
        content={"error": f"Failed to update {entity} in database", "details": result.failures[0].error},
    )


@router.post("/woocommerce/products")
async def woocommerce_product_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Product created/updated in WooCommerce → upsert by woocommerce_id."""
    payload = await read_verified_payload(
        request, secret=settings.woocommerce_product_webhook_secret, topic="product"
    )
    product = normalize_product(payload, now=datetime.now(timezone.utc))

    try:
        result = await upsert_products(db, [product])
        await db.commit()
    except StorageError as exc:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to update product in database", "details": exc.message},
        )
    failure = _write_failure(result, "product")
    if failure is not None:
        return failure

    logger.info(
        "webhook.product.processed",
        woocommerce_id=product["woocommerce_id"],
        stock_quantity=product["stock_quantity"],
    )
    return {
        "success": True,
        "message": f"Product {product['woocommerce_id']} updated successfully",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/woocommerce/orders")
async def woocommerce_order_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Order created/updated in WooCommerce → upsert order and replace its lines."""
    payload = await read_verified_payload(request, secret=settings.woocommerce_order_webhook_secret, topic="order")
    order = normalize_order(payload)

    try:
        result = await upsert_orders(db, [order])
        await db.commit()
    except StorageError as exc:
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to update order in database", "details": exc.message},
        )
    failure = _write_failure(result, "order")
    if failure is not None:
        return failure

    logger.info(
        "webhook.order.processed",
        external_order_id=order["external_order_id"],
        status=order["status"],
        lines=len(order["lines"]),
    )
    return {
        "success": True,
        "message": f"Order {order['external_order_id']} updated successfully",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
