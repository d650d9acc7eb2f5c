"""
Upstream integration clients package.

Connectors for the systems LogiFlow mirrors:
  - WooCommerce   (e-commerce: products, customer orders, webhooks)
  - Ongoing WMS   (warehouse: fulfilment orders)
  - Rackbeat      (purchasing: supplier purchase orders)

Usage:
    from integrations import get_client, IntegrationType

    client = get_client(
        IntegrationType.WOOCOMMERCE,
        user_id="...",
        credentials={"storeUrl": "...", "consumerKey": "...", "consumerSecret": "..."},
    )
    products = await client.fetch_page(1)
"""

from integrations.base import (
    IntegrationClient,
    IntegrationType,
    SyncResult,
    SyncStatus,
    get_client,
    get_client_class,
    register_client,
)
from integrations.ongoing import OngoingWMSClient
from integrations.rackbeat import RackbeatClient
from integrations.woocommerce import WooCommerceClient, normalize_store_url

__all__ = [
    "IntegrationClient",
    "IntegrationType",
    "SyncResult",
    "SyncStatus",
    "get_client",
    "get_client_class",
    "register_client",
    "OngoingWMSClient",
    "RackbeatClient",
    "WooCommerceClient",
    "normalize_store_url",
]
