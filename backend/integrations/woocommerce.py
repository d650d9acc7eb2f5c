"""
WooCommerce REST Integration Client

Pages through /wp-json/wc/v3 with consumer key/secret basic auth. Credentials
come from the integrations table (storeUrl, consumerKey, consumerSecret).
"""

from typing import Any
from urllib.parse import urlsplit

from core.exceptions import ValidationError
from integrations.base import IntegrationClient, IntegrationType, register_client

LOOPBACK_HOSTS = {"localhost", "127.0.0.1"}

# Orders still worth tracking; completed/cancelled orders are never pulled.
ORDER_SYNC_STATUSES = "processing,on-hold"


def normalize_store_url(raw_url: str) -> str:
    """
    Canonical store base URL: no trailing slash, https unless loopback.

    Raises:
        ValidationError: empty input or a hostname shorter than 3 characters.
    """
    url = (raw_url or "").strip().rstrip("/")
    if not url:
        raise ValidationError("Invalid store URL format: store URL is empty")

    lowered = url.lower()
    has_scheme = lowered.startswith(("http://", "https://"))
    try:
        host = urlsplit(url if has_scheme else f"//{url}").hostname or ""
    except ValueError as exc:
        raise ValidationError(f"Invalid store URL format: {raw_url}") from exc
    if host in LOOPBACK_HOSTS:
        if not has_scheme:
            url = f"http://{url}"
    elif lowered.startswith("http://"):
        url = f"https://{url[len('http://'):]}"
    elif not lowered.startswith("https://"):
        url = f"https://{url}"

    try:
        hostname = urlsplit(url).hostname or ""
    except ValueError as exc:
        raise ValidationError(f"Invalid store URL format: {raw_url}") from exc
    if len(hostname) < 3:
        raise ValidationError(f"Invalid store URL format: {raw_url}")
    return url


@register_client
class WooCommerceClient(IntegrationClient):
    """Client for the WooCommerce REST API (products and orders)."""

    required_credentials = ("storeUrl", "consumerKey", "consumerSecret")
    display_name = "WooCommerce"

    def __init__(self, user_id: str, credentials: dict[str, Any], **kwargs):
        super().__init__(user_id, credentials, **kwargs)
        self.base_url = normalize_store_url(credentials["storeUrl"])
        self.auth = (credentials["consumerKey"], credentials["consumerSecret"])

    @property
    def integration_type(self) -> IntegrationType:
        return IntegrationType.WOOCOMMERCE

    def status_message(self, status_code: int) -> str | None:
        return {
            401: "Invalid WooCommerce credentials. Please check your Consumer Key and Consumer Secret.",
            403: "Access denied. Please ensure your WooCommerce API keys have read permissions.",
            404: (
                "WooCommerce API not found. Please check your store URL and ensure "
                "WooCommerce REST API is enabled."
            ),
        }.get(status_code)

    def timeout_message(self, timeout: float) -> str:
        return (
            f"Request timeout after {timeout:g} seconds. "
            "Please check your store URL and internet connection."
        )

    def unreachable_message(self) -> str:
        return (
            "Unable to connect to WooCommerce store. "
            "Please verify your store URL is correct and accessible."
        )

    async def _list(self, resource: str, page: int, **params) -> list[dict[str, Any]]:
        data = await self.get_json(
            f"{self.base_url}/wp-json/wc/v3/{resource}",
            params={"per_page": self.settings.woocommerce_page_size, "page": page, **params},
            auth=self.auth,
        )
        return data if isinstance(data, list) else []

    async def fetch_products(self, page: int, **filters: str) -> list[dict[str, Any]]:
        """Fetch one page of products; ``filters`` are date filters such as ``modified_after``."""
        return await self._list("products", page, **filters)

    async def fetch_orders(self, page: int, **filters: str) -> list[dict[str, Any]]:
        """Fetch one page of open orders; ``filters`` are date filters such as ``after``/``before``."""
        return await self._list("orders", page, status=ORDER_SYNC_STATUSES, **filters)

    async def fetch_page(self, page: int) -> list[dict[str, Any]]:
        return await self.fetch_products(page)
