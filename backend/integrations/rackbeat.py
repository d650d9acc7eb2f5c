"""
Rackbeat Integration Client

Supplier purchase orders and their lines. Bearer API key auth; the listing is
paginated through ``meta.pagination`` (current_page / last_page).
"""

from typing import Any

from integrations.base import IntegrationClient, IntegrationType, register_client
from core.exceptions import UpstreamError


@register_client
class RackbeatClient(IntegrationClient):
    """Client for the Rackbeat purchasing API."""

    required_credentials = ("apiKey",)
    display_name = "Rackbeat"

    def __init__(self, user_id: str, credentials: dict[str, Any], **kwargs):
        super().__init__(user_id, credentials, **kwargs)
        self.base_url = self.settings.rackbeat_api_url.rstrip("/")
        self.last_page: int | None = None

    @property
    def integration_type(self) -> IntegrationType:
        return IntegrationType.RACKBEAT

    def default_headers(self) -> dict[str, str]:
        return {**super().default_headers(), "Authorization": f"Bearer {self.credentials['apiKey']}"}

    def status_message(self, status_code: int) -> str | None:
        return {
            401: "Invalid Rackbeat API key. Please check your credentials in Settings.",
            403: "Access denied. Please ensure your Rackbeat API key has the necessary permissions.",
            404: "Rackbeat API endpoint not found. Please verify your account has access to purchase orders.",
        }.get(status_code)

    async def fetch_page(self, page: int) -> list[dict[str, Any]]:
        """
        Fetch one page of purchase orders.

        Records ``last_page`` from the pagination block so callers can stop
        before requesting past the end.
        """
        data = await self.get_json(
            f"{self.base_url}/purchase-orders",
            params={"page": page, "per_page": self.settings.rackbeat_page_size},
        )
        if not isinstance(data, dict):
            return []
        records = data.get("data")
        if not isinstance(records, list):
            records = data.get("purchase_orders")
        pagination = (data.get("meta") or {}).get("pagination") or {}
        self.last_page = pagination.get("last_page")
        return records if isinstance(records, list) else []

    def has_more_pages(self, page: int) -> bool:
        return self.last_page is None or page < self.last_page

    async def fetch_lines(self, po_number: str) -> list[dict[str, Any]]:
        """Fetch a purchase order's lines. Any failure yields an empty list."""
        try:
            data = await self.get_json(
                f"{self.base_url}/purchase-orders/{po_number}/lines",
                timeout=self.settings.sync_line_timeout_seconds,
            )
        except UpstreamError as exc:
            self.logger.warning("rackbeat.lines_fetch_failed", po_number=po_number, error=exc.message)
            return []
        lines = data.get("data") if isinstance(data, dict) else None
        return lines if isinstance(lines, list) else []
