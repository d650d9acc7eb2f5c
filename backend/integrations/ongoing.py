"""
Ongoing WMS Integration Client

Basic-auth GET of the warehouse order listing. The listing endpoint is not
paginated: page 1 returns every order, later pages return nothing.
"""

from typing import Any

from integrations.base import IntegrationClient, IntegrationType, register_client


def normalize_base_url(raw_url: str) -> str:
    url = raw_url.strip().rstrip("/")
    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


@register_client
class OngoingWMSClient(IntegrationClient):
    """Client for the Ongoing WMS REST API."""

    required_credentials = ("username", "password", "baseUrl")
    display_name = "Ongoing WMS"

    def __init__(self, user_id: str, credentials: dict[str, Any], **kwargs):
        super().__init__(user_id, credentials, **kwargs)
        self.base_url = normalize_base_url(credentials["baseUrl"])
        self.auth = (credentials["username"], credentials["password"])

    @property
    def integration_type(self) -> IntegrationType:
        return IntegrationType.ONGOING_WMS

    def status_message(self, status_code: int) -> str | None:
        return {
            401: "Invalid Ongoing WMS credentials. Please check your username and password.",
            403: "Access denied. Please ensure your Ongoing WMS user has access to orders.",
            404: "Ongoing WMS API not found. Please check your base URL.",
        }.get(status_code)

    def unreachable_message(self) -> str:
        return "Unable to connect to Ongoing WMS. Please verify your base URL is correct and accessible."

    async def fetch_orders(self) -> list[dict[str, Any]]:
        data = await self.get_json(f"{self.base_url}/api/v1/orders", auth=self.auth)
        if isinstance(data, dict):
            data = data.get("orders") or []
        return data if isinstance(data, list) else []

    async def fetch_page(self, page: int) -> list[dict[str, Any]]:
        if page > 1:
            return []
        return await self.fetch_orders()
