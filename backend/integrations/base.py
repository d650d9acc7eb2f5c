"""
Upstream Integration Client — Abstract Base Class

Every external system LogiFlow pulls from (WooCommerce, Ongoing WMS,
Rackbeat) implements this interface so the sync workers can page through
any of them the same way.

HTTP failures are classified once, here, into UpstreamError messages a user
can act on. Requests are never retried automatically: a failed sync is
re-run by the user or by the next scheduled run.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import httpx
import structlog

from core.config import get_settings
from core.exceptions import UpstreamError, ValidationError

logger = structlog.get_logger()


# ── Integration types ──────────────────────────────────────────────────────


class IntegrationType(str, Enum):
    """Supported upstream systems."""

    WOOCOMMERCE = "woocommerce"  # e-commerce: products + customer orders
    ONGOING_WMS = "ongoing_wms"  # warehouse: fulfilment orders
    RACKBEAT = "rackbeat"  # purchasing: supplier purchase orders


class SyncStatus(str, Enum):
    """Result status of a sync operation."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some records synced, some failed
    FAILED = "failed"
    NO_DATA = "no_data"


# ── Sync result container ─────────────────────────────────────────────────


@dataclass
class SyncResult:
    """Standardized return from every bulk sync run."""

    status: SyncStatus = SyncStatus.SUCCESS
    records_fetched: int = 0
    records_synced: int = 0
    records_failed: int = 0
    pages_fetched: int = 0
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    def complete(self) -> "SyncResult":
        if self.records_fetched == 0:
            self.status = SyncStatus.NO_DATA
        elif self.records_failed and not self.records_synced:
            self.status = SyncStatus.FAILED
        elif self.records_failed:
            self.status = SyncStatus.PARTIAL
        else:
            self.status = SyncStatus.SUCCESS
        self.completed_at = datetime.utcnow()
        return self


# ── Abstract client ───────────────────────────────────────────────────────


class IntegrationClient(ABC):
    """
    Base class for all upstream connectors.

    Lifecycle:
        1. __init__(user_id, credentials)  validate credential completeness
        2. test_connection()               fetch one page to prove access
        3. fetch_page(page)                one page of raw records
    """

    #: Credential fields that must be present and non-empty.
    required_credentials: tuple[str, ...] = ()
    #: Display name used in error messages.
    display_name: str = ""

    def __init__(
        self,
        user_id: str,
        credentials: dict[str, Any],
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        missing = missing_credentials(self.required_credentials, credentials)
        if missing:
            raise ValidationError(
                f"Incomplete {self.display_name} credentials. Please check your settings.",
                details={"missing": missing},
            )
        self.user_id = user_id
        self.credentials = credentials
        self.transport = transport
        self.settings = get_settings()
        self.logger = logger.bind(
            integration=self.integration_type.value,
            user_id=user_id,
        )

    @property
    @abstractmethod
    def integration_type(self) -> IntegrationType:
        """Return the upstream system this client talks to."""
        ...

    @abstractmethod
    async def fetch_page(self, page: int) -> list[dict[str, Any]]:
        """Fetch one page of raw records; an empty list means no more data."""
        ...

    async def test_connection(self) -> bool:
        await self.fetch_page(1)
        return True

    def default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.settings.user_agent,
        }

    # ── Error classification ──────────────────────────────────────────

    def status_message(self, status_code: int) -> str | None:
        """User-facing message for a known failure status, or None for the generic one."""
        return None

    def timeout_message(self, timeout: float) -> str:
        return (
            f"Request timeout after {timeout:g} seconds. "
            f"Please check your {self.display_name} URL and internet connection."
        )

    def unreachable_message(self) -> str:
        return (
            f"Unable to connect to {self.display_name}. "
            "Please verify your URL is correct and accessible."
        )

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
    ) -> Any:
        """GET a JSON document, translating every failure into UpstreamError."""
        timeout = timeout or self.settings.sync_request_timeout_seconds
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=timeout) as client:
                response = await client.get(url, params=params, headers=self.default_headers(), auth=auth)
        except httpx.TimeoutException as exc:
            raise UpstreamError(self.timeout_message(timeout), details=str(exc)) from exc
        except httpx.TransportError as exc:
            raise UpstreamError(self.unreachable_message(), details=str(exc)) from exc

        if response.is_error:
            self.logger.warning(
                "integration.request_failed",
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            message = self.status_message(response.status_code) or (
                f"{self.display_name} API error: {response.status_code} {response.reason_phrase}"
            )
            raise UpstreamError(message, status_code=response.status_code, details=response.text[:500])

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Invalid JSON response from {self.display_name} API",
                status_code=response.status_code,
                details=response.text[:500],
            ) from exc


def missing_credentials(required: tuple[str, ...], credentials: dict[str, Any] | None) -> list[str]:
    credentials = credentials or {}
    return [name for name in required if not str(credentials.get(name) or "").strip()]


# ── Client registry ───────────────────────────────────────────────────────

_CLIENT_REGISTRY: dict[IntegrationType, type[IntegrationClient]] = {}


def register_client(client_cls: type[IntegrationClient]):
    """Decorator: register a client class for its integration type."""
    _CLIENT_REGISTRY[client_cls.integration_type.fget(None)] = client_cls  # type: ignore
    return client_cls


def get_client_class(integration_type: IntegrationType) -> type[IntegrationClient]:
    client_cls = _CLIENT_REGISTRY.get(integration_type)
    if client_cls is None:
        raise ValueError(f"No client registered for integration type: {integration_type.value}")
    return client_cls


def get_client(
    integration_type: IntegrationType,
    user_id: str,
    credentials: dict[str, Any],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> IntegrationClient:
    """Factory: return the right client instance for the given type."""
    return get_client_class(integration_type)(user_id, credentials, transport=transport)
