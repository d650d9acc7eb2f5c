"""
Integrations Router — per-user credentials for upstream systems + sync health.
"""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from db.models import Integration, IntegrationSyncLog
from integrations.base import IntegrationType
from integrations.credentials import save_credentials

router = APIRouter(prefix="/api/v1/integrations", tags=["integrations"])

# Hours between syncs before a source counts as stale.
SYNC_FRESHNESS_HOURS = {
    "woocommerce": 2,
    "ongoing_wms": 2,
    "rackbeat": 26,
}


# ─── Schemas ────────────────────────────────────────────────────────────────


class IntegrationResponse(BaseModel):
    integration_id: UUID
    integration_type: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CredentialsRequest(BaseModel):
    credentials: dict[str, Any]


def _parse_type(integration_type: str) -> IntegrationType:
    try:
        return IntegrationType(integration_type)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown integration type: {integration_type}")


# ─── Credentials ────────────────────────────────────────────────────────────


@router.get("/", response_model=list[IntegrationResponse])
async def list_integrations(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List the caller's configured integrations. Secrets are never returned."""
    result = await db.execute(
        select(Integration).where(Integration.user_id == user["sub"]).order_by(Integration.integration_type)
    )
    return result.scalars().all()


@router.put("/{integration_type}", response_model=IntegrationResponse)
async def upsert_integration(
    integration_type: str,
    body: CredentialsRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Create or replace the caller's credentials for one integration type."""
    return await save_credentials(db, user["sub"], _parse_type(integration_type), body.credentials)


@router.delete("/{integration_type}", status_code=204)
async def disconnect_integration(
    integration_type: str,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Remove stored credentials for one integration type."""
    kind = _parse_type(integration_type)
    result = await db.execute(
        select(Integration).where(Integration.user_id == user["sub"], Integration.integration_type == kind.value)
    )
    integration = result.scalar_one_or_none()
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    await db.delete(integration)
    await db.commit()


# ─── Sync Health ────────────────────────────────────────────────────────────


@router.get("/sync-health")
async def get_sync_health(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """
    Last sync per (integration, sync type) for the caller, with freshness and
    the number of failed runs in the last 24 hours.
    """
    user_id = user["sub"]
    latest = await db.execute(
        select(
            IntegrationSyncLog.integration_type,
            IntegrationSyncLog.sync_type,
            func.max(IntegrationSyncLog.started_at).label("last_sync"),
        )
        .where(IntegrationSyncLog.user_id == user_id)
        .group_by(IntegrationSyncLog.integration_type, IntegrationSyncLog.sync_type)
    )

    cutoff_24h = datetime.utcnow() - timedelta(hours=24)
    fail_result = await db.execute(
        select(
            IntegrationSyncLog.integration_type,
            IntegrationSyncLog.sync_type,
            func.count().label("failure_count"),
        )
        .where(
            IntegrationSyncLog.user_id == user_id,
            IntegrationSyncLog.sync_status.in_(["failed", "partial"]),
            IntegrationSyncLog.started_at >= cutoff_24h,
        )
        .group_by(IntegrationSyncLog.integration_type, IntegrationSyncLog.sync_type)
    )
    failures = {(row.integration_type, row.sync_type): row.failure_count for row in fail_result.all()}

    sources = []
    for row in latest.all():
        hours_since = (datetime.utcnow() - row.last_sync).total_seconds() / 3600
        limit = SYNC_FRESHNESS_HOURS.get(row.integration_type, 24)
        sources.append(
            {
                "integration_type": row.integration_type,
                "sync_type": row.sync_type,
                "last_sync": row.last_sync.isoformat(),
                "hours_since_sync": round(hours_since, 1),
                "freshness_hours": limit,
                "freshness_status": "ok" if hours_since <= limit else "stale",
                "failures_24h": failures.get((row.integration_type, row.sync_type), 0),
            }
        )

    return {
        "sources": sources,
        "overall_health": "healthy" if all(s["freshness_status"] == "ok" for s in sources) else "degraded",
        "checked_at": datetime.utcnow().isoformat(),
    }
