"""User-aware scheduler helpers for Celery beat fan-out."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.scheduler.dispatch_configured_users",
    bind=True,
    acks_late=True,
)
def dispatch_configured_users(
    self,
    task_name: str,
    integration_type: str,
    task_kwargs: dict | None = None,
):
    """
    Dispatch a user-scoped sync task to every user with credentials for
    ``integration_type``.
    """
    from core.config import get_settings
    from db.models import Integration

    run_id = self.request.id or "manual"
    payload = dict(task_kwargs or {})

    if not task_name.startswith("workers."):
        return {"status": "failed", "reason": "invalid_task_name", "task_name": task_name}

    async def _dispatch():
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession)
            async with async_session() as db:
                result = await db.execute(
                    select(Integration.user_id)
                    .where(Integration.integration_type == integration_type)
                    .order_by(Integration.created_at)
                )
                users = [str(row.user_id) for row in result.all()]

            dispatched = 0
            for user_id in users:
                kwargs = dict(payload)
                kwargs["user_id"] = user_id
                celery_app.send_task(task_name, kwargs=kwargs)
                dispatched += 1

            summary = {
                "status": "success",
                "task_name": task_name,
                "integration_type": integration_type,
                "user_count": len(users),
                "dispatched_count": dispatched,
                "triggered_at": datetime.now(timezone.utc).isoformat(),
                "run_id": run_id,
            }
            logger.info("scheduler.dispatch_complete", **summary)
            return summary
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_dispatch())
    except Exception as exc:  # noqa: BLE001
        logger.error("scheduler.dispatch_failed", task_name=task_name, error=str(exc), exc_info=True)
        raise
