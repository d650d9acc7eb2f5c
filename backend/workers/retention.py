"""
Retention Worker — scheduled sweep of finished orders.

Scheduled via Celery Beat (daily). Safe to run any number of times.
"""

import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.retention.sweep_inactive_orders",
    bind=True,
    acks_late=True,
)
def sweep_inactive_orders_task(self):
    """Delete orders outside the keep-set and report what was removed."""
    from core.config import get_settings
    from fulfillment.retention import sweep_inactive_orders

    run_id = self.request.id or "manual"
    logger.info("retention.task_started", run_id=run_id)

    async def _sweep():
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            async with async_session() as db:
                result = await sweep_inactive_orders(db)
            return {
                "status": "success",
                "message": result.message,
                "deleted_count": result.deleted_count,
                "remaining": result.remaining,
                "run_id": run_id,
            }
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_sweep())
    except Exception as exc:  # noqa: BLE001
        logger.error("retention.task_failed", error=str(exc), run_id=run_id, exc_info=True)
        raise
