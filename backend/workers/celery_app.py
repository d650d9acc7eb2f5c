"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "logiflow",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.sync", "workers.scheduler", "workers.retention"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.sync.*": {"queue": "sync"},
        "workers.scheduler.*": {"queue": "sync"},
        "workers.retention.*": {"queue": "maintenance"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Sync jobs fan out across users via workers.scheduler.dispatch_configured_users.
    beat_schedule={
        # ── Data Sync ───────────────────────────────────────────────
        "sync-woocommerce-products-hourly": {
            "task": "workers.scheduler.dispatch_configured_users",
            "schedule": crontab(minute=0),
            "kwargs": {
                "task_name": "workers.sync.sync_woocommerce_products",
                "integration_type": "woocommerce",
            },
            "options": {"queue": "sync"},
        },
        "sync-woocommerce-orders-30m": {
            "task": "workers.scheduler.dispatch_configured_users",
            "schedule": crontab(minute="*/30"),
            "kwargs": {
                "task_name": "workers.sync.sync_woocommerce_orders",
                "integration_type": "woocommerce",
            },
            "options": {"queue": "sync"},
        },
        "sync-ongoing-orders-hourly": {
            "task": "workers.scheduler.dispatch_configured_users",
            "schedule": crontab(minute=15),  # Offset from the WooCommerce order pull
            "kwargs": {
                "task_name": "workers.sync.sync_ongoing_orders",
                "integration_type": "ongoing_wms",
            },
            "options": {"queue": "sync"},
        },
        "sync-rackbeat-purchase-orders-daily": {
            "task": "workers.scheduler.dispatch_configured_users",
            "schedule": crontab(hour=5, minute=0),
            "kwargs": {
                "task_name": "workers.sync.sync_rackbeat_purchase_orders",
                "integration_type": "rackbeat",
            },
            "options": {"queue": "sync"},
        },
        # ── Maintenance ─────────────────────────────────────────────
        "retention-sweep-daily": {
            "task": "workers.retention.sweep_inactive_orders",
            "schedule": crontab(hour=2, minute=0),
            "options": {"queue": "maintenance"},
        },
    },
)
