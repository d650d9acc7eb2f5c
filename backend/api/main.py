"""
LogiFlow API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("LogiFlow API starting up", version=settings.app_version)
    yield
    logger.info("LogiFlow API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Order, stock and purchase-order reconciliation for small-business logistics",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Import and register routers
from api.v1.routers import (
    integrations,
    orders,
    products,
    purchase_orders,
    sync,
    webhooks,
)

app.include_router(webhooks.router)
app.include_router(sync.router)
app.include_router(orders.router)
app.include_router(products.router)
app.include_router(purchase_orders.router)
app.include_router(integrations.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
