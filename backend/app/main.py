# backend/app/main.py
"""
FastAPI application for the reservation engine.

Routes live under /api/v1/tenants/{tenant_id}; /metrics is unversioned.
"""

import logging

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .routes.v1 import prometheus as prometheus_v1, reservations as reservations_v1

API_TITLE = "Reservation Engine"
API_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build the application with all routers mounted."""
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url=None,
    )

    # Create API v1 router
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(reservations_v1.router, prefix="/tenants/{tenant_id}")
    app.include_router(api_v1)

    # Infrastructure routes (intentionally unversioned)
    app.include_router(prometheus_v1.router)

    logger.info("Reservation engine app created (environment=%s)", settings.environment)
    return app


app = create_app()
