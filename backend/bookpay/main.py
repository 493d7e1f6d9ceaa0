# backend/bookpay/main.py
"""
Bookpay API application.

Wires the booking, payment return, Stripe webhook and app key routers into
one FastAPI instance.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import AsyncGenerator

from fastapi import FastAPI

from .core.config import settings
from .database import init_db
from .routes import app_keys, bookings, payment_returns, stripe_webhooks
from .schemas.main_responses import HealthResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = "Bookpay API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables on startup."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(f"Environment: {settings.environment}")
    if settings.stripe_fake:
        logger.warning("Stripe fake client enabled; no real charges will be made")
    init_db()
    yield
    logger.info(f"{API_TITLE} shutting down...")


fastapi_app = FastAPI(
    title=API_TITLE,
    description="Booking payment reconciliation for Stripe checkout",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

fastapi_app.include_router(bookings.router)
fastapi_app.include_router(payment_returns.router)
fastapi_app.include_router(stripe_webhooks.router)
fastapi_app.include_router(app_keys.router)


@fastapi_app.get("/api/health", response_model=HealthResponse)
def api_health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        service="bookpay-api",
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )


app = fastapi_app
