"""FastAPI entrypoint for the motocare backend.

This file stays intentionally small so feature modules can be added cleanly:
- `routes/` for thin API endpoints
- `services/` for appointment, invoice and reward business logic
- `db/` for SQLAlchemy models and session management
- `scheduler/` for the APScheduler expiry sweep
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from motocare.core.config import get_settings
from motocare.core.domain_exceptions import DomainException
from motocare.core.exceptions import (
    domain_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from motocare.core.middleware import RequestContextMiddleware
from motocare.db.init_db import init_db
from motocare.routes import admin, appointments, invoices, rewards
from motocare.scheduler.expiry_scheduler import start_scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Initialize app resources before serving traffic."""
    settings = get_settings()

    # Ensure SQL tables exist at app startup.
    init_db()
    logger.info("Database tables initialized.")

    # Start the background expiry sweep (non-blocking).
    scheduler = None
    if settings.scheduler_enabled:
        try:
            scheduler = start_scheduler(settings)
        except Exception:
            logger.exception("Failed to start scheduler.")

    yield

    # Graceful shutdown.
    if scheduler:
        scheduler.shutdown(wait=False)
        logger.info("Expiry scheduler shut down.")


app = FastAPI(
    title="Motocare API",
    version="0.1.0",
    description="Bike-service booking, invoicing and loyalty rewards backend.",
    lifespan=lifespan,
)

app.add_middleware(RequestContextMiddleware)
app.add_exception_handler(DomainException, domain_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(appointments.router)
app.include_router(invoices.router)
app.include_router(rewards.router)
app.include_router(admin.router)


@app.get("/", tags=["health"])
def root() -> dict[str, str]:
    """Simple status endpoint for uptime checks."""
    return {"status": "Motocare Running"}
