# backend/courseledger/main.py
from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Request, Response

from . import __version__
from .core.config import is_running_tests, settings
from .core.request_context import attach_request_id_filter, reset_request_id, set_request_id
from .core.ulid_helper import generate_ulid
from .database import init_db
from .errors import register_error_handlers
from .routes import admin_bookings, admin_invoices, health

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
attach_request_id_filter()

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"Course ledger API starting up (environment: {settings.environment})")
    if settings.is_sqlite and not is_running_tests():
        # Local SQLite databases are created on demand; other databases use migrations
        init_db()
    yield
    logger.info("Course ledger API shutting down")


app = FastAPI(
    title="Course Ledger Admin API",
    description="Booking lifecycle and billing documents for course providers",
    version=__version__,
    lifespan=app_lifespan,
)
register_error_handlers(app)


@app.middleware("http")
async def bind_request_id(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Propagate or mint a request id and stamp it on logs and the response."""
    request_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or generate_ulid()
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


api_admin = APIRouter(prefix="/api/admin")
api_admin.include_router(admin_bookings.router, prefix="/bookings")
api_admin.include_router(admin_invoices.router)

app.include_router(api_admin)
app.include_router(health.router)
