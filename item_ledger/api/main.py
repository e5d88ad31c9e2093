"""Entry point for the FastAPI application.

This module constructs the FastAPI app, includes all routers and
sets up startup and shutdown events. When run with uvicorn it
initialises the database and loads configuration from
``item_ledger.core.config``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from item_ledger.core.config import settings
from item_ledger.core.database import init_db, get_db_debug_info
from item_ledger.core.errors import LedgerError
from item_ledger.core.observability import init_sentry
from item_ledger.api.dependencies import get_rule_table
from item_ledger.api.error_handlers import (
    generic_exception_handler,
    ledger_exception_handler,
    validation_exception_handler,
)
from item_ledger.api.endpoints.health import router as health_router
from item_ledger.api.routes.categories import router as categories_router
from item_ledger.api.routes.item_names import router as item_names_router
from item_ledger.api.routes.oracle import router as oracle_router
from item_ledger.api.routes.receipts import router as receipts_router

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    # Startup
    logger.info("Starting up...")
    # Centralised Sentry init (idempotent)
    if init_sentry("api"):
        logger.info("Sentry SDK initialized (api)")
    await init_db()
    # Load the rule table now so a broken rules file fails startup, not a request
    rules = get_rule_table()
    logger.info("Categorization rule table ready (%d rules)", len(rules))
    yield
    # Shutdown
    logger.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    lifespan=lifespan,
)


# Middleware to enrich Sentry scope with lightweight request + user info
@app.middleware("http")
async def sentry_context_middleware(request: Request, call_next):
    if settings.SENTRY_DSN:
        scope = sentry_sdk.get_current_scope()
        scope.set_tag("path", request.url.path)
        scope.set_tag("method", request.method)
        uid = request.headers.get("x-user-id")
        if uid:
            scope.set_user({"id": uid})
    return await call_next(request)


"""CORS configuration.

In development allow all origins; otherwise use BACKEND_CORS_ORIGINS,
deduplicated while preserving order.
"""
env_is_dev = (settings.ENVIRONMENT or "development").lower() == "development"
allow_origins = ["*"] if env_is_dev else list(settings.BACKEND_CORS_ORIGINS or [])
seen = set()
allow_origins = [o for o in allow_origins if not (o in seen or seen.add(o))]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register custom exception handlers
app.add_exception_handler(LedgerError, ledger_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include routers
app.include_router(health_router)
app.include_router(categories_router)
app.include_router(item_names_router)
app.include_router(receipts_router)
app.include_router(oracle_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": f"Welcome to the {settings.PROJECT_NAME} API"}


@app.get("/debug/db")
async def db_debug():
    """Return non-sensitive DB diagnostics (for development)."""
    return get_db_debug_info()
