"""Health check endpoints for monitoring."""
from typing import Dict, Any

from fastapi import APIRouter, Depends
from redis import asyncio as aioredis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from item_ledger.api.dependencies import get_db_session, get_oracle_client
from item_ledger.core.config import settings
from item_ledger.services.oracle import OllamaClient

router = APIRouter(tags=["health"])


@router.api_route("/health", methods=["GET", "HEAD"])
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint (supports GET & HEAD)."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
    }


@router.get("/health/detailed")
async def detailed_health_check(
    db: AsyncSession = Depends(get_db_session),
    oracle: OllamaClient = Depends(get_oracle_client),
) -> Dict[str, Any]:
    """Detailed health check with service status."""
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "services": {},
    }

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {e}"
        health_status["status"] = "degraded"

    # Check Redis (Dramatiq broker)
    try:
        redis = aioredis.from_url(settings.DRAMATIQ_BROKER_URL or settings.REDIS_URL)
        await redis.ping()
        await redis.aclose()
        health_status["services"]["redis"] = "healthy"
    except Exception as e:
        health_status["services"]["redis"] = f"unhealthy: {e}"
        health_status["status"] = "degraded"

    # The oracle is optional for everything but auto categorization
    oracle_status = await oracle.status()
    health_status["services"]["oracle"] = "healthy" if oracle_status["available"] else oracle_status["message"]

    return health_status
