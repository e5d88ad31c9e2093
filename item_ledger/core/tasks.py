"""Dramatiq task definitions for background categorization.

The rule job and the oracle batch can take a while (the oracle is
allowed up to ``ORACLE_TIMEOUT_SECONDS``), so the API can hand them to
a Dramatiq worker instead of running them inline.  Start a worker with:

```bash
dramatiq item_ledger.worker --processes 1 --threads 4
```

The broker URL defaults to ``REDIS_URL``; ``DRAMATIQ_BROKER_URL`` takes
precedence when set.  Under ``ENVIRONMENT=test`` an in-memory
``StubBroker`` is installed so actors can be exercised without Redis.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import AgeLimit, TimeLimit, ShutdownNotifications
from dramatiq.results import Results
from dramatiq.results.backends import RedisBackend, StubBackend
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import NullPool

from item_ledger.core import database
from item_ledger.core.config import settings
from item_ledger.core.observability import sentry_breadcrumb, sentry_capture, sentry_metric_inc
from item_ledger.services.categorization_service import CategorizationService

logger = logging.getLogger(__name__)


def _has_mw(broker: dramatiq.Broker, mw_cls: type) -> bool:
    return any(isinstance(m, mw_cls) for m in broker.middleware)


def _configure_broker() -> dramatiq.Broker:
    if (settings.ENVIRONMENT or "").lower() == "test":
        stub = StubBroker()
        stub.add_middleware(Results(backend=StubBackend()))
        stub.emit_after("process_boot")
        dramatiq.set_broker(stub)
        return stub

    broker_url = settings.DRAMATIQ_BROKER_URL or settings.REDIS_URL
    logger.info("Configuring Dramatiq with Redis URL: %s", broker_url)
    redis_broker = RedisBroker(url=broker_url)
    if not _has_mw(redis_broker, Results):
        redis_broker.add_middleware(Results(backend=RedisBackend(url=broker_url)))
    if not _has_mw(redis_broker, AgeLimit):
        redis_broker.add_middleware(AgeLimit())
    if not _has_mw(redis_broker, TimeLimit):
        redis_broker.add_middleware(TimeLimit())
    if not _has_mw(redis_broker, ShutdownNotifications):
        redis_broker.add_middleware(ShutdownNotifications())
    dramatiq.set_broker(redis_broker)
    return redis_broker


# Export the broker for Dramatiq CLI
broker = _configure_broker()


@asynccontextmanager
async def worker_session() -> AsyncIterator[AsyncSession]:
    """Session on a private engine.

    Each actor invocation runs its own event loop, so pooled connections
    from the API engine cannot be shared; a NullPool engine is created and
    disposed per run instead.
    """
    engine = database.build_engine(database.db_url, poolclass=NullPool)
    try:
        async with database.build_sessionmaker(engine)() as session:
            yield session
    finally:
        await engine.dispose()


async def _run_categorization_job(user_scope: str) -> Dict[str, Any]:
    async with worker_session() as session:
        summary = await CategorizationService().run_categorization_job(session, user_scope)
    return summary.model_dump()


async def _auto_categorize(user_scope: str) -> Dict[str, Any]:
    async with worker_session() as session:
        categories = await CategorizationService().auto_categorize(session, user_scope)
    return {"categories": [c.name for c in categories]}


# Oracle and rule runs are not retried automatically: a failed oracle call
# should surface, not be replayed behind the user's back.
@dramatiq.actor(max_retries=0, store_results=True, time_limit=15 * 60 * 1000)
def run_categorization_job_task(user_scope: str) -> Dict[str, Any]:
    """Run the keyword rule job for one user scope."""
    sentry_breadcrumb("categorization", "rule_job.start", data={"user_scope": user_scope})
    try:
        result = asyncio.run(_run_categorization_job(user_scope))
    except Exception as exc:
        logger.exception("Categorization job failed for %s", user_scope)
        sentry_capture(exc, task="run_categorization_job_task")
        raise
    sentry_metric_inc("categorization.job.run", tags={"status": "ok"})
    logger.info("Categorization job for %s finished: %s", user_scope, result)
    return result


@dramatiq.actor(max_retries=0, store_results=True, time_limit=15 * 60 * 1000)
def auto_categorize_task(user_scope: str) -> Dict[str, Any]:
    """Run one oracle categorization batch for one user scope."""
    sentry_breadcrumb("categorization", "auto_categorize.start", data={"user_scope": user_scope})
    try:
        result = asyncio.run(_auto_categorize(user_scope))
    except Exception as exc:
        logger.exception("Auto categorization failed for %s", user_scope)
        sentry_capture(exc, task="auto_categorize_task")
        raise
    logger.info("Auto categorization for %s finished with %d categories", user_scope, len(result["categories"]))
    return result
