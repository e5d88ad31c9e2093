"""Dramatiq worker configuration.

This module configures the Dramatiq broker and imports all tasks
so they are registered when the worker starts.

Run with:
    dramatiq item_ledger.worker
"""

import logging
import threading
import time

from item_ledger.core.config import settings, get_cron_user_list
from item_ledger.core.observability import init_sentry

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

if init_sentry("worker"):
    logger.info("Sentry SDK initialized for worker")

# Importing the tasks module configures the broker and registers the actors
from item_ledger.core.tasks import broker, run_categorization_job_task, auto_categorize_task  # noqa: E402,F401

logger.info("Tasks registered: run_categorization_job_task, auto_categorize_task")


def enqueue_categorization_jobs() -> int:
    """Enqueue the rule job for every configured cron user; returns how many were sent."""
    sent = 0
    for user_scope in get_cron_user_list():
        run_categorization_job_task.send(user_scope)
        sent += 1
    return sent


# Optional lightweight cron loop (avoid external scheduler), enabled via CATEGORIZATION_CRON_ENABLED=true
def _maybe_start_categorization_cron():  # pragma: no cover - simple orchestrator
    if not settings.CATEGORIZATION_CRON_ENABLED:
        return
    interval = settings.CATEGORIZATION_CRON_INTERVAL_SECONDS

    def loop():
        while True:
            try:
                count = enqueue_categorization_jobs()
                logger.info("[cron] enqueued categorization job for %d users (interval=%ss)", count, interval)
            except Exception:
                logger.exception("[cron] failed to enqueue categorization jobs")
            time.sleep(interval)

    t = threading.Thread(target=loop, name="categorization-cron", daemon=True)
    t.start()
    logger.info("Categorization cron loop started (interval=%ss)", interval)


_maybe_start_categorization_cron()
