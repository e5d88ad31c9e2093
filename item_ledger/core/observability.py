"""Observability helpers (Sentry init & common scrubbing).

Centralises Sentry initialisation for API and worker so configuration
does not drift.  Every helper is a no-op when no DSN is configured, so
tests and local runs never talk to Sentry.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from item_ledger.core.config import settings

logger = logging.getLogger(__name__)


def _enabled() -> bool:
    return bool(settings.SENTRY_DSN)


def _before_send(event: Dict[str, Any], hint: Optional[Dict[str, Any]] = None):
    """Scrub obvious PII / secrets before sending to Sentry.

    - Drop Authorization, Cookie and user scope headers
    - Remove request data/body (keep method + URL)
    """
    req = event.get("request") or {}
    headers = req.get("headers") or {}
    for k in list(headers.keys()):
        if k.lower() in ("authorization", "cookie", "set-cookie", "x-api-key", "x-user-id"):
            headers.pop(k, None)
    # Receipt bodies carry purchase history
    req.pop("data", None)
    event["request"] = req
    return event


def init_sentry(service: str) -> bool:
    """Initialise Sentry once for a given process.

    Returns True if Sentry was initialised; False otherwise.
    """
    if not _enabled():
        return False
    if getattr(init_sentry, "_done", False):  # prevent duplicate init in same process
        return True
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=float(settings.SENTRY_TRACES_SAMPLE_RATE or 0),
        profiles_sample_rate=float(settings.SENTRY_PROFILES_SAMPLE_RATE or 0),
        environment=settings.ENVIRONMENT,
        release=settings.SENTRY_RELEASE,
        before_send=_before_send,
    )
    sentry_sdk.set_tag("service", service)
    init_sentry._done = True  # type: ignore[attr-defined]
    logger.info("Sentry initialised for %s", service)
    return True


def sentry_capture(exc: BaseException, **tags: Any) -> None:
    """Report ``exc`` with optional scope tags."""
    if not _enabled():
        return
    with sentry_sdk.new_scope() as scope:
        for k, v in tags.items():
            scope.set_tag(str(k), str(v)[:128] if v is not None else "")
        sentry_sdk.capture_exception(exc)


def sentry_breadcrumb(category: str, message: str, level: str = "info", data: Optional[Dict[str, Any]] = None) -> None:
    """Add a breadcrumb for important lifecycle steps."""
    if not _enabled():
        return
    sentry_sdk.add_breadcrumb(category=category, message=message, level=level, data=data or {})


def sentry_metric_inc(name: str, value: int = 1, tags: Optional[Dict[str, Any]] = None) -> None:
    """Count an event as a Sentry span tag on the current scope.

    Tag values are coerced to short strings to avoid PII/large payloads.
    """
    if not _enabled():
        return
    safe_tags = {str(k): str(v)[:64] for k, v in (tags or {}).items()}
    sentry_sdk.set_tag(f"metric.{name}", str(value))
    sentry_sdk.add_breadcrumb(category="metric", message=name, level="info", data={"value": value, **safe_tags})


__all__ = ["init_sentry", "sentry_capture", "sentry_breadcrumb", "sentry_metric_inc"]
