"""
Custom exception handlers for FastAPI.
Turns domain errors into their status codes and hides internals of
unexpected failures behind a correlation id.
"""

import logging
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY, HTTP_500_INTERNAL_SERVER_ERROR

from item_ledger.core.errors import LedgerError
from item_ledger.core.observability import sentry_capture

logger = logging.getLogger(__name__)


def ledger_exception_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(
            {
                "error": "Validation error",
                "details": exc.errors(),
            }
        ),
    )


def generic_exception_handler(request: Request, exc: Exception):
    correlation_id = uuid.uuid4().hex
    logger.error(
        "Unhandled error on %s %s (correlation_id=%s)",
        request.method,
        request.url.path,
        correlation_id,
        exc_info=exc,
    )
    sentry_capture(exc, correlation_id=correlation_id)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "correlation_id": correlation_id,
        },
    )
