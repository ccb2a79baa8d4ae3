"""
Custom exception handlers for FastAPI.
Provides clear, actionable error messages for validation, Reddit and server errors.
"""

import logging

import sentry_sdk
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from app.core.config import settings
from app.services.reddit_oauth import RedditOAuthError

logger = logging.getLogger(__name__)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "Validation error",
            "details": exc.errors(),
        },
    )


def reddit_oauth_exception_handler(request: Request, exc: RedditOAuthError):
    # Missing client credentials is a configuration problem on our side
    status_code = HTTP_503_SERVICE_UNAVAILABLE if exc.status_code is None else HTTP_502_BAD_GATEWAY
    logger.error("[reddit] %s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": "Reddit request failed",
            "details": exc.message,
            "retryable": exc.retryable,
        },
    )


def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    if settings.SENTRY_DSN:
        sentry_sdk.capture_exception(exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "details": str(exc),
        },
    )
