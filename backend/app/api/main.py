"""Entry point for the FastAPI application.

This module constructs the FastAPI app, includes all routers and sets
up startup and shutdown. When run with uvicorn it initialises Sentry
and the database and loads configuration from ``app.core.config``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import (
    generic_exception_handler,
    reddit_oauth_exception_handler,
    validation_exception_handler,
)
from app.api.routes.navigation import router as navigation_router
from app.api.routes.reddit import router as reddit_router
from app.api.routes.subscriptions import router as subscriptions_router
from app.api.routes.users import router as users_router
from app.core.config import is_development, settings
from app.core.database import get_db_debug_info, init_db
from app.core.observability import init_sentry, sentry_set_tags
from app.services.reddit_oauth import RedditOAuthError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info("Starting up...")
    if init_sentry("api"):
        logger.info("Sentry SDK initialized (api)")
    await init_db()
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    lifespan=lifespan,
)


# Middleware to enrich Sentry scope with lightweight request info
@app.middleware("http")
async def sentry_context_middleware(request: Request, call_next):
    if settings.SENTRY_DSN:
        sentry_set_tags({"path": request.url.path, "method": request.method})
    return await call_next(request)


def _cors_origins() -> list[str]:
    """Allowed origins.

    Development allows everything.  Otherwise start from
    ``BACKEND_CORS_ORIGINS`` and make sure the frontend's own origin is
    present, preserving order without duplicates.
    """
    if is_development():
        return ["*"]
    origins = list(settings.BACKEND_CORS_ORIGINS or [])
    parsed = urlparse(settings.FRONTEND_BASE_URL or "")
    if parsed.scheme and parsed.netloc:
        origins.append(f"{parsed.scheme}://{parsed.netloc}")
    seen: set[str] = set()
    return [o for o in origins if not (o in seen or seen.add(o))]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register custom exception handlers
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(RedditOAuthError, reddit_oauth_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include routers
app.include_router(users_router)
app.include_router(subscriptions_router)
app.include_router(reddit_router)
app.include_router(navigation_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Welcome to the SubPirate API"}


@app.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """Health check endpoint (supports GET & HEAD)."""
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.get("/debug/db")
async def db_debug():
    """Return non-sensitive DB diagnostics (development only)."""
    if not is_development():
        return {"ok": False, "message": "disabled in non-development env"}
    return get_db_debug_info()
