"""Configuration management.

This module defines a ``Settings`` class that reads configuration
values from environment variables and provides sensible defaults.
Values in ``.env`` files never override real environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv, find_dotenv

# .env files: the repository root first, then whatever python-dotenv finds
# from the CWD.  Variables already in the environment always win.
_ENV_FILES = list(
    dict.fromkeys(
        path
        for path in (
            str(Path(__file__).resolve().parents[3] / ".env"),
            find_dotenv(usecwd=True),
        )
        if path and Path(path).exists()
    )
)
for _env_file in _ENV_FILES:
    load_dotenv(dotenv_path=_env_file, override=False)


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from the environment with sensible defaults.  Any
    attribute defined here can be overridden by setting the corresponding
    environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=tuple(_ENV_FILES) or (".env",),
        case_sensitive=True,
        extra="allow",
    )

    # API Settings
    PROJECT_NAME: str = "SubPirate API"
    ENVIRONMENT: str = Field(default="development")

    # Database
    DATABASE_URL: Optional[str] = Field(default=None)
    # Dev DB fallback (fail fast by default)
    DB_DEV_FALLBACK_SQLITE: bool = Field(default=False)

    # Redis (OAuth state, code replay guard) and Dramatiq broker
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    DRAMATIQ_BROKER_URL: Optional[str] = Field(default=None)

    # Auth (Clerk)
    # Disable auth bypass by default.  Override in .env only when running locally.
    DEV_AUTH_BYPASS: bool = Field(default=False)
    CLERK_SECRET_KEY: Optional[str] = Field(default=None)
    CLERK_API_URL: str = Field(default="https://api.clerk.com/v1")
    CLERK_JWKS_URL: Optional[str] = Field(default=None)
    CLERK_JWT_AUDIENCE: Optional[str] = Field(default=None)
    CLERK_JWT_ISSUER: Optional[str] = Field(default=None)

    # Reddit OAuth application
    REDDIT_CLIENT_ID: Optional[str] = Field(default=None)
    REDDIT_CLIENT_SECRET: Optional[str] = Field(default=None)
    REDDIT_USER_AGENT: str = Field(default="web:SubPirate:1.0.0")
    # Must match the redirect URI registered with the Reddit app exactly.
    REDDIT_REDIRECT_URI: str = Field(default="http://localhost:5173/auth/reddit/callback")
    REDDIT_OAUTH_STATE_TTL_SECONDS: int = Field(default=15 * 60)
    REDDIT_CODE_REPLAY_TTL_SECONDS: int = Field(default=24 * 3600)

    # CORS / frontend
    FRONTEND_BASE_URL: str = Field(default="http://localhost:5173")
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
    )

    # Sentry
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_RELEASE: Optional[str] = Field(default=None)


# Instantiate global settings
settings = Settings()


def is_development() -> bool:
    return (settings.ENVIRONMENT or "development").lower() == "development"


def broker_url() -> str:
    """Return the Dramatiq broker URL, defaulting to the shared Redis."""
    return settings.DRAMATIQ_BROKER_URL or os.getenv("DRAMATIQ_BROKER_URL") or settings.REDIS_URL
