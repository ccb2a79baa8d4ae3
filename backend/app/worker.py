"""Dramatiq worker entrypoint.

Loads the environment, initialises Sentry and imports the actors so they
are registered when the worker starts.

Run with:
    python -m dramatiq app.worker
"""

import logging
from pathlib import Path

from dotenv import load_dotenv

# Load the repo root .env explicitly to avoid relying on CWD
repo_root = Path(__file__).resolve().parents[2]
root_env = repo_root / ".env"
if root_env.exists():
    load_dotenv(dotenv_path=str(root_env), override=False)

from app.core.observability import init_sentry  # noqa: E402
from app.core.tasks import broker, refresh_reddit_account_token  # noqa: E402,F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

if init_sentry("worker"):
    logger.info("Sentry SDK initialized for worker")

logger.info("Tasks registered: %s", ", ".join(sorted(broker.get_declared_actors())))
