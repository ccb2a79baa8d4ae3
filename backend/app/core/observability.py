"""Observability helpers (Sentry init & common scrubbing).

Centralises Sentry initialisation for API and worker so configuration
does not drift. Initialisation is a no-op when no DSN is configured, and
the best-effort helpers below never raise into request handling.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from app.core.config import settings

logger = logging.getLogger(__name__)

_SCRUBBED_HEADERS = ("authorization", "cookie", "set-cookie", "x-api-key")
_SCRUBBED_QUERY_KEYS = ("code", "state")


def _before_send(event: Dict[str, Any], hint: Dict[str, Any] | None = None):
	"""Scrub obvious PII / secrets before sending to Sentry.

	- Drop Authorization & Cookie headers
	- Remove request data/body (keep method + URL)
	- Blank OAuth ``code``/``state`` query values
	"""
	try:
		req = event.get("request") or {}
		headers = req.get("headers") or {}
		for k in list(headers.keys()):
			if k.lower() in _SCRUBBED_HEADERS:
				headers.pop(k, None)
		req.pop("data", None)
		query = req.get("query_string")
		if isinstance(query, str) and query:
			parts = []
			for pair in query.split("&"):
				key = pair.split("=", 1)[0]
				parts.append(f"{key}=[scrubbed]" if key in _SCRUBBED_QUERY_KEYS else pair)
			req["query_string"] = "&".join(parts)
		event["request"] = req
	except Exception as exc:  # best effort
		logger.debug("sentry scrub failed: %s", exc)
	return event


def init_sentry(service: str) -> bool:
	"""Initialise Sentry once for a given process.

	Returns True if Sentry was initialised; False otherwise.
	"""
	if not settings.SENTRY_DSN:
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
	return True


def sentry_set_tags(tags: Dict[str, Any]) -> None:
	"""Best-effort: set tags on the current Sentry scope (strings only)."""
	if not settings.SENTRY_DSN:
		return
	try:
		for k, v in (tags or {}).items():
			# Avoid PII; coerce to short strings
			sentry_sdk.set_tag(str(k), str(v)[:128] if v is not None else "")
	except Exception as exc:
		logger.debug("sentry_set_tags failed: %s", exc)


def sentry_breadcrumb(category: str, message: str, level: str = "info", data: Optional[Dict[str, Any]] = None) -> None:
	"""Best-effort: add a breadcrumb for important lifecycle steps."""
	if not settings.SENTRY_DSN:
		return
	try:
		sentry_sdk.add_breadcrumb(category=category, message=message, level=level, data=data or {})
	except Exception as exc:
		logger.debug("sentry_breadcrumb failed: %s", exc)


def sentry_metric_inc(name: str, value: int = 1, tags: Optional[Dict[str, Any]] = None) -> None:
	"""Best-effort: increment a counter using Sentry Metrics if available.

	Falls back to no-op when metrics are unavailable in the installed SDK.
	"""
	if not settings.SENTRY_DSN:
		return
	try:
		from sentry_sdk import metrics

		safe_tags = {str(k): str(v)[:64] for k, v in (tags or {}).items()}
		metrics.incr(name, value=value, tags=safe_tags)
	except Exception as exc:
		logger.debug("sentry_metric_inc failed: %s", exc)


__all__ = ["init_sentry", "sentry_set_tags", "sentry_breadcrumb", "sentry_metric_inc"]
