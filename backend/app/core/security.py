"""Security and authentication utilities for Clerk integration.

This module is the identity provider adapter.  It verifies Clerk-issued
JWTs against the instance's JWKS, fetches the user's details from the
Clerk REST API and exposes them as an :class:`Identity`.  Audience and
issuer claims are verified only when ``CLERK_JWT_AUDIENCE`` /
``CLERK_JWT_ISSUER`` are configured.

The local ``profiles`` mirror is maintained separately by
``app.services.profile_service``; nothing here writes to the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import httpx
import requests
from fastapi import HTTPException, Request
from jose import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """The authenticated user as reported by the identity provider."""

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    image_url: Optional[str] = None


DEV_IDENTITY = Identity(
    id="user_dev123",
    email="dev@example.com",
    display_name="Dev User",
    image_url=None,
)

# JWKS cache.  Refreshed once on an unknown ``kid`` (key rotation).
_clerk_jwks: Optional[Dict] = None


def get_clerk_jwks() -> Dict:
    """Fetch and cache the JWKS used to verify Clerk tokens.

    If the endpoint is unreachable or returns an invalid payload, an HTTP
    500 exception is raised.
    """
    global _clerk_jwks
    if _clerk_jwks is not None:
        return _clerk_jwks
    if not settings.CLERK_JWKS_URL:
        raise HTTPException(status_code=500, detail="CLERK_JWKS_URL is not configured")
    try:
        resp = requests.get(settings.CLERK_JWKS_URL, timeout=5)
        resp.raise_for_status()
        data = resp.json()
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Failed to fetch JWKS: {exc}") from exc
    if not isinstance(data, dict) or "keys" not in data:
        raise HTTPException(status_code=500, detail="Invalid JWKS payload from Clerk")
    _clerk_jwks = data
    return data


def _find_key(kid: str) -> Optional[Dict]:
    return next((k for k in get_clerk_jwks().get("keys", []) if k.get("kid") == kid), None)


def decode_clerk_jwt(token: str) -> Dict:
    """Decode and verify a Clerk JWT.

    Returns:
        The decoded JWT payload as a dictionary.

    Raises:
        HTTPException: If the token is malformed or invalid.
    """
    global _clerk_jwks
    try:
        header = jwt.get_unverified_header(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token header: {exc}") from exc
    kid = header.get("kid")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid Clerk token: missing kid header")
    key = _find_key(kid)
    if not key:
        # Clear cache and retry once (rotation scenario)
        _clerk_jwks = None
        key = _find_key(kid)
        if not key:
            raise HTTPException(status_code=401, detail="Unknown signing key (kid) for Clerk token")
    decode_kwargs: Dict = {"algorithms": ["RS256"], "options": {}}
    if settings.CLERK_JWT_AUDIENCE:
        decode_kwargs["audience"] = settings.CLERK_JWT_AUDIENCE
    else:
        decode_kwargs["options"]["verify_aud"] = False
    if settings.CLERK_JWT_ISSUER:
        decode_kwargs["issuer"] = settings.CLERK_JWT_ISSUER
    try:
        return jwt.decode(token, key, **decode_kwargs)
    except Exception as exc:
        raise HTTPException(status_code=401, detail=f"Invalid Clerk token: {exc}") from exc


def identity_from_clerk_user(clerk_user: Dict) -> Identity:
    """Map a Clerk REST ``User`` object onto an :class:`Identity`."""
    emails = clerk_user.get("email_addresses") or []
    primary_id = clerk_user.get("primary_email_address_id")
    email = next(
        (e.get("email_address") for e in emails if primary_id and e.get("id") == primary_id),
        None,
    )
    if email is None and emails:
        email = emails[0].get("email_address")
    full_name = " ".join(
        part for part in (clerk_user.get("first_name"), clerk_user.get("last_name")) if part
    ).strip()
    return Identity(
        id=clerk_user["id"],
        email=email,
        display_name=full_name or clerk_user.get("username"),
        image_url=clerk_user.get("image_url"),
    )


async def fetch_clerk_user(user_id: str, client: httpx.AsyncClient | None = None) -> Identity:
    """Fetch the user from Clerk's API to verify they exist and are not disabled."""
    if not settings.CLERK_SECRET_KEY:
        raise HTTPException(status_code=500, detail="Clerk secret key not configured")
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=5)
    try:
        resp = await client.get(
            f"{settings.CLERK_API_URL}/users/{user_id}",
            headers={"Authorization": f"Bearer {settings.CLERK_SECRET_KEY}"},
        )
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=503, detail=f"Clerk API unavailable: {exc}") from exc
    finally:
        if owns_client:
            await client.aclose()
    if resp.status_code != 200:
        raise HTTPException(status_code=401, detail="Clerk user not found")
    clerk_user = resp.json()
    if clerk_user.get("banned") or clerk_user.get("locked"):
        raise HTTPException(status_code=401, detail="Clerk user is disabled")
    return identity_from_clerk_user(clerk_user)


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


async def get_identity(request: Request) -> Optional[Identity]:
    """Resolve the current identity, or ``None`` when unauthenticated.

    In development mode (``DEV_AUTH_BYPASS``) a fixed identity is returned.
    A present but invalid token raises 401; an absent token is simply
    "no identity", which the route guard turns into a login redirect.
    """
    if settings.DEV_AUTH_BYPASS:
        return DEV_IDENTITY
    token = _bearer_token(request)
    if token is None:
        return None
    payload = decode_clerk_jwt(token)
    clerk_user_id = payload.get("sub")
    if not clerk_user_id:
        raise HTTPException(status_code=401, detail="Invalid Clerk token: no sub claim")
    return await fetch_clerk_user(clerk_user_id)
