"""Route authorisation for protected pages.

:func:`decide_route` maps the identity/subscription situation onto
exactly one :class:`~app.models.enums.RouteDecision`.  It is pure so the
same rule serves both the frontend (``/routes/authorize``) and protected
API routes (``require_access``).
"""

from __future__ import annotations

from typing import Mapping, Optional

from app.core.security import Identity
from app.models.enums import RouteDecision
from app.services.entitlement_service import Entitlement

LOGIN_PATH = "/login"
SUBSCRIPTION_PATH = "/subscription"

# Paths that must stay reachable without a subscription (or the user could
# never subscribe / finish a callback).
EXEMPT_PATHS = (SUBSCRIPTION_PATH,)
EXEMPT_PREFIXES = ("/auth/callback", "/auth/reddit/callback")

CHECKOUT_PARAM = "checkout"
CHECKOUT_COOKIE = "checkout_success"


def is_exempt_path(path: Optional[str]) -> bool:
    if not path:
        return False
    return path in EXEMPT_PATHS or path.startswith(EXEMPT_PREFIXES)


def has_checkout_success(query: Mapping[str, str], cookies: Mapping[str, str]) -> bool:
    """Checkout-success signal from the URL or the persisted cookie."""
    return query.get(CHECKOUT_PARAM) == "success" or cookies.get(CHECKOUT_COOKIE) == "true"


def decide_route(
    *,
    identity: Optional[Identity],
    entitlement: Optional[Entitlement],
    checkout_success: bool = False,
    path: Optional[str] = None,
    identity_loading: bool = False,
    subscription_loading: bool = False,
) -> RouteDecision:
    if identity_loading or subscription_loading:
        return RouteDecision.LOADING
    if identity is None:
        return RouteDecision.LOGIN_REDIRECT
    if entitlement is None:
        return RouteDecision.LOADING
    if entitlement.granted or checkout_success or is_exempt_path(path):
        return RouteDecision.RENDER
    return RouteDecision.SUBSCRIPTION_REDIRECT


REDIRECT_TARGETS = {
    RouteDecision.LOGIN_REDIRECT: LOGIN_PATH,
    RouteDecision.SUBSCRIPTION_REDIRECT: SUBSCRIPTION_PATH,
}


def redirect_target(decision: RouteDecision) -> Optional[str]:
    return REDIRECT_TARGETS.get(decision)


__all__ = [
    "CHECKOUT_COOKIE",
    "decide_route",
    "has_checkout_success",
    "is_exempt_path",
    "redirect_target",
]
