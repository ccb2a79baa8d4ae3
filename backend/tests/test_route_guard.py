from __future__ import annotations

import itertools

import pytest

from app.core.security import Identity
from app.models.enums import EntitlementReason, RouteDecision
from app.services.entitlement_service import Entitlement
from app.services.route_guard import decide_route, has_checkout_success, is_exempt_path, redirect_target

IDENTITY = Identity(id="user_1", email="a@example.com")
GRANTED = Entitlement(True, EntitlementReason.SUBSCRIPTION, source="subscriptions")
DENIED = Entitlement(False, EntitlementReason.NO_SUBSCRIPTION)
FAIL_OPEN = Entitlement(True, EntitlementReason.FAIL_OPEN, source="subscriptions")

ALL_INPUTS = list(
    itertools.product(
        [False, True],  # identity_loading
        [False, True],  # subscription_loading
        [None, IDENTITY],
        [None, GRANTED, DENIED, FAIL_OPEN],
        [False, True],  # checkout_success
        [None, "/dashboard", "/subscription", "/auth/reddit/callback"],
    )
)


@pytest.mark.parametrize("identity_loading,subscription_loading,identity,entitlement,checkout,path", ALL_INPUTS)
def test_every_input_yields_exactly_one_decision(identity_loading, subscription_loading, identity, entitlement, checkout, path):
    decision = decide_route(
        identity_loading=identity_loading,
        subscription_loading=subscription_loading,
        identity=identity,
        entitlement=entitlement,
        checkout_success=checkout,
        path=path,
    )
    assert isinstance(decision, RouteDecision)
    if identity_loading or subscription_loading:
        assert decision == RouteDecision.LOADING
    elif identity is None:
        assert decision == RouteDecision.LOGIN_REDIRECT
    elif entitlement is None:
        assert decision == RouteDecision.LOADING
    elif entitlement.granted or checkout or path in ("/subscription", "/auth/reddit/callback"):
        assert decision == RouteDecision.RENDER
    else:
        assert decision == RouteDecision.SUBSCRIPTION_REDIRECT


def test_subscriptionless_user_is_sent_to_subscription_page():
    decision = decide_route(identity=IDENTITY, entitlement=DENIED, path="/dashboard")
    assert decision == RouteDecision.SUBSCRIPTION_REDIRECT
    assert redirect_target(decision) == "/subscription"


def test_checkout_success_lets_user_through():
    assert decide_route(identity=IDENTITY, entitlement=DENIED, checkout_success=True) == RouteDecision.RENDER


def test_anonymous_user_goes_to_login():
    decision = decide_route(identity=None, entitlement=None)
    assert decision == RouteDecision.LOGIN_REDIRECT
    assert redirect_target(decision) == "/login"
    assert redirect_target(RouteDecision.RENDER) is None


@pytest.mark.parametrize(
    "path,exempt",
    [
        ("/subscription", True),
        ("/auth/callback", True),
        ("/auth/reddit/callback", True),
        ("/auth/reddit/callback/", True),
        ("/subscription/manage", False),
        ("/dashboard", False),
        ("", False),
        (None, False),
    ],
)
def test_exempt_paths(path, exempt):
    assert is_exempt_path(path) is exempt


def test_checkout_signal_from_param_or_cookie():
    assert has_checkout_success({"checkout": "success"}, {}) is True
    assert has_checkout_success({}, {"checkout_success": "true"}) is True
    assert has_checkout_success({"checkout": "cancelled"}, {"checkout_success": "false"}) is False
