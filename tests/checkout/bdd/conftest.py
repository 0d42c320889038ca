"""Shared BDD fixtures and step definitions for the Checkout domain."""

import pytest
from checkout.cart.cart import Cart
from checkout.config import CheckoutPolicy
from checkout.pricing.reference import DEFAULT_TABLE
from checkout.session.events import (
    ApprovalRequested,
    CurrencySelected,
    PromoApplied,
    PurchaseApproved,
    StepAdvanced,
)
from checkout.session.quoting import reprice
from checkout.session.session import CheckoutSession
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

POLICY = CheckoutPolicy()

_SESSION_EVENT_CLASSES = {
    "ApprovalRequested": ApprovalRequested,
    "CurrencySelected": CurrencySelected,
    "PromoApplied": PromoApplied,
    "PurchaseApproved": PurchaseApproved,
    "StepAdvanced": StepAdvanced,
}


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


def _start_session(cart, currency="UZS", promo=None):
    session = CheckoutSession.start(cart_id=cart.id, customer_id="cust-bdd", currency_code=currency)
    if promo:
        session.apply_promo(DEFAULT_TABLE.validate_promo(promo))
    reprice(session, cart, policy=POLICY)
    return session


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('a cart with {quantity:d} of "{product_id}" at {unit_price:d} UZS'),
    target_fixture="cart",
)
def cart_with_items(quantity, product_id, unit_price):
    cart = Cart.create_remote(customer_id="cust-bdd")
    cart.add_item(product_id, quantity, unit_price, title=f"Toy {product_id}")
    cart._events.clear()
    return cart


@given("an empty cart", target_fixture="cart")
def empty_cart():
    return Cart.create_remote(customer_id="cust-bdd")


@given("a checkout session for the cart", target_fixture="checkout_session")
def checkout_session_for_cart(cart):
    return _start_session(cart)


@given(
    parsers.cfparse('a checkout session for the cart in "{currency}"'),
    target_fixture="checkout_session",
)
def checkout_session_in_currency(cart, currency):
    return _start_session(cart, currency=currency)


@given(
    parsers.cfparse('a checkout session for the cart with promo "{promo}"'),
    target_fixture="checkout_session",
)
def checkout_session_with_promo(cart, promo):
    return _start_session(cart, promo=promo)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then("the checkout action fails with a validation error")
def checkout_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse('the error concerns "{field}"'))
def error_concerns(error, field):
    assert field in error["exc"].messages


@then(parsers.cfparse("a {event_type} event is raised"))
def session_event_raised(checkout_session, event_type):
    event_cls = _SESSION_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in checkout_session._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in checkout_session._events]}"
