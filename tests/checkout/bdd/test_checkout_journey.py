"""BDD tests for walking a checkout session through its steps."""

from decimal import Decimal

from checkout.config import CheckoutPolicy
from checkout.pricing.reference import DEFAULT_TABLE
from checkout.session.quoting import reprice
from protean.exceptions import ValidationError
from pytest_bdd import parsers, scenarios, then, when

scenarios("features/checkout_journey.feature")

POLICY = CheckoutPolicy()

ADDRESS = {
    "first_name": "Aziza",
    "last_name": "Karimova",
    "address_line1": "12 Amir Temur St",
    "city": "Tashkent",
    "phone": "+998901234567",
}


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the shopper advances")
def shopper_advances(checkout_session, cart, error):
    error["exc"] = None
    try:
        checkout_session.advance(reprice(checkout_session, cart, policy=POLICY))
    except ValidationError as exc:
        error["exc"] = exc


@when("the shopper enters a shipping address")
def shopper_enters_address(checkout_session):
    checkout_session.select_shipping_address(ADDRESS)


@when(parsers.cfparse('the shopper selects payment method "{method_id}"'))
def shopper_selects_method(checkout_session, method_id):
    checkout_session.select_payment_method(
        DEFAULT_TABLE.payment_method(method_id),
        DEFAULT_TABLE.currency(checkout_session.currency_code),
    )


@when(parsers.cfparse('the shopper switches currency to "{currency}"'))
def shopper_switches_currency(checkout_session, cart, currency):
    checkout_session.select_currency(DEFAULT_TABLE.currency(currency), DEFAULT_TABLE)
    reprice(checkout_session, cart, policy=POLICY)


@when(parsers.cfparse('the shopper applies promo "{code}"'))
def shopper_applies_promo(checkout_session, cart, code, error):
    try:
        checkout_session.apply_promo(DEFAULT_TABLE.validate_promo(code))
    except ValidationError as exc:
        error["exc"] = exc
        return
    reprice(checkout_session, cart, policy=POLICY)


@when(parsers.cfparse('the shopper changes the quantity of "{product_id}" to {quantity:d}'))
def shopper_changes_quantity(checkout_session, cart, product_id, quantity):
    cart.update_quantity(product_id, quantity)
    reprice(checkout_session, cart, policy=POLICY)


@when("a parent approves the purchase")
def parent_approves(checkout_session):
    checkout_session.approve_purchase(approver_id="parent-bdd")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the checkout is on the "{step}" step'))
def checkout_is_on_step(checkout_session, step):
    assert checkout_session.step == step


@then(parsers.cfparse("the grand total is {amount}"))
def grand_total_is(checkout_session, amount):
    assert checkout_session.pricing_result.grand_total == Decimal(amount)


@then(parsers.cfparse('parental approval is "{status}"'))
def approval_is(checkout_session, status):
    assert checkout_session.approval_status == status


@then("the session carries an idempotency key")
def session_has_key(checkout_session):
    assert checkout_session.idempotency_key


@then("no payment method is selected")
def no_payment_method(checkout_session):
    assert checkout_session.payment_method_id is None
