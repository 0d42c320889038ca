"""Quote a checkout session: resolve its selections and price its cart."""

from checkout.config import get_policy
from checkout.pricing.engine import price
from checkout.pricing.reference import get_reference_table
from checkout.session.guards import CheckoutContext


def quote_session(session, cart, table=None, policy=None) -> CheckoutContext:
    """Price ``cart`` under the session's currency, payment method and promo.

    Shipping is the policy's flat base-currency amount converted into the
    session currency. The result doubles as the context the step guards need.
    """
    table = table or get_reference_table()
    policy = policy or get_policy()

    currency = table.currency(session.currency_code)
    method = table.payment_method(session.payment_method_id) if session.payment_method_id else None
    promo = table.validate_promo(session.promo_code) if session.promo_code else None

    pricing = price(
        cart.lines(),
        currency,
        payment_method=method,
        promo=promo,
        shipping_amount=policy.shipping_amount * currency.rate_to_base,
    )
    return CheckoutContext(
        item_count=cart.item_count or 0,
        pricing=pricing,
        currency=currency,
        payment_method=method,
    )


def reprice(session, cart, table=None, policy=None) -> CheckoutContext:
    """Quote the session and feed the result through the approval gate."""
    policy = policy or get_policy()
    context = quote_session(session, cart, table=table, policy=policy)
    session.refresh_pricing(context.pricing, context.currency, policy.spending)
    return context
