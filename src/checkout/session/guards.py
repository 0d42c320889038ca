"""Per-step guards of the checkout state machine.

Each guard is a pure function of a ``CheckoutSession`` and the
``CheckoutContext`` derived from its cart and current pricing. A guard either
returns (the step may be left) or raises the typed error naming what is
missing; it never mutates anything.
"""

from dataclasses import dataclass

from checkout.errors import ApprovalRequired, StepValidation
from checkout.pricing.engine import PricingResult, check_eligibility
from checkout.pricing.reference import Currency, PaymentMethod
from checkout.session.steps import CheckoutStep


@dataclass(frozen=True)
class CheckoutContext:
    """Inputs to the guards that do not live on the session itself."""

    item_count: int
    pricing: PricingResult | None = None
    currency: Currency | None = None
    payment_method: PaymentMethod | None = None


def leave_cart(session, context):
    if context.item_count <= 0:
        raise StepValidation("cart", "Add at least one item to the cart before checking out")


def leave_shipping(session, context):
    if session.shipping_address is None:
        raise StepValidation("shipping_address", "Select or enter a shipping address")


def leave_payment(session, context):
    if not session.payment_method_id or context.payment_method is None:
        raise StepValidation("payment_method", "Select a payment method")
    if context.pricing is not None and context.currency is not None:
        check_eligibility(context.payment_method, context.currency, context.pricing.grand_total)
    if session.approval.is_pending:
        raise ApprovalRequired()


def leave_review(session, context=None):
    if not session.terms_accepted:
        raise StepValidation("terms_accepted", "Accept the terms to place the order")
    if session.approval.is_pending:
        raise ApprovalRequired()


GUARDS = {
    CheckoutStep.CART: leave_cart,
    CheckoutStep.SHIPPING: leave_shipping,
    CheckoutStep.PAYMENT: leave_payment,
    CheckoutStep.REVIEW: leave_review,
}


def check_transition(session, context) -> None:
    """Raise unless ``session`` may move one step forward from its current step."""
    step = CheckoutStep(session.step)
    guard = GUARDS.get(step)
    if guard is None:
        raise StepValidation("step", f"Cannot advance from {step.value}")
    guard(session, context)
