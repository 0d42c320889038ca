"""Checkout session — commands and handlers.

Every handler that changes a pricing input (cart contents, currency, payment
method, promo) re-quotes the session afterwards, so the stored pricing and the
approval gate always reflect the current selections. Advancing re-quotes
first, so step guards see a fresh total.
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from checkout.cart.cart import Cart
from checkout.config import get_policy
from checkout.domain import checkout
from checkout.errors import StepValidation
from checkout.pricing.reference import get_reference_table
from checkout.session.quoting import reprice
from checkout.session.session import CheckoutSession
from checkout.session.steps import CheckoutStatus, CheckoutStep

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@checkout.command(part_of="CheckoutSession")
class StartCheckout:
    """Open a checkout session over a cart.

    ``spent_today`` / ``spent_this_month`` carry the child's spending so far
    (base currency) for the parental spending limits.
    """

    cart_id = Identifier(required=True)
    customer_id = Identifier()
    currency_code = String(max_length=3)
    spent_today = String(max_length=50)
    spent_this_month = String(max_length=50)


@checkout.command(part_of="CheckoutSession")
class SelectShippingAddress:
    session_id = Identifier(required=True)
    address = Text(required=True)  # JSON: ShippingAddress fields


@checkout.command(part_of="CheckoutSession")
class SelectPaymentMethod:
    session_id = Identifier(required=True)
    payment_method_id = String(required=True, max_length=50)


@checkout.command(part_of="CheckoutSession")
class SelectCurrency:
    session_id = Identifier(required=True)
    currency_code = String(required=True, max_length=3)


@checkout.command(part_of="CheckoutSession")
class ApplyPromoCode:
    session_id = Identifier(required=True)
    promo_code = String(required=True, max_length=50)


@checkout.command(part_of="CheckoutSession")
class RemovePromoCode:
    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class ChangeCheckoutItemQuantity:
    """Change a cart quantity from the Cart step of checkout; zero or less removes the line."""

    session_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)


@checkout.command(part_of="CheckoutSession")
class RemoveCheckoutItem:
    session_id = Identifier(required=True)
    product_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class RefreshCheckout:
    """Re-quote a session after its cart changed outside checkout."""

    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class AdvanceCheckout:
    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class GoBack:
    """Step back once, or jump back to ``to_step`` when given."""

    session_id = Identifier(required=True)
    to_step = String(choices=CheckoutStep)


@checkout.command(part_of="CheckoutSession")
class RequestApproval:
    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class ApprovePurchase:
    session_id = Identifier(required=True)
    approver_id = Identifier()


@checkout.command(part_of="CheckoutSession")
class AcceptTerms:
    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class AbandonCheckout:
    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class StartOver:
    session_id = Identifier(required=True)


@checkout.command(part_of="CheckoutSession")
class ReinitiateSubmission:
    session_id = Identifier(required=True)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
def _load(session_id):
    session = current_domain.repository_for(CheckoutSession).get(session_id)
    cart = current_domain.repository_for(Cart).get(session.cart_id)
    return session, cart


def _save(session, cart=None):
    if cart is not None:
        current_domain.repository_for(Cart).add(cart)
    current_domain.repository_for(CheckoutSession).add(session)


def _release_stale(session):
    policy = get_policy()
    if session.release_stale_submission(policy.submission_timeout, policy.max_submission_attempts):
        logger.warning("Stale order submission released", session_id=str(session.id))


def _requote(session, cart):
    if CheckoutStatus(session.status) == CheckoutStatus.ACTIVE:
        return reprice(session, cart)
    return None


@checkout.command_handler(part_of=CheckoutSession)
class CheckoutNavigationHandler:
    @handle(StartCheckout)
    def start_checkout(self, command):
        table = get_reference_table()
        currency = table.currency(command.currency_code) if command.currency_code else table.default_currency()
        cart = current_domain.repository_for(Cart).get(command.cart_id)

        session = CheckoutSession.start(
            cart_id=command.cart_id,
            customer_id=command.customer_id or cart.customer_id,
            currency_code=currency.code,
            spent_today=command.spent_today,
            spent_this_month=command.spent_this_month,
        )
        reprice(session, cart)
        _save(session)

        logger.info(
            "Checkout started",
            session_id=str(session.id),
            cart_id=str(cart.id),
            currency=currency.code,
            approval_required=session.approval_required,
        )
        return str(session.id)

    @handle(SelectShippingAddress)
    def select_shipping_address(self, command):
        session, cart = _load(command.session_id)
        address = json.loads(command.address) if isinstance(command.address, str) else command.address
        session.select_shipping_address(address)
        _save(session)

    @handle(SelectPaymentMethod)
    def select_payment_method(self, command):
        session, cart = _load(command.session_id)
        table = get_reference_table()
        session.select_payment_method(
            table.payment_method(command.payment_method_id),
            table.currency(session.currency_code),
        )
        _requote(session, cart)
        _save(session)

    @handle(SelectCurrency)
    def select_currency(self, command):
        session, cart = _load(command.session_id)
        table = get_reference_table()
        cleared = session.select_currency(table.currency(command.currency_code), table)
        _requote(session, cart)
        _save(session)

        if cleared:
            logger.info(
                "Payment method cleared after currency switch",
                session_id=str(session.id),
                payment_method=cleared,
                currency=session.currency_code,
            )

    @handle(ApplyPromoCode)
    def apply_promo_code(self, command):
        session, cart = _load(command.session_id)
        session.apply_promo(get_reference_table().validate_promo(command.promo_code))
        _requote(session, cart)
        _save(session)

    @handle(RemovePromoCode)
    def remove_promo_code(self, command):
        session, cart = _load(command.session_id)
        session.remove_promo()
        _requote(session, cart)
        _save(session)

    @handle(ChangeCheckoutItemQuantity)
    def change_item_quantity(self, command):
        session, cart = _load(command.session_id)
        self._assert_cart_step(session)
        cart.update_quantity(product_id=command.product_id, quantity=command.quantity)
        _requote(session, cart)
        _save(session, cart)

    @handle(RemoveCheckoutItem)
    def remove_item(self, command):
        session, cart = _load(command.session_id)
        self._assert_cart_step(session)
        cart.remove_item(product_id=command.product_id)
        _requote(session, cart)
        _save(session, cart)

    @handle(RefreshCheckout)
    def refresh_checkout(self, command):
        session, cart = _load(command.session_id)
        _requote(session, cart)
        _save(session)

    @handle(AdvanceCheckout)
    def advance_checkout(self, command):
        session, cart = _load(command.session_id)
        context = _requote(session, cart)
        if context is None:
            raise StepValidation("status", f"Checkout is {session.status}")
        target = session.advance(context)
        _save(session)

        logger.info("Checkout advanced", session_id=str(session.id), step=target.value)
        return target.value

    @handle(GoBack)
    def go_back(self, command):
        session, _ = _load(command.session_id)
        target = session.go_to(command.to_step) if command.to_step else session.go_back()
        _save(session)
        return target.value

    @handle(RequestApproval)
    def request_approval(self, command):
        session, _ = _load(command.session_id)
        session.request_approval()
        _save(session)

        logger.info("Parental approval requested", session_id=str(session.id), reason=session.approval_reason)

    @handle(ApprovePurchase)
    def approve_purchase(self, command):
        session, _ = _load(command.session_id)
        session.approve_purchase(approver_id=command.approver_id)
        _save(session)

        logger.info("Purchase approved", session_id=str(session.id), approver_id=command.approver_id)

    @handle(AcceptTerms)
    def accept_terms(self, command):
        session, _ = _load(command.session_id)
        session.accept_terms()
        _save(session)

    @handle(AbandonCheckout)
    def abandon_checkout(self, command):
        session, _ = _load(command.session_id)
        _release_stale(session)
        session.abandon()
        _save(session)

        logger.info("Checkout abandoned", session_id=str(session.id), step=session.step)

    @handle(StartOver)
    def start_over(self, command):
        session, cart = _load(command.session_id)
        _release_stale(session)
        session.start_over()
        reprice(session, cart)
        _save(session)

    @handle(ReinitiateSubmission)
    def reinitiate_submission(self, command):
        session, _ = _load(command.session_id)
        session.reinitiate_submission()
        _save(session)

        logger.info("Order submission re-initiated", session_id=str(session.id))

    @staticmethod
    def _assert_cart_step(session):
        if CheckoutStatus(session.status) != CheckoutStatus.ACTIVE:
            raise StepValidation("status", f"Checkout is {session.status}")
        if session.current_step != CheckoutStep.CART:
            raise StepValidation("step", "Cart items can only be changed on the cart step")
