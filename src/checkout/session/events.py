"""Domain events for the CheckoutSession aggregate.

Events record every shopper decision and every step the session takes, so a
checkout can be audited (and an abandoned one analysed) after the fact.
"""

from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text

from checkout.domain import checkout


@checkout.event(part_of="CheckoutSession")
class CheckoutStarted:
    __version__ = 1

    session_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    customer_id = Identifier()
    currency_code = String(required=True)
    started_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class ShippingAddressSelected:
    __version__ = 1

    session_id = Identifier(required=True)
    address = Text(required=True)  # JSON: address dict


@checkout.event(part_of="CheckoutSession")
class PaymentMethodSelected:
    __version__ = 1

    session_id = Identifier(required=True)
    payment_method_id = String(required=True)


@checkout.event(part_of="CheckoutSession")
class CurrencySelected:
    """The shopper switched the display currency.

    ``cleared_payment_method`` names a previously selected method that does not
    support the new currency and was therefore deselected.
    """

    __version__ = 1

    session_id = Identifier(required=True)
    previous_currency = String(required=True)
    currency_code = String(required=True)
    cleared_payment_method = String()


@checkout.event(part_of="CheckoutSession")
class PromoApplied:
    __version__ = 1

    session_id = Identifier(required=True)
    promo_code = String(required=True)
    replaced_promo_code = String()


@checkout.event(part_of="CheckoutSession")
class PromoRemoved:
    __version__ = 1

    session_id = Identifier(required=True)
    promo_code = String(required=True)


@checkout.event(part_of="CheckoutSession")
class ApprovalRequested:
    """A parent is asked to approve the purchase, when the total first needs it or on request."""

    __version__ = 1

    session_id = Identifier(required=True)
    grand_total = String(required=True)
    currency_code = String(required=True)
    reason = String(max_length=255)


@checkout.event(part_of="CheckoutSession")
class PurchaseApproved:
    __version__ = 1

    session_id = Identifier(required=True)
    approved_by = Identifier()
    approved_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class StepAdvanced:
    __version__ = 1

    session_id = Identifier(required=True)
    from_step = String(required=True)
    to_step = String(required=True)


@checkout.event(part_of="CheckoutSession")
class StepReverted:
    __version__ = 1

    session_id = Identifier(required=True)
    from_step = String(required=True)
    to_step = String(required=True)


@checkout.event(part_of="CheckoutSession")
class TermsAccepted:
    __version__ = 1

    session_id = Identifier(required=True)
    accepted_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class OrderSubmissionStarted:
    __version__ = 1

    session_id = Identifier(required=True)
    idempotency_key = String(required=True)
    attempt = Integer(required=True)


@checkout.event(part_of="CheckoutSession")
class OrderSubmissionFailed:
    __version__ = 1

    session_id = Identifier(required=True)
    idempotency_key = String(required=True)
    attempt = Integer(required=True)
    code = String(required=True)
    message = Text()
    retryable = Boolean(default=False)
    exhausted = Boolean(default=False)


@checkout.event(part_of="CheckoutSession")
class SubmissionReinitiated:
    """The shopper restarted submission after retries ran out; a fresh key was issued."""

    __version__ = 1

    session_id = Identifier(required=True)
    previous_key = String()
    idempotency_key = String(required=True)


@checkout.event(part_of="CheckoutSession")
class OrderPlaced:
    __version__ = 1

    session_id = Identifier(required=True)
    cart_id = Identifier(required=True)
    order_id = String(required=True)
    idempotency_key = String(required=True)
    grand_total = String(required=True)
    currency_code = String(required=True)
    placed_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class CheckoutAbandoned:
    __version__ = 1

    session_id = Identifier(required=True)
    step = String(required=True)
    abandoned_at = DateTime(required=True)


@checkout.event(part_of="CheckoutSession")
class CheckoutRestarted:
    __version__ = 1

    session_id = Identifier(required=True)
    from_step = String(required=True)
