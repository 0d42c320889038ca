"""Typed failures raised by the checkout core.

Every validation failure below is a ``protean.exceptions.ValidationError``
keyed by the offending field, so it is rendered as a 400 by the API layer and
can be caught generically by callers. All of them are raised *before* an
aggregate is mutated, which leaves the cart or checkout session exactly as it
was.

``SubmissionFailed`` is the only retryable failure; it describes an order
creation attempt that did not go through at the external boundary.
"""

from protean.exceptions import ValidationError


class InvalidQuantity(ValidationError):
    """A cart quantity that is not a positive integer."""

    def __init__(self, quantity):
        self.quantity = quantity
        super().__init__({"quantity": [f"Quantity must be a positive integer, got {quantity!r}"]})


class StepValidation(ValidationError):
    """A checkout step cannot be left because a field is missing or invalid."""

    def __init__(self, field, message=None):
        self.field = field
        super().__init__({field: [message or f"{field} is required to continue"]})


class PaymentMethodIneligible(ValidationError):
    """The payment method cannot settle this total in this currency."""

    def __init__(self, method_id, reason):
        self.method_id = method_id
        self.reason = reason
        super().__init__({"payment_method": [f"Payment method '{method_id}' is not eligible: {reason}"]})


class PromoInvalid(ValidationError):
    def __init__(self, code):
        self.code = code
        super().__init__({"promo_code": [f"Promo code '{code}' is not valid"]})


class UnknownCurrency(ValidationError):
    def __init__(self, code):
        self.code = code
        super().__init__({"currency_code": [f"Currency '{code}' is not supported"]})


class ApprovalRequired(ValidationError):
    """A parental approval is pending and blocks checkout."""

    def __init__(self):
        super().__init__({"approval": ["Parental approval is required before checkout can continue"]})


class ApprovalNotPending(ValidationError):
    def __init__(self, status):
        self.status = status
        super().__init__({"approval": [f"There is no pending approval to grant (status: {status})"]})


class SubmissionInFlight(ValidationError):
    """A second order submission was attempted while one is outstanding."""

    def __init__(self):
        super().__init__({"submission": ["An order submission is already in progress"]})


class MalformedCartPayload(ValidationError):
    def __init__(self, reason):
        self.reason = reason
        super().__init__({"items": [f"Malformed cart payload: {reason}"]})


class CheckoutError(Exception):
    """Base class for failures that are not caused by invalid shopper input."""


class SubmissionFailed(CheckoutError):
    """The order-creation boundary rejected or did not answer a submission."""

    def __init__(self, code, message, retryable=False):
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(f"{code}: {message}")

    def to_dict(self):
        return {"code": self.code, "message": self.message, "retryable": self.retryable}
