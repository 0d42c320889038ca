"""Checkout steps and their ordering."""

from enum import Enum


class CheckoutStep(Enum):
    CART = "Cart"
    SHIPPING = "Shipping"
    PAYMENT = "Payment"
    REVIEW = "Review"
    COMPLETE = "Complete"

    @property
    def position(self) -> int:
        return _ORDER.index(self)

    def next(self) -> "CheckoutStep | None":
        index = self.position + 1
        return _ORDER[index] if index < len(_ORDER) else None

    def previous(self) -> "CheckoutStep | None":
        index = self.position - 1
        return _ORDER[index] if index >= 0 else None


class CheckoutStatus(Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    ABANDONED = "Abandoned"


_ORDER = [
    CheckoutStep.CART,
    CheckoutStep.SHIPPING,
    CheckoutStep.PAYMENT,
    CheckoutStep.REVIEW,
    CheckoutStep.COMPLETE,
]
