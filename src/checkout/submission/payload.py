"""Immutable order payload handed to the order service."""

from dataclasses import dataclass
from types import MappingProxyType

from checkout.errors import StepValidation


@dataclass(frozen=True)
class OrderLine:
    product_id: str
    title: str
    quantity: int
    unit_price: str  # Decimal text, base currency
    seller_label: str = ""


@dataclass(frozen=True)
class OrderPayload:
    """Everything the order service needs, captured at submission time.

    Items are copied out of the cart, so later cart changes do not alter a
    payload that is being (re)submitted.
    """

    idempotency_key: str
    session_id: str
    cart_id: str
    customer_id: str | None
    items: tuple[OrderLine, ...]
    shipping_address: MappingProxyType
    payment_method_id: str
    currency_code: str
    pricing: MappingProxyType
    approval_status: str

    def to_dict(self) -> dict:
        return {
            "idempotency_key": self.idempotency_key,
            "session_id": self.session_id,
            "cart_id": self.cart_id,
            "customer_id": self.customer_id,
            "items": [
                {
                    "product_id": line.product_id,
                    "title": line.title,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "seller_label": line.seller_label,
                }
                for line in self.items
            ],
            "shipping_address": dict(self.shipping_address),
            "payment_method_id": self.payment_method_id,
            "currency_code": self.currency_code,
            "pricing": dict(self.pricing),
            "approval_status": self.approval_status,
        }


def build_payload(session, cart) -> OrderPayload:
    """Snapshot a session in Review and its cart into an ``OrderPayload``."""
    pricing = session.pricing_result
    if pricing is None:
        raise StepValidation("pricing", "The checkout has not been priced yet")

    items = tuple(
        OrderLine(
            product_id=str(item.product_id),
            title=item.snapshot.title if item.snapshot else "",
            quantity=item.quantity,
            unit_price=str(item.price),
            seller_label=item.snapshot.seller_label if item.snapshot else "",
        )
        for item in cart.items
    )
    address = session.shipping_address.to_dict() if session.shipping_address else {}

    return OrderPayload(
        idempotency_key=session.idempotency_key,
        session_id=str(session.id),
        cart_id=str(cart.id),
        customer_id=str(session.customer_id) if session.customer_id else None,
        items=items,
        shipping_address=MappingProxyType(dict(address)),
        payment_method_id=session.payment_method_id,
        currency_code=session.currency_code,
        pricing=MappingProxyType(pricing.to_dict()),
        approval_status=session.approval_status,
    )
