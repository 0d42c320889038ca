"""Pydantic request/response schemas for the Checkout API.

These are external contracts (anti-corruption layer) — separate from
internal Protean commands. Money travels as decimal strings.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class LineItemSchema(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal
    title: str = ""
    images: list[str] = Field(default_factory=list)
    seller_label: str = ""


class PricingSchema(BaseModel):
    currency_code: str
    subtotal: Decimal
    discount_amount: Decimal
    shipping_amount: Decimal
    fee_amount: Decimal
    grand_total: Decimal
    formatted_total: str | None = None


class AddressSchema(BaseModel):
    first_name: str
    last_name: str
    company: str | None = None
    address_line1: str
    address_line2: str | None = None
    city: str
    region: str | None = None
    postal_code: str | None = None
    country: str = "UZ"
    phone: str
    email: str | None = None


class ApprovalSchema(BaseModel):
    required: bool
    status: str
    reason: str | None = None


class PaymentMethodSchema(BaseModel):
    id: str
    name: str
    fee_percent: Decimal
    processing_time: str = ""


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Cart Schemas
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    customer_id: str | None = None
    session_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": None,
                    "session_id": "guest-7f3a",
                }
            ]
        }
    }


class CartIdResponse(BaseModel):
    cart_id: str


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: int = 1
    unit_price: Decimal
    title: str | None = None
    images: list[str] = Field(default_factory=list)
    seller_label: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-lego-42",
                    "quantity": 2,
                    "unit_price": "50000",
                    "title": "LEGO City Fire Station",
                    "images": ["https://cdn.inbola.uz/lego-42.jpg"],
                    "seller_label": "Toy World",
                }
            ]
        }
    }


class UpdateCartQuantityRequest(BaseModel):
    quantity: int


class ReconcileCartRequest(BaseModel):
    """Guest cart to merge: a server-held cart id, or the cart payload the browser kept."""

    token: str
    local_cart_id: str | None = None
    local_items: Any = None


class ReconcileCartResponse(BaseModel):
    merged: bool
    item_count: int


class CartResponse(BaseModel):
    cart_id: str
    mode: str
    customer_id: str | None = None
    session_id: str | None = None
    items: list[LineItemSchema]
    item_count: int
    raw_total: Decimal
    pricing: PricingSchema | None = None


# ---------------------------------------------------------------------------
# Checkout Schemas
# ---------------------------------------------------------------------------
class StartCheckoutRequest(BaseModel):
    cart_id: str
    customer_id: str | None = None
    currency_code: str | None = None
    spent_today: Decimal | None = None
    spent_this_month: Decimal | None = None


class SessionIdResponse(BaseModel):
    session_id: str


class SelectPaymentMethodRequest(BaseModel):
    payment_method_id: str


class SelectCurrencyRequest(BaseModel):
    currency_code: str


class ApplyPromoRequest(BaseModel):
    promo_code: str


class ChangeItemQuantityRequest(BaseModel):
    quantity: int


class GoBackRequest(BaseModel):
    to_step: str | None = None


class ApprovePurchaseRequest(BaseModel):
    approver_id: str | None = None


class StepResponse(BaseModel):
    step: str


class CheckoutResponse(BaseModel):
    session_id: str
    cart_id: str
    customer_id: str | None = None
    step: str
    status: str
    shipping_address: AddressSchema | None = None
    payment_method_id: str | None = None
    currency_code: str
    promo_code: str | None = None
    terms_accepted: bool
    approval: ApprovalSchema
    idempotency_key: str | None = None
    submission_attempts: int
    submission_exhausted: bool
    order_id: str | None = None
    last_error: dict | None = None
    pricing: PricingSchema | None = None
    eligible_payment_methods: list[PaymentMethodSchema] = Field(default_factory=list)


class SubmitOrderResponse(BaseModel):
    session_id: str
    success: bool
    attempts: int
    order_id: str | None = None
    duplicate: bool = False
    error: dict | None = None
    exhausted: bool = False


class ConfigureOrderServiceRequest(BaseModel):
    failures: int = Field(ge=0, default=0)
    retryable: bool = True
    code: str = "service_unavailable"
    message: str = "Order service unavailable"
    delay: float = Field(ge=0, default=0.0)
