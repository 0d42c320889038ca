"""FastAPI routes for the Checkout domain — carts and checkout sessions."""

import json
import os
from dataclasses import asdict

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from checkout.api.schemas import (
    AddToCartRequest,
    AddressSchema,
    ApplyPromoRequest,
    ApprovalSchema,
    ApprovePurchaseRequest,
    CartIdResponse,
    CartResponse,
    ChangeItemQuantityRequest,
    CheckoutResponse,
    ConfigureOrderServiceRequest,
    CreateCartRequest,
    GoBackRequest,
    LineItemSchema,
    PaymentMethodSchema,
    PricingSchema,
    ReconcileCartRequest,
    ReconcileCartResponse,
    SelectCurrencyRequest,
    SelectPaymentMethodRequest,
    SessionIdResponse,
    StartCheckoutRequest,
    StatusResponse,
    StepResponse,
    SubmitOrderResponse,
    UpdateCartQuantityRequest,
)
from checkout.cart.cart import Cart
from checkout.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartQuantity
from checkout.cart.management import CreateCart
from checkout.cart.reconciliation import ReconcileCarts
from checkout.config import get_policy
from checkout.pricing.engine import eligible_methods, format_amount, price
from checkout.pricing.reference import get_reference_table
from checkout.session.navigation import (
    AbandonCheckout,
    AcceptTerms,
    AdvanceCheckout,
    ApplyPromoCode,
    ApprovePurchase,
    ChangeCheckoutItemQuantity,
    GoBack,
    ReinitiateSubmission,
    RequestApproval,
    RemoveCheckoutItem,
    RemovePromoCode,
    SelectCurrency,
    SelectPaymentMethod,
    SelectShippingAddress,
    StartCheckout,
    StartOver,
)
from checkout.session.session import CheckoutSession
from checkout.submission import get_order_service
from checkout.submission.fake_adapter import FakeOrderService
from checkout.submission.submitter import submit_order


def _pricing_schema(pricing, currency) -> PricingSchema:
    return PricingSchema(
        **pricing.to_dict(),
        formatted_total=format_amount(pricing.grand_total, currency),
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest) -> CartIdResponse:
    command = CreateCart(
        customer_id=body.customer_id,
        session_id=body.session_id,
    )
    result = current_domain.process(command, asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(
    cart_id: str,
    currency: str | None = None,
    payment_method: str | None = None,
    promo: str | None = None,
) -> CartResponse:
    """Return the cart with a pricing quote in the requested currency (default currency otherwise)."""
    cart = current_domain.repository_for(Cart).get(cart_id)
    table = get_reference_table()

    quote_currency = table.currency(currency) if currency else table.default_currency()
    pricing = price(
        cart.lines(),
        quote_currency,
        payment_method=table.payment_method(payment_method) if payment_method else None,
        promo=table.validate_promo(promo) if promo else None,
        shipping_amount=get_policy().shipping_amount * quote_currency.rate_to_base,
    )

    data = cart.to_dict()
    return CartResponse(
        cart_id=data["id"],
        mode=data["mode"],
        customer_id=data["customer_id"],
        session_id=data["session_id"],
        items=[LineItemSchema(**item) for item in data["items"]],
        item_count=data["item_count"],
        raw_total=data["raw_total"],
        pricing=_pricing_schema(pricing, quote_currency),
    )


@cart_router.post("/{cart_id}/items", response_model=StatusResponse)
async def add_cart_item(cart_id: str, body: AddToCartRequest) -> StatusResponse:
    command = AddToCart(
        cart_id=cart_id,
        product_id=body.product_id,
        quantity=body.quantity,
        unit_price=str(body.unit_price),
        title=body.title,
        images=json.dumps(body.images),
        seller_label=body.seller_label,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/items/{product_id}", response_model=StatusResponse)
async def update_cart_item_quantity(cart_id: str, product_id: str, body: UpdateCartQuantityRequest) -> StatusResponse:
    command = UpdateCartQuantity(
        cart_id=cart_id,
        product_id=product_id,
        quantity=body.quantity,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items/{product_id}", response_model=StatusResponse)
async def remove_cart_item(cart_id: str, product_id: str) -> StatusResponse:
    command = RemoveFromCart(
        cart_id=cart_id,
        product_id=product_id,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items", response_model=StatusResponse)
async def clear_cart(cart_id: str) -> StatusResponse:
    current_domain.process(ClearCart(cart_id=cart_id), asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/reconcile", response_model=ReconcileCartResponse)
async def reconcile_cart(cart_id: str, body: ReconcileCartRequest) -> ReconcileCartResponse:
    """Merge a guest cart into this customer cart (once per login token)."""
    command = ReconcileCarts(
        cart_id=cart_id,
        token=body.token,
        local_cart_id=body.local_cart_id,
        local_items=json.dumps(body.local_items) if body.local_items is not None else None,
    )
    merged = current_domain.process(command, asynchronous=False)
    cart = current_domain.repository_for(Cart).get(cart_id)
    return ReconcileCartResponse(merged=bool(merged), item_count=cart.item_count)


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkouts", tags=["checkouts"])


def _checkout_response(session) -> CheckoutResponse:
    data = session.to_dict()
    table = get_reference_table()
    currency = table.currency(session.currency_code)
    pricing = session.pricing_result

    methods = eligible_methods(table, currency, pricing.grand_total) if pricing else []
    return CheckoutResponse(
        session_id=data["id"],
        cart_id=data["cart_id"],
        customer_id=data["customer_id"],
        step=data["step"],
        status=data["status"],
        shipping_address=AddressSchema(**data["shipping_address"]) if data["shipping_address"] else None,
        payment_method_id=data["payment_method_id"],
        currency_code=data["currency_code"],
        promo_code=data["promo_code"],
        terms_accepted=bool(data["terms_accepted"]),
        approval=ApprovalSchema(
            required=bool(data["approval_required"]),
            status=data["approval_status"],
            reason=data["approval_reason"],
        ),
        idempotency_key=data["idempotency_key"],
        submission_attempts=data["submission_attempts"] or 0,
        submission_exhausted=bool(data["submission_exhausted"]),
        order_id=data["order_id"],
        last_error=data["last_error"],
        pricing=_pricing_schema(pricing, currency) if pricing else None,
        eligible_payment_methods=[
            PaymentMethodSchema(id=m.id, name=m.name, fee_percent=m.fee_percent, processing_time=m.processing_time)
            for m in methods
        ],
    )


def _load_response(session_id) -> CheckoutResponse:
    return _checkout_response(current_domain.repository_for(CheckoutSession).get(session_id))


@checkout_router.post("/order-service/configure", response_model=StatusResponse)
async def configure_order_service(body: ConfigureOrderServiceRequest) -> StatusResponse:
    """Configure the FakeOrderService behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Order service configuration not available in production")

    service = get_order_service()
    if not isinstance(service, FakeOrderService):
        raise HTTPException(status_code=400, detail="Order service configuration only available for FakeOrderService")

    service.configure(
        failures=body.failures,
        retryable=body.retryable,
        code=body.code,
        message=body.message,
        delay=body.delay,
    )
    return StatusResponse()


@checkout_router.post("", status_code=201, response_model=SessionIdResponse)
async def start_checkout(body: StartCheckoutRequest) -> SessionIdResponse:
    command = StartCheckout(
        cart_id=body.cart_id,
        customer_id=body.customer_id,
        currency_code=body.currency_code,
        spent_today=str(body.spent_today) if body.spent_today is not None else None,
        spent_this_month=str(body.spent_this_month) if body.spent_this_month is not None else None,
    )
    result = current_domain.process(command, asynchronous=False)
    return SessionIdResponse(session_id=result)


@checkout_router.get("/{session_id}", response_model=CheckoutResponse)
async def get_checkout(session_id: str) -> CheckoutResponse:
    return _load_response(session_id)


@checkout_router.put("/{session_id}/shipping-address", response_model=CheckoutResponse)
async def select_shipping_address(session_id: str, body: AddressSchema) -> CheckoutResponse:
    command = SelectShippingAddress(session_id=session_id, address=json.dumps(body.model_dump()))
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.put("/{session_id}/payment-method", response_model=CheckoutResponse)
async def select_payment_method(session_id: str, body: SelectPaymentMethodRequest) -> CheckoutResponse:
    command = SelectPaymentMethod(session_id=session_id, payment_method_id=body.payment_method_id)
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.put("/{session_id}/currency", response_model=CheckoutResponse)
async def select_currency(session_id: str, body: SelectCurrencyRequest) -> CheckoutResponse:
    command = SelectCurrency(session_id=session_id, currency_code=body.currency_code)
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.put("/{session_id}/promo", response_model=CheckoutResponse)
async def apply_promo(session_id: str, body: ApplyPromoRequest) -> CheckoutResponse:
    command = ApplyPromoCode(session_id=session_id, promo_code=body.promo_code)
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.delete("/{session_id}/promo", response_model=CheckoutResponse)
async def remove_promo(session_id: str) -> CheckoutResponse:
    current_domain.process(RemovePromoCode(session_id=session_id), asynchronous=False)
    return _load_response(session_id)


@checkout_router.put("/{session_id}/items/{product_id}", response_model=CheckoutResponse)
async def change_item_quantity(session_id: str, product_id: str, body: ChangeItemQuantityRequest) -> CheckoutResponse:
    command = ChangeCheckoutItemQuantity(session_id=session_id, product_id=product_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.delete("/{session_id}/items/{product_id}", response_model=CheckoutResponse)
async def remove_item(session_id: str, product_id: str) -> CheckoutResponse:
    command = RemoveCheckoutItem(session_id=session_id, product_id=product_id)
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.post("/{session_id}/advance", response_model=StepResponse)
async def advance_checkout(session_id: str) -> StepResponse:
    step = current_domain.process(AdvanceCheckout(session_id=session_id), asynchronous=False)
    return StepResponse(step=step)


@checkout_router.post("/{session_id}/back", response_model=StepResponse)
async def go_back(session_id: str, body: GoBackRequest | None = None) -> StepResponse:
    command = GoBack(session_id=session_id, to_step=body.to_step if body else None)
    step = current_domain.process(command, asynchronous=False)
    return StepResponse(step=step)


@checkout_router.post("/{session_id}/approval-request", response_model=StatusResponse)
async def request_approval(session_id: str) -> StatusResponse:
    current_domain.process(RequestApproval(session_id=session_id), asynchronous=False)
    return StatusResponse(status="approval_requested")


@checkout_router.post("/{session_id}/approval", response_model=CheckoutResponse)
async def approve_purchase(session_id: str, body: ApprovePurchaseRequest) -> CheckoutResponse:
    command = ApprovePurchase(session_id=session_id, approver_id=body.approver_id)
    current_domain.process(command, asynchronous=False)
    return _load_response(session_id)


@checkout_router.post("/{session_id}/terms", response_model=CheckoutResponse)
async def accept_terms(session_id: str) -> CheckoutResponse:
    current_domain.process(AcceptTerms(session_id=session_id), asynchronous=False)
    return _load_response(session_id)


@checkout_router.post("/{session_id}/submit", status_code=201, response_model=SubmitOrderResponse)
async def submit_checkout(session_id: str):
    """Place the order. Responds 502 with the failure when the order service did not accept it."""
    outcome = await submit_order(session_id)
    if not outcome.success:
        return JSONResponse(status_code=502, content=asdict(outcome))
    return SubmitOrderResponse(**asdict(outcome))


@checkout_router.post("/{session_id}/reinitiate", response_model=CheckoutResponse)
async def reinitiate_submission(session_id: str) -> CheckoutResponse:
    current_domain.process(ReinitiateSubmission(session_id=session_id), asynchronous=False)
    return _load_response(session_id)


@checkout_router.post("/{session_id}/abandon", response_model=StatusResponse)
async def abandon_checkout(session_id: str) -> StatusResponse:
    current_domain.process(AbandonCheckout(session_id=session_id), asynchronous=False)
    return StatusResponse(status="abandoned")


@checkout_router.post("/{session_id}/start-over", response_model=CheckoutResponse)
async def start_over(session_id: str) -> CheckoutResponse:
    current_domain.process(StartOver(session_id=session_id), asynchronous=False)
    return _load_response(session_id)
