"""Pricing engine — pure computation of cart totals.

``price()`` turns a cart snapshot plus the shopper's currency, payment method
and promo selections into a ``PricingResult``. It holds no state and performs
no I/O: the same inputs always yield an identical result, which is what lets a
single cart be quoted in several currencies at once.

All arithmetic uses ``Decimal``. Intermediate values are kept unrounded; only
the reported amounts are quantized, half-up, to the currency's minor units
(whole so'm for UZS, cents for USD/EUR/RUB).
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext

from checkout.errors import PaymentMethodIneligible
from checkout.pricing.reference import Currency, PaymentMethod, PromoCode, ReferenceTable

ZERO = Decimal("0")
HUNDRED = Decimal("100")

_CONTEXT = Context(prec=34, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricedLine:
    """The part of a line item the engine needs: what, how much, how many."""

    product_id: str
    unit_price: Decimal
    quantity: int


@dataclass(frozen=True)
class PricingResult:
    currency_code: str
    subtotal: Decimal
    discount_amount: Decimal
    shipping_amount: Decimal
    fee_amount: Decimal
    grand_total: Decimal

    def to_dict(self) -> dict:
        return {
            "currency_code": self.currency_code,
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "shipping_amount": str(self.shipping_amount),
            "fee_amount": str(self.fee_amount),
            "grand_total": str(self.grand_total),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PricingResult":
        return cls(
            currency_code=data["currency_code"],
            subtotal=Decimal(data["subtotal"]),
            discount_amount=Decimal(data["discount_amount"]),
            shipping_amount=Decimal(data["shipping_amount"]),
            fee_amount=Decimal(data["fee_amount"]),
            grand_total=Decimal(data["grand_total"]),
        )


def to_decimal(value) -> Decimal:
    """Normalize a monetary input to ``Decimal``.

    Floats arriving from JSON are converted through their shortest ``repr`` so
    that ``49.99`` becomes ``Decimal("49.99")`` rather than its binary
    approximation.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a monetary amount")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}") from None


def quantize(amount: Decimal, currency: Currency) -> Decimal:
    exponent = Decimal(1).scaleb(-currency.minor_units)
    return amount.quantize(exponent, rounding=ROUND_HALF_UP, context=_CONTEXT)


def format_amount(amount: Decimal, currency: Currency) -> str:
    """Render an amount for display, e.g. ``100,000 so'm`` or ``8.60 $``."""
    return f"{quantize(amount, currency):,} {currency.symbol}"


def to_base(amount: Decimal, currency: Currency) -> Decimal:
    """Convert an amount in ``currency`` back to the base currency (unrounded)."""
    with localcontext(_CONTEXT):
        return amount / currency.rate_to_base


def convert(amount: Decimal, source: Currency, target: Currency) -> Decimal:
    """Convert between two currencies through the base currency (unrounded)."""
    with localcontext(_CONTEXT):
        return amount / source.rate_to_base * target.rate_to_base


def price(
    lines,
    currency: Currency,
    payment_method: PaymentMethod | None = None,
    promo: PromoCode | None = None,
    shipping_amount: Decimal = ZERO,
) -> PricingResult:
    """Compute the full pricing breakdown of ``lines`` in ``currency``.

    Args:
        lines: Iterable of ``PricedLine`` with unit prices in the base currency.
        currency: Currency to quote in.
        payment_method: Selected method; its fee applies to the discounted
            subtotal plus shipping.
        promo: Approved promo; its percentage applies to the converted subtotal.
        shipping_amount: Shipping in ``currency``; free shipping is the default.
    """
    with localcontext(_CONTEXT):
        subtotal = sum((line.unit_price * line.quantity for line in lines), ZERO)
        converted_subtotal = subtotal * currency.rate_to_base

        discount_percent = promo.discount_percent if promo is not None else ZERO
        discount_amount = converted_subtotal * discount_percent / HUNDRED

        shipping = to_decimal(shipping_amount)

        fee_percent = payment_method.fee_percent if payment_method is not None else ZERO
        fee_amount = (converted_subtotal - discount_amount + shipping) * fee_percent / HUNDRED

        grand_total = converted_subtotal - discount_amount + shipping + fee_amount

    return PricingResult(
        currency_code=currency.code,
        subtotal=quantize(converted_subtotal, currency),
        discount_amount=quantize(discount_amount, currency),
        shipping_amount=quantize(shipping, currency),
        fee_amount=quantize(fee_amount, currency),
        grand_total=quantize(grand_total, currency),
    )


def check_eligibility(method: PaymentMethod, currency: Currency, grand_total: Decimal) -> None:
    """Raise ``PaymentMethodIneligible`` unless ``method`` can settle ``grand_total``.

    ``grand_total`` is in ``currency``; transaction bounds are base-currency
    amounts, so the total is converted to base before comparing.
    """
    if not method.supports(currency.code):
        raise PaymentMethodIneligible(method.id, f"{currency.code} is not supported")
    total = to_base(grand_total, currency)
    if total < method.min_amount:
        raise PaymentMethodIneligible(method.id, f"total {total:.0f} so'm is below the minimum of {method.min_amount}")
    if total > method.max_amount:
        raise PaymentMethodIneligible(method.id, f"total {total:.0f} so'm is above the maximum of {method.max_amount}")


def eligible_methods(table: ReferenceTable, currency: Currency, grand_total: Decimal) -> list[PaymentMethod]:
    eligible = []
    for method in table.methods_for(currency.code):
        try:
            check_eligibility(method, currency, grand_total)
        except PaymentMethodIneligible:
            continue
        eligible.append(method)
    return eligible
