"""Currency & fee reference table.

Static, read-only data shared by every checkout session: the currencies a
shopper can price a cart in, the payment methods with their fee schedules and
transaction bounds, and the approved promo codes.

Rates are expressed against the base (settlement) currency, UZS: an amount of
``x`` so'm is worth ``x * rate_to_base`` units of the currency.

Payment-method bounds (``min_amount`` / ``max_amount``) are so'm amounts
whatever the currency a cart is priced in; a total in another currency is
converted to so'm before it is checked against them.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from checkout.errors import PaymentMethodIneligible, PromoInvalid, UnknownCurrency

BASE_CURRENCY = "UZS"


@dataclass(frozen=True)
class Currency:
    code: str
    symbol: str
    name: str
    rate_to_base: Decimal
    is_default: bool = False
    minor_units: int = 2

    def __post_init__(self):
        if self.rate_to_base <= 0:
            raise ValueError(f"Currency {self.code} must have a positive rate, got {self.rate_to_base}")


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    name: str
    supported_currencies: frozenset[str]
    fee_percent: Decimal = Decimal("0")
    min_amount: Decimal = Decimal("0")
    max_amount: Decimal = Decimal("Infinity")
    processing_time: str = ""

    def __post_init__(self):
        if self.fee_percent < 0:
            raise ValueError(f"Payment method {self.id} cannot have a negative fee")
        if self.min_amount > self.max_amount:
            raise ValueError(f"Payment method {self.id} has min_amount above max_amount")

    def supports(self, currency_code: str) -> bool:
        return currency_code in self.supported_currencies


@dataclass(frozen=True)
class PromoCode:
    code: str
    discount_percent: Decimal

    def __post_init__(self):
        if not Decimal("0") <= self.discount_percent <= Decimal("100"):
            raise ValueError(f"Promo {self.code} must discount between 0 and 100 percent")


@dataclass(frozen=True)
class ReferenceTable:
    """Lookup over currencies, payment methods and promo codes.

    Exactly one currency must be flagged as the default; it is the display and
    settlement currency whenever the shopper has not picked another one.
    """

    currencies: MappingProxyType = field(repr=False)
    payment_methods: MappingProxyType = field(repr=False)
    promo_codes: MappingProxyType = field(repr=False)

    @classmethod
    def build(cls, currencies, payment_methods, promo_codes=()):
        currencies = list(currencies)
        defaults = [c for c in currencies if c.is_default]
        if len(defaults) != 1:
            raise ValueError(f"Exactly one default currency is required, found {len(defaults)}")

        return cls(
            currencies=MappingProxyType({c.code: c for c in currencies}),
            payment_methods=MappingProxyType({m.id: m for m in payment_methods}),
            promo_codes=MappingProxyType({p.code.upper(): p for p in promo_codes}),
        )

    def default_currency(self) -> Currency:
        return next(c for c in self.currencies.values() if c.is_default)

    def currency(self, code: str) -> Currency:
        try:
            return self.currencies[(code or "").upper()]
        except KeyError:
            raise UnknownCurrency(code) from None

    def payment_method(self, method_id: str) -> PaymentMethod:
        try:
            return self.payment_methods[method_id]
        except KeyError:
            raise PaymentMethodIneligible(method_id, "unknown payment method") from None

    def methods_for(self, currency_code: str) -> list[PaymentMethod]:
        return [m for m in self.payment_methods.values() if m.supports(currency_code)]

    def validate_promo(self, code: str) -> PromoCode:
        """Return the approved promo for ``code`` (case-insensitive) or raise ``PromoInvalid``."""
        promo = self.promo_codes.get((code or "").strip().upper())
        if promo is None:
            raise PromoInvalid(code)
        return promo


DEFAULT_TABLE = ReferenceTable.build(
    currencies=[
        Currency("UZS", "so'm", "O'zbek so'mi", Decimal("1"), is_default=True, minor_units=0),
        Currency("USD", "$", "US Dollar", Decimal("0.000086")),
        Currency("EUR", "€", "Euro", Decimal("0.000079")),
        Currency("RUB", "₽", "Russian Ruble", Decimal("0.0086")),
    ],
    # Bounds in so'm
    payment_methods=[
        PaymentMethod(
            "uzcard", "UzCard", frozenset({"UZS"}), Decimal("0"), Decimal("1000"), Decimal("50000000"), "instant"
        ),
        PaymentMethod(
            "humo", "Humo", frozenset({"UZS"}), Decimal("0"), Decimal("1000"), Decimal("50000000"), "instant"
        ),
        PaymentMethod(
            "click", "Click", frozenset({"UZS"}), Decimal("0.5"), Decimal("1000"), Decimal("10000000"), "1-3 min"
        ),
        PaymentMethod(
            "payme", "Payme", frozenset({"UZS"}), Decimal("0.5"), Decimal("1000"), Decimal("10000000"), "1-3 min"
        ),
        PaymentMethod(
            "uzum", "Uzum Bank", frozenset({"UZS"}), Decimal("0"), Decimal("1000"), Decimal("30000000"), "instant"
        ),
        PaymentMethod(
            "visa",
            "Visa",
            frozenset({"USD", "EUR", "UZS"}),
            Decimal("2.9"),
            Decimal("100"),
            Decimal("100000000"),
            "2-5 min",
        ),
        PaymentMethod(
            "mastercard",
            "Mastercard",
            frozenset({"USD", "EUR", "UZS"}),
            Decimal("2.9"),
            Decimal("100"),
            Decimal("100000000"),
            "2-5 min",
        ),
        PaymentMethod(
            "paypal",
            "PayPal",
            frozenset({"USD", "EUR"}),
            Decimal("3.4"),
            Decimal("50"),
            Decimal("200000000"),
            "5-10 min",
        ),
    ],
    promo_codes=[
        PromoCode("INBOLA10", Decimal("10")),
        PromoCode("PARENT15", Decimal("15")),
        PromoCode("SAFE20", Decimal("20")),
    ],
)

_current_table: ReferenceTable | None = None


def get_reference_table() -> ReferenceTable:
    """Return the active reference table. Defaults to DEFAULT_TABLE."""
    return _current_table or DEFAULT_TABLE


def set_reference_table(table: ReferenceTable) -> None:
    """Override the active reference table (useful for tests)."""
    global _current_table
    _current_table = table


def reset_reference_table() -> None:
    global _current_table
    _current_table = None
