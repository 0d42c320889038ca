"""Cart aggregate (CQRS) — the shopper's line items, guest or logged-in.

A cart runs in one of two modes:

* ``Local`` — a guest cart, keyed by the browser session, used before login.
* ``Remote`` — the customer's session-bound cart, the canonical one after login.

Each line item records the unit price at the moment the product was added;
later catalogue price changes do not reach a cart that already holds the
product. ``item_count`` and ``raw_total`` are a cached projection of the items
in the base currency, recomputed on every mutation and guarded by an
invariant; currency conversion, promos and fees belong to the pricing engine.
"""

import json
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from checkout.cart.events import (
    CartCleared,
    CartCreated,
    CartItemAdded,
    CartItemRemoved,
    CartQuantityUpdated,
    CartsReconciled,
)
from checkout.domain import checkout
from checkout.errors import InvalidQuantity
from checkout.pricing.engine import PricedLine, to_decimal

MAX_ITEM_QUANTITY = 99


class CartMode(Enum):
    LOCAL = "Local"
    REMOTE = "Remote"


def _require_quantity(quantity):
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(quantity)
    return quantity


def _parse_price(unit_price):
    try:
        price = to_decimal(unit_price)
    except ValueError:
        raise ValidationError({"unit_price": [f"Unit price must be a decimal amount, got {unit_price!r}"]}) from None
    if not price.is_finite() or price < 0:
        raise ValidationError({"unit_price": ["Unit price cannot be negative"]})
    return price


@checkout.value_object(part_of="Cart")
class ProductSnapshot:
    """What the shopper saw when adding the product: title, images, seller."""

    title = String(max_length=255)
    images = Text()  # JSON list of image URLs
    seller_label = String(max_length=255)

    def image_list(self):
        return json.loads(self.images) if self.images else []


@checkout.entity(part_of="Cart")
class LineItem:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1, max_value=MAX_ITEM_QUANTITY)
    unit_price = String(required=True, max_length=50)  # Decimal text in the base currency
    snapshot = ValueObject(ProductSnapshot)
    added_at = DateTime()

    @property
    def price(self) -> Decimal:
        return Decimal(self.unit_price)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self):
        return {
            "product_id": str(self.product_id),
            "quantity": self.quantity,
            "unit_price": self.price,
            "title": self.snapshot.title if self.snapshot else "",
            "images": self.snapshot.image_list() if self.snapshot else [],
            "seller_label": self.snapshot.seller_label if self.snapshot else "",
        }


@checkout.aggregate
class Cart:
    customer_id = Identifier()  # Set for remote carts
    session_id = String(max_length=255)  # Guest session for local carts
    mode = String(choices=CartMode, default=CartMode.LOCAL.value)
    items = HasMany(LineItem)
    item_count = Integer(default=0)
    raw_total = String(max_length=50, default="0")
    merge_tokens = Text()  # JSON list of reconciliation tokens already applied
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def cached_totals_must_match_items(self):
        count = sum(item.quantity for item in self.items)
        total = sum((item.line_total for item in self.items), Decimal("0"))
        if self.item_count != count or Decimal(self.raw_total or "0") != total:
            raise ValidationError({"totals": ["Cart totals must be derived from its items"]})

    @invariant.post
    def products_must_be_unique(self):
        product_ids = [str(item.product_id) for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValidationError({"items": ["A product can appear only once in a cart"]})

    # -------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------
    @classmethod
    def create_local(cls, session_id=None):
        return cls._open(mode=CartMode.LOCAL, session_id=session_id)

    @classmethod
    def create_remote(cls, customer_id, session_id=None):
        return cls._open(mode=CartMode.REMOTE, customer_id=customer_id, session_id=session_id)

    @classmethod
    def _open(cls, mode, customer_id=None, session_id=None):
        now = datetime.now(UTC)
        cart = cls(
            customer_id=customer_id,
            session_id=session_id,
            mode=mode.value,
            merge_tokens=json.dumps([]),
            created_at=now,
            updated_at=now,
        )
        cart.raise_(
            CartCreated(
                cart_id=str(cart.id),
                mode=mode.value,
                customer_id=str(customer_id) if customer_id else None,
                session_id=session_id,
                created_at=now,
            )
        )
        return cart

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def find_item(self, product_id):
        return next((i for i in self.items if str(i.product_id) == str(product_id)), None)

    def _recompute_totals(self):
        self.item_count = sum(item.quantity for item in self.items)
        self.raw_total = str(sum((item.line_total for item in self.items), Decimal("0")))

    @staticmethod
    def _new_line(product_id, quantity, unit_price, title=None, images=None, seller_label=None, added_at=None):
        return LineItem(
            product_id=str(product_id),
            quantity=quantity,
            unit_price=str(unit_price),
            snapshot=ProductSnapshot(
                title=title or "",
                images=json.dumps(list(images or [])),
                seller_label=seller_label or "",
            ),
            added_at=added_at,
        )

    @property
    def is_empty(self):
        return not self.items

    def lines(self):
        """Snapshot of the items for the pricing engine."""
        return tuple(PricedLine(str(i.product_id), i.price, i.quantity) for i in self.items)

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def add_item(self, product_id, quantity, unit_price, title=None, images=None, seller_label=None):
        """Add ``quantity`` of a product, or increase it if it is already in the cart.

        The unit price is only recorded for a new line; an existing line keeps
        the price it was first added at.
        """
        if _require_quantity(quantity) < 1:
            raise InvalidQuantity(quantity)
        price = _parse_price(unit_price)

        existing = self.find_item(product_id)
        now = datetime.now(UTC)

        with atomic_change(self):
            if existing:
                existing.quantity = min(existing.quantity + quantity, MAX_ITEM_QUANTITY)
                item = existing
            else:
                item = self._new_line(
                    product_id, min(quantity, MAX_ITEM_QUANTITY), price, title, images, seller_label, now
                )
                self.add_items(item)
            self._recompute_totals()
            self.updated_at = now

        self.raise_(
            CartItemAdded(
                cart_id=str(self.id),
                item_id=str(item.id),
                product_id=str(product_id),
                quantity_added=quantity,
                new_quantity=item.quantity,
                unit_price=item.unit_price,
            )
        )
        return item

    def update_quantity(self, product_id, quantity):
        """Set a product's quantity. Zero or less removes the line; unknown products are ignored."""
        _require_quantity(quantity)

        item = self.find_item(product_id)
        if item is None:
            return
        if quantity <= 0:
            self.remove_item(product_id)
            return

        previous_quantity = item.quantity
        new_quantity = min(quantity, MAX_ITEM_QUANTITY)
        if new_quantity == previous_quantity:
            return

        with atomic_change(self):
            item.quantity = new_quantity
            self._recompute_totals()
            self.updated_at = datetime.now(UTC)

        self.raise_(
            CartQuantityUpdated(
                cart_id=str(self.id),
                product_id=str(product_id),
                previous_quantity=previous_quantity,
                new_quantity=new_quantity,
            )
        )

    def remove_item(self, product_id):
        """Remove a product from the cart. Removing an absent product does nothing."""
        item = self.find_item(product_id)
        if item is None:
            return

        with atomic_change(self):
            self.remove_items(item)
            self._recompute_totals()
            self.updated_at = datetime.now(UTC)

        self.raise_(CartItemRemoved(cart_id=str(self.id), product_id=str(product_id)))

    def clear(self, reason="cleared"):
        items_removed = len(self.items)

        with atomic_change(self):
            for item in list(self.items):
                self.remove_items(item)
            self._recompute_totals()
            self.updated_at = datetime.now(UTC)

        self.raise_(CartCleared(cart_id=str(self.id), items_removed=items_removed, reason=reason))

    # -------------------------------------------------------------------
    # Reconciliation (guest → customer)
    # -------------------------------------------------------------------
    def applied_merge_tokens(self):
        return json.loads(self.merge_tokens) if self.merge_tokens else []

    def reconcile_from(self, local_cart, token):
        """Absorb a guest cart into this customer cart, then empty the guest cart.

        Returns False, without touching either cart, when ``token`` has already
        been reconciled into this cart.
        """
        from checkout.cart.reconciliation import reconcile_items

        if CartMode(self.mode) != CartMode.REMOTE:
            raise ValidationError({"mode": ["Only a customer cart can absorb a guest cart"]})
        if str(local_cart.id) == str(self.id):
            raise ValidationError({"local_cart_id": ["A cart cannot be reconciled into itself"]})
        if CartMode(local_cart.mode) != CartMode.LOCAL:
            raise ValidationError({"local_cart_id": ["Only a guest cart can be reconciled into a customer cart"]})

        tokens = self.applied_merge_tokens()
        if token in tokens:
            return False

        merged = reconcile_items(
            [item.to_dict() for item in local_cart.items],
            [item.to_dict() for item in self.items],
        )
        now = datetime.now(UTC)

        with atomic_change(self):
            for line in merged:
                existing = self.find_item(line["product_id"])
                if existing:
                    existing.quantity = line["quantity"]
                else:
                    self.add_items(
                        self._new_line(
                            line["product_id"],
                            line["quantity"],
                            line["unit_price"],
                            line.get("title"),
                            line.get("images"),
                            line.get("seller_label"),
                            now,
                        )
                    )
            self._recompute_totals()
            self.merge_tokens = json.dumps([*tokens, token])
            self.updated_at = now

        if local_cart.items:
            local_cart.clear(reason="reconciled")

        self.raise_(
            CartsReconciled(
                cart_id=str(self.id),
                source_cart_id=str(local_cart.id),
                token=token,
                merged_items=json.dumps([{"product_id": m["product_id"], "quantity": m["quantity"]} for m in merged]),
            )
        )
        return True

    # -------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------
    def to_dict(self):
        return {
            "id": str(self.id),
            "mode": self.mode,
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "session_id": self.session_id,
            "items": [item.to_dict() for item in self.items],
            "item_count": self.item_count,
            "raw_total": Decimal(self.raw_total or "0"),
            "merge_tokens": self.applied_merge_tokens(),
        }

    @classmethod
    def from_dict(cls, data):
        """Rebuild a cart from ``to_dict()`` output or parsed boundary lines.

        Repeated products are folded into one line, capped like any other merge.
        """
        from checkout.cart.reconciliation import reconcile_items

        items = data.get("items") or []
        for line in items:
            if _require_quantity(line["quantity"]) < 1:
                raise InvalidQuantity(line["quantity"])

        attributes = {
            "customer_id": data.get("customer_id"),
            "session_id": data.get("session_id"),
            "mode": data.get("mode") or CartMode.LOCAL.value,
            "merge_tokens": json.dumps(data.get("merge_tokens") or []),
        }
        if data.get("id"):
            attributes["id"] = data["id"]
        cart = cls(**attributes)

        with atomic_change(cart):
            for line in reconcile_items(items, []):
                cart.add_items(
                    cls._new_line(
                        line["product_id"],
                        line["quantity"],
                        _parse_price(line["unit_price"]),
                        line.get("title"),
                        line.get("images"),
                        line.get("seller_label"),
                    )
                )
            cart._recompute_totals()
        return cart
