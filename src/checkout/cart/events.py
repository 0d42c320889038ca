"""Domain events for the Cart aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from checkout.domain import checkout


@checkout.event(part_of="Cart")
class CartCreated:
    """A guest (local) or customer (remote) cart was opened."""

    __version__ = 1

    cart_id = Identifier(required=True)
    mode = String(required=True)
    customer_id = Identifier()
    session_id = String()
    created_at = DateTime(required=True)


@checkout.event(part_of="Cart")
class CartItemAdded:
    """A product was added to the cart, or its quantity was increased."""

    __version__ = 1

    cart_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity_added = Integer(required=True)
    new_quantity = Integer(required=True)
    unit_price = String(required=True)  # Decimal text, snapshot at add time


@checkout.event(part_of="Cart")
class CartQuantityUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@checkout.event(part_of="Cart")
class CartItemRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    product_id = Identifier(required=True)


@checkout.event(part_of="Cart")
class CartCleared:
    """All items were removed — explicitly, after a merge, or after an order was placed."""

    __version__ = 1

    cart_id = Identifier(required=True)
    items_removed = Integer(required=True)
    reason = String(max_length=50)


@checkout.event(part_of="Cart")
class CartsReconciled:
    """A guest cart was merged into a customer's cart at login."""

    __version__ = 1

    cart_id = Identifier(required=True)
    source_cart_id = Identifier()
    token = String(required=True)
    merged_items = Text(required=True)  # JSON: list of {product_id, quantity}
