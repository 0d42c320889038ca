"""Guest → customer cart reconciliation.

``reconcile_items`` is the pure merge: for every product present in either
cart the quantities are summed and capped at the per-item maximum. Per-product
quantities do not depend on which cart is merged into which.

The merge is only additive-safe when it runs once per login, so the customer
cart remembers the reconciliation tokens it has already absorbed and ignores
a replayed one (e.g. a retried login request).
"""

import json

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from checkout.cart.boundary import parse_cart_payload
from checkout.cart.cart import MAX_ITEM_QUANTITY, Cart
from checkout.domain import checkout

logger = structlog.get_logger(__name__)


def reconcile_items(local_items, remote_items, max_quantity=MAX_ITEM_QUANTITY):
    """Merge two lists of line dicts keyed by ``product_id``.

    The remote line's price snapshot and product details win when a product is
    in both carts. Remote products come first, then new local ones, each in
    their original order.
    """
    merged = {}
    for line in [*remote_items, *local_items]:
        key = str(line["product_id"])
        quantity = int(line["quantity"])
        if key in merged:
            merged[key]["quantity"] = min(merged[key]["quantity"] + quantity, max_quantity)
        else:
            merged[key] = {**line, "product_id": key, "quantity": min(quantity, max_quantity)}
    return list(merged.values())


@checkout.command(part_of="Cart")
class ReconcileCarts:
    """Merge a guest cart into a customer's cart after login.

    The guest cart is either a server-held local cart (``local_cart_id``) or
    the items the browser kept while the shopper was anonymous (``local_items``).
    """

    cart_id = Identifier(required=True)
    token = String(required=True, max_length=255)
    local_cart_id = Identifier()
    local_items = Text()  # JSON: cart payload as held by the client


@checkout.command_handler(part_of=Cart)
class ReconcileCartsHandler:
    @handle(ReconcileCarts)
    def reconcile_carts(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)

        if command.local_cart_id:
            local_cart = repo.get(command.local_cart_id)
        else:
            payload = json.loads(command.local_items) if command.local_items else None
            local_cart = Cart.from_dict({"mode": "Local", "items": parse_cart_payload(payload)})

        merged = cart.reconcile_from(local_cart, token=command.token)
        repo.add(cart)
        if command.local_cart_id:
            repo.add(local_cart)

        logger.info(
            "Cart reconciliation processed",
            cart_id=str(cart.id),
            token=command.token,
            merged=merged,
            item_count=cart.item_count,
        )
        return merged
