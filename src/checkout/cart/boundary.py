"""Parse cart payloads arriving from outside the domain.

Carts reach the checkout core in several loosely-typed shapes: the browser's
guest cart from local storage, and the marketplace API's ``{items, totals}``
envelope (sometimes wrapped in ``{data: ...}``), whose lines nest product
details under ``product``. This module normalizes them once, at the boundary,
into plain line dicts::

    {"product_id", "quantity", "unit_price", "title", "images", "seller_label"}

Missing optional details are tolerated; a line without a product, a positive
integer quantity or a readable price is rejected with ``MalformedCartPayload``.
Totals supplied by the sender are ignored: totals are always derived from the
items.
"""

from checkout.errors import MalformedCartPayload
from checkout.pricing.engine import to_decimal


def _first(*values):
    return next((v for v in values if v not in (None, "")), None)


def _images(item, product):
    images = _first(item.get("images"), product.get("images"))
    if images is None and product.get("product_image"):
        images = [img.get("url") for img in product["product_image"] if isinstance(img, dict) and img.get("url")]
    if isinstance(images, str):
        images = [images]
    return [str(i) for i in images or []]


def parse_line(item) -> dict:
    if not isinstance(item, dict):
        raise MalformedCartPayload(f"line must be an object, got {type(item).__name__}")

    product = item.get("product") if isinstance(item.get("product"), dict) else {}

    product_id = _first(item.get("product_id"), item.get("productId"), product.get("id"))
    if product_id is None:
        raise MalformedCartPayload("line has no product id")

    quantity = item.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise MalformedCartPayload(f"product {product_id} has invalid quantity {quantity!r}")

    raw_price = _first(item.get("unit_price"), item.get("price"), product.get("price"))
    if raw_price is None:
        raise MalformedCartPayload(f"product {product_id} has no price")
    try:
        unit_price = to_decimal(raw_price)
    except ValueError:
        raise MalformedCartPayload(f"product {product_id} has unreadable price {raw_price!r}") from None
    if unit_price < 0:
        raise MalformedCartPayload(f"product {product_id} has a negative price")

    brand = product.get("brand") if isinstance(product.get("brand"), dict) else {}

    return {
        "product_id": str(product_id),
        "quantity": quantity,
        "unit_price": unit_price,
        "title": _first(item.get("title"), product.get("title")) or "",
        "images": _images(item, product),
        "seller_label": _first(item.get("seller_label"), item.get("seller"), brand.get("name")) or "",
    }


def parse_cart_payload(payload) -> list[dict]:
    """Normalize any accepted cart shape into a list of line dicts."""
    if not payload:
        return []
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"] or {}
    if isinstance(payload, dict):
        payload = payload.get("items") or []
    if not isinstance(payload, list):
        raise MalformedCartPayload(f"expected a list of items, got {type(payload).__name__}")
    return [parse_line(item) for item in payload]
