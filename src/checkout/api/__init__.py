"""Checkout domain API package."""

from checkout.api.routes import cart_router, checkout_router

__all__ = ["cart_router", "checkout_router"]
