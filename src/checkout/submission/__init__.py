"""Order service factory.

Provides get_order_service() / set_order_service() to swap implementations:
- FakeOrderService for development and testing (default)
- HttpOrderService for the marketplace order API

The adapter is chosen by the ORDER_SERVICE_ADAPTER environment variable
(``fake`` or ``http``); the HTTP adapter reads its base URL from
ORDER_SERVICE_URL.
"""

import os

from checkout.submission.port import OrderService

_current_service: OrderService | None = None


def get_order_service() -> OrderService:
    """Return the configured order service (singleton)."""
    global _current_service
    if _current_service is None:
        adapter = os.environ.get("ORDER_SERVICE_ADAPTER", "fake")
        if adapter == "fake":
            from checkout.submission.fake_adapter import FakeOrderService

            _current_service = FakeOrderService()
        elif adapter == "http":
            from checkout.submission.http_adapter import HttpOrderService

            base_url = os.environ.get("ORDER_SERVICE_URL")
            if not base_url:
                raise ValueError("ORDER_SERVICE_URL must be set for the http order service adapter")
            _current_service = HttpOrderService(base_url)
        else:
            raise ValueError(f"Unknown order service adapter: {adapter}")
    return _current_service


def set_order_service(service: OrderService) -> None:
    """Override the active order service (useful for tests)."""
    global _current_service
    _current_service = service


def reset_order_service() -> None:
    global _current_service
    _current_service = None
