"""Configurable fake order service for development and testing.

Behaves like an idempotent order API: a second request with an idempotency
key it has already accepted returns the original order instead of creating a
new one. It can be told to fail a number of times, to fail in a
non-retryable way, or to stall (to exercise submission timeouts).
"""

import asyncio
from uuid import uuid4

from checkout.errors import SubmissionFailed
from checkout.submission.port import OrderReceipt, OrderService


class FakeOrderService(OrderService):
    """In-memory order service."""

    def __init__(self) -> None:
        self.orders: dict[str, dict] = {}
        self.calls: list[dict] = []
        self.configure()

    def configure(
        self,
        failures: int = 0,
        retryable: bool = True,
        code: str = "service_unavailable",
        message: str = "Order service unavailable",
        delay: float = 0.0,
    ) -> None:
        """Fail the next ``failures`` calls, and/or delay every call by ``delay`` seconds."""
        self.failures_remaining = failures
        self.retryable = retryable
        self.failure_code = code
        self.failure_message = message
        self.delay = delay

    async def create_order(self, payload) -> OrderReceipt:
        key = payload.idempotency_key
        self.calls.append({"method": "create_order", "idempotency_key": key})

        if self.delay:
            await asyncio.sleep(self.delay)

        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise SubmissionFailed(self.failure_code, self.failure_message, retryable=self.retryable)

        if key in self.orders:
            return OrderReceipt(order_id=self.orders[key]["order_id"], idempotency_key=key, duplicate=True)

        order_id = f"fake_ord_{uuid4().hex[:12]}"
        self.orders[key] = {"order_id": order_id, "payload": payload.to_dict()}
        return OrderReceipt(order_id=order_id, idempotency_key=key)
