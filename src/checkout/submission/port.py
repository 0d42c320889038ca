"""Order service port (abstract interface).

The checkout core hands a finished order to an external order-creation
service. Adapters implement this contract: ``FakeOrderService`` for
development and tests, ``HttpOrderService`` for the marketplace API.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class OrderReceipt:
    """Acknowledgement of a created order.

    ``duplicate`` is set when the service recognised the idempotency key and
    returned the order created by an earlier attempt.
    """

    order_id: str
    idempotency_key: str
    duplicate: bool = False


class OrderService(ABC):
    """Abstract order-creation boundary."""

    @abstractmethod
    async def create_order(self, payload) -> OrderReceipt:
        """Create an order from an ``OrderPayload``.

        Raises ``SubmissionFailed`` when the service rejects the order or
        cannot be reached.
        """
        ...
