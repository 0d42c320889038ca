"""Checkout bounded context — Shopping Cart, Pricing, Parental Approval and Checkout.

Handles the guest/customer cart (CQRS), reconciliation of a guest cart into a
customer's cart at login, multi-currency pricing with payment-method fees, the
parental approval gate, and the multi-step checkout flow that ends in an
idempotent order submission.
"""

import structlog
from protean.domain import Domain

from checkout.utils.logging import configure_logging

# Configure logging for the application
configure_logging()

logger = structlog.get_logger(__name__)

# Domain Composition Root
checkout = Domain(name="checkout")
