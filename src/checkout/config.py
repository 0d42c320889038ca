"""Checkout policy constants.

Read once from the environment; tests and the API override them with
``set_policy()``.

    CHECKOUT_APPROVAL_THRESHOLD       base-currency total above which a parent must approve
    CHECKOUT_DAILY_LIMIT              optional daily spending limit (base currency)
    CHECKOUT_MONTHLY_LIMIT            optional monthly spending limit (base currency)
    CHECKOUT_SHIPPING_AMOUNT          flat shipping in the base currency (free by default)
    CHECKOUT_MAX_SUBMISSION_ATTEMPTS  attempts per idempotency key before manual re-initiation
    CHECKOUT_SUBMISSION_TIMEOUT       seconds before a submission attempt counts as failed
"""

import os
from dataclasses import dataclass
from decimal import Decimal

from checkout.approval.gate import DEFAULT_APPROVAL_THRESHOLD, SpendingPolicy


def _decimal_or_none(raw):
    return Decimal(raw) if raw not in (None, "") else None


@dataclass(frozen=True)
class CheckoutPolicy:
    approval_threshold: Decimal = DEFAULT_APPROVAL_THRESHOLD
    daily_limit: Decimal | None = None
    monthly_limit: Decimal | None = None
    shipping_amount: Decimal = Decimal("0")
    max_submission_attempts: int = 3
    submission_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            approval_threshold=Decimal(env.get("CHECKOUT_APPROVAL_THRESHOLD", DEFAULT_APPROVAL_THRESHOLD)),
            daily_limit=_decimal_or_none(env.get("CHECKOUT_DAILY_LIMIT")),
            monthly_limit=_decimal_or_none(env.get("CHECKOUT_MONTHLY_LIMIT")),
            shipping_amount=Decimal(env.get("CHECKOUT_SHIPPING_AMOUNT", "0")),
            max_submission_attempts=int(env.get("CHECKOUT_MAX_SUBMISSION_ATTEMPTS", 3)),
            submission_timeout=float(env.get("CHECKOUT_SUBMISSION_TIMEOUT", 30.0)),
        )

    @property
    def spending(self) -> SpendingPolicy:
        return SpendingPolicy(
            approval_threshold=self.approval_threshold,
            daily_limit=self.daily_limit,
            monthly_limit=self.monthly_limit,
        )


_current_policy: CheckoutPolicy | None = None


def get_policy() -> CheckoutPolicy:
    """Return the active checkout policy, loading it from the environment on first use."""
    global _current_policy
    if _current_policy is None:
        _current_policy = CheckoutPolicy.from_env()
    return _current_policy


def set_policy(policy: CheckoutPolicy) -> None:
    global _current_policy
    _current_policy = policy


def reset_policy() -> None:
    global _current_policy
    _current_policy = None
