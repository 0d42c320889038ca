"""Parental approval gate.

A purchase needs a parent's explicit approval when its total, converted back
to the base currency, exceeds the approval threshold, or when it would push
the child's daily or monthly spending past a configured limit. Comparing in
the base currency keeps the decision stable when the shopper switches the
display currency mid-checkout.

The gate itself is stateless. Stickiness is achieved by passing the previous
decision of the checkout session back in: once a session has required
approval it keeps requiring it (and an approval, once granted, stays granted)
until the session is explicitly started over.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

import structlog

from checkout.errors import ApprovalNotPending
from checkout.pricing.engine import ZERO, to_base
from checkout.pricing.reference import Currency

logger = structlog.get_logger(__name__)

DEFAULT_APPROVAL_THRESHOLD = Decimal("100000")


class ApprovalStatus(Enum):
    NOT_REQUIRED = "NotRequired"
    PENDING = "Pending"
    APPROVED = "Approved"


@dataclass(frozen=True)
class SpendingPolicy:
    """Limits a parent has configured, all in the base currency."""

    approval_threshold: Decimal = DEFAULT_APPROVAL_THRESHOLD
    daily_limit: Decimal | None = None
    monthly_limit: Decimal | None = None


@dataclass(frozen=True)
class ApprovalDecision:
    required: bool = False
    status: ApprovalStatus = ApprovalStatus.NOT_REQUIRED
    reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING


def requirement_reason(
    base_total: Decimal,
    policy: SpendingPolicy,
    spent_today: Decimal = ZERO,
    spent_this_month: Decimal = ZERO,
) -> str | None:
    """Explain why ``base_total`` needs approval, or return None when it does not."""
    if base_total > policy.approval_threshold:
        return f"total exceeds the approval threshold of {policy.approval_threshold}"
    if policy.daily_limit is not None and spent_today + base_total > policy.daily_limit:
        return f"purchase exceeds the daily spending limit of {policy.daily_limit}"
    if policy.monthly_limit is not None and spent_this_month + base_total > policy.monthly_limit:
        return f"purchase exceeds the monthly spending limit of {policy.monthly_limit}"
    return None


def evaluate(
    grand_total: Decimal,
    currency: Currency,
    policy: SpendingPolicy,
    previous: ApprovalDecision | None = None,
    spent_today: Decimal = ZERO,
    spent_this_month: Decimal = ZERO,
) -> ApprovalDecision:
    """Decide whether ``grand_total`` (in ``currency``) requires parental approval."""
    if previous is not None and previous.required:
        return previous

    reason = requirement_reason(to_base(grand_total, currency), policy, spent_today, spent_this_month)
    if reason is None:
        return ApprovalDecision()

    logger.info("Parental approval required", grand_total=str(grand_total), currency=currency.code, reason=reason)
    return ApprovalDecision(required=True, status=ApprovalStatus.PENDING, reason=reason)


def approve(decision: ApprovalDecision) -> ApprovalDecision:
    """Grant a pending approval. Granting an already approved decision is a no-op."""
    if decision.status == ApprovalStatus.APPROVED:
        return decision
    if decision.status != ApprovalStatus.PENDING:
        raise ApprovalNotPending(decision.status.value)
    return ApprovalDecision(required=True, status=ApprovalStatus.APPROVED, reason=decision.reason)
