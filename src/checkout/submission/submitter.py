"""Submit a reviewed checkout to the order service.

``submit_order`` is the one place where checkout crosses the process
boundary. It claims the session's in-flight flag, snapshots the payload, and
calls the order service under a timeout. Retryable failures (timeouts
included) are retried with the same idempotency key until the policy's
attempt limit is reached; the order service de-duplicates by that key, so a
retry never creates a second order.

On success the session completes and the cart is cleared. On failure the
session stays in Review carrying ``last_error``. The in-flight flag is
released on every exit path, including cancellation of the calling task.
"""

import asyncio
from dataclasses import dataclass

import structlog
from protean.utils.globals import current_domain

from checkout.cart.cart import Cart
from checkout.config import get_policy
from checkout.errors import StepValidation, SubmissionFailed
from checkout.pricing.engine import check_eligibility
from checkout.session.quoting import reprice
from checkout.session.session import CheckoutSession
from checkout.session.steps import CheckoutStatus, CheckoutStep
from checkout.submission import get_order_service
from checkout.submission.payload import build_payload

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SubmissionOutcome:
    session_id: str
    success: bool
    attempts: int
    order_id: str | None = None
    duplicate: bool = False
    error: dict | None = None
    exhausted: bool = False


async def submit_order(session_id, service=None, policy=None) -> SubmissionOutcome:
    """Place the order for a checkout session that is in Review.

    Raises ``SubmissionInFlight`` when another submission for the session is
    outstanding, and the usual guard errors (terms, approval, eligibility)
    when the session is not ready to be submitted.
    """
    service = service or get_order_service()
    policy = policy or get_policy()
    sessions = current_domain.repository_for(CheckoutSession)
    carts = current_domain.repository_for(Cart)

    session = sessions.get(session_id)
    cart = carts.get(session.cart_id)

    if CheckoutStatus(session.status) != CheckoutStatus.ACTIVE or session.current_step != CheckoutStep.REVIEW:
        raise StepValidation("step", "Orders are submitted from the review step")

    if session.release_stale_submission(policy.submission_timeout, policy.max_submission_attempts):
        logger.warning("Stale order submission released", session_id=str(session.id))

    context = reprice(session, cart, policy=policy)
    if context.payment_method is not None:
        check_eligibility(context.payment_method, context.currency, context.pricing.grand_total)
    session.begin_submission()
    payload = build_payload(session, cart)
    sessions.add(session)

    log = logger.bind(session_id=str(session.id), idempotency_key=payload.idempotency_key)

    try:
        return await _attempt(session, payload, service, policy, sessions, carts, log)
    except asyncio.CancelledError:
        _release(session_id, "cancelled", "Order submission was cancelled", True, policy, log)
        raise
    except BaseException as exc:
        _release(session_id, "unexpected_error", str(exc), False, policy, log)
        raise


async def _attempt(session, payload, service, policy, sessions, carts, log) -> SubmissionOutcome:
    while True:
        attempt = session.submission_attempts
        log.info("Submitting order", attempt=attempt)
        try:
            receipt = await asyncio.wait_for(service.create_order(payload), timeout=policy.submission_timeout)
        except TimeoutError:
            failure = SubmissionFailed(
                "timeout", f"No response from the order service within {policy.submission_timeout}s", retryable=True
            )
        except SubmissionFailed as exc:
            failure = exc
        else:
            return _complete(session, receipt, sessions, carts, log)

        exhausted = session.record_submission_failure(
            failure.code,
            failure.message,
            failure.retryable,
            max_attempts=policy.max_submission_attempts,
        )
        sessions.add(session)
        log.warning(
            "Order submission failed",
            attempt=attempt,
            code=failure.code,
            retryable=failure.retryable,
            exhausted=exhausted,
        )

        if not failure.retryable or exhausted:
            return SubmissionOutcome(
                session_id=str(session.id),
                success=False,
                attempts=attempt,
                error=failure.to_dict(),
                exhausted=exhausted,
            )

        session.begin_submission()
        sessions.add(session)


def _release(session_id, code, message, retryable, policy, log):
    """Record an attempt that ended without an outcome, on a freshly loaded session."""
    sessions = current_domain.repository_for(CheckoutSession)
    session = sessions.get(session_id)
    if not session.submission_in_flight:
        return

    session.record_submission_failure(code, message, retryable, max_attempts=policy.max_submission_attempts)
    sessions.add(session)
    log.exception("Order submission interrupted", attempt=session.submission_attempts, code=code)


def _complete(session, receipt, sessions, carts, log) -> SubmissionOutcome:
    session.record_submission_success(receipt.order_id)
    sessions.add(session)

    cart = carts.get(session.cart_id)
    cart.clear(reason="order_placed")
    carts.add(cart)

    log.info("Order placed", order_id=receipt.order_id, attempts=session.submission_attempts, duplicate=receipt.duplicate)
    return SubmissionOutcome(
        session_id=str(session.id),
        success=True,
        attempts=session.submission_attempts,
        order_id=receipt.order_id,
        duplicate=receipt.duplicate,
    )
