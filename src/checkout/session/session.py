"""CheckoutSession aggregate (CQRS) — one shopper's walk through checkout.

The session is the single source of truth for checkout state. Every guard is
evaluated against its fields (plus the cart and pricing handed in by the
application layer), so a session can be serialized and restored at any step.

Step Machine:
    Cart → Shipping → Payment → Review → Complete
    any step ← later step (backward navigation keeps entered data)
    Active → Abandoned (terminal for the session; the cart survives)

Parental approval is tracked on the session and is sticky: once a total has
required approval, later price drops do not clear the requirement. Only
``start_over()`` resets it.

Order submission is guarded by an idempotency key issued when the session
first enters Review, an in-flight flag rejecting a second concurrent
submission, and a bounded attempt counter.
"""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text, ValueObject

from checkout.approval import gate
from checkout.approval.gate import ApprovalDecision, ApprovalStatus
from checkout.domain import checkout
from checkout.errors import ApprovalNotPending, PaymentMethodIneligible, StepValidation, SubmissionInFlight
from checkout.pricing.engine import PricingResult
from checkout.session.events import (
    ApprovalRequested,
    CheckoutAbandoned,
    CheckoutRestarted,
    CheckoutStarted,
    CurrencySelected,
    OrderPlaced,
    OrderSubmissionFailed,
    OrderSubmissionStarted,
    PaymentMethodSelected,
    PromoApplied,
    PromoRemoved,
    PurchaseApproved,
    ShippingAddressSelected,
    StepAdvanced,
    StepReverted,
    SubmissionReinitiated,
    TermsAccepted,
)
from checkout.session.guards import check_transition, leave_review
from checkout.session.steps import CheckoutStatus, CheckoutStep


_SNAPSHOT_FIELDS = (
    "cart_id",
    "customer_id",
    "step",
    "status",
    "payment_method_id",
    "currency_code",
    "promo_code",
    "terms_accepted",
    "approval_required",
    "approval_status",
    "approval_reason",
    "approved_by",
    "spent_today",
    "spent_this_month",
    "idempotency_key",
    "submission_in_flight",
    "submission_attempts",
    "submission_exhausted",
    "order_id",
)


@checkout.value_object(part_of="CheckoutSession")
class ShippingAddress:
    """Where the order is delivered, as entered or picked during checkout."""

    first_name = String(required=True, max_length=100)
    last_name = String(required=True, max_length=100)
    company = String(max_length=255)
    address_line1 = String(required=True, max_length=255)
    address_line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    region = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=2, default="UZ")
    phone = String(required=True, max_length=30)
    email = String(max_length=254)


@checkout.aggregate
class CheckoutSession:
    cart_id = Identifier(required=True)
    customer_id = Identifier()
    step = String(choices=CheckoutStep, default=CheckoutStep.CART.value)
    status = String(choices=CheckoutStatus, default=CheckoutStatus.ACTIVE.value)

    # Shopper selections
    shipping_address = ValueObject(ShippingAddress)
    payment_method_id = String(max_length=50)
    currency_code = String(max_length=3, default="UZS")
    promo_code = String(max_length=50)
    terms_accepted = Boolean(default=False)

    # Parental approval
    approval_required = Boolean(default=False)
    approval_status = String(choices=ApprovalStatus, default=ApprovalStatus.NOT_REQUIRED.value)
    approval_reason = String(max_length=255)
    approved_by = Identifier()
    spent_today = String(max_length=50, default="0")  # Decimal text, base currency
    spent_this_month = String(max_length=50, default="0")

    # Order submission
    idempotency_key = String(max_length=64)
    submission_in_flight = Boolean(default=False)
    submission_attempts = Integer(default=0)
    submission_exhausted = Boolean(default=False)
    submission_started_at = DateTime()
    last_error = Text()  # JSON: {code, message, retryable}
    order_id = String(max_length=255)

    pricing = Text()  # JSON: last PricingResult.to_dict()

    started_at = DateTime()
    updated_at = DateTime()
    completed_at = DateTime()

    @invariant.post
    def approval_status_must_match_requirement(self):
        if self.approval_required and self.approval_status == ApprovalStatus.NOT_REQUIRED.value:
            raise ValidationError({"approval": ["A required approval must be pending or approved"]})
        if not self.approval_required and self.approval_status != ApprovalStatus.NOT_REQUIRED.value:
            raise ValidationError({"approval": ["Approval status set without a requirement"]})

    @invariant.post
    def review_must_carry_idempotency_key(self):
        if self.step in (CheckoutStep.REVIEW.value, CheckoutStep.COMPLETE.value) and not self.idempotency_key:
            raise ValidationError({"idempotency_key": ["A session in review must carry an idempotency key"]})

    @invariant.post
    def completed_session_must_reference_order(self):
        if self.status == CheckoutStatus.COMPLETED.value and not self.order_id:
            raise ValidationError({"order_id": ["A completed checkout must reference its order"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def start(cls, cart_id, customer_id=None, currency_code="UZS", spent_today=None, spent_this_month=None):
        now = datetime.now(UTC)
        session = cls(
            cart_id=cart_id,
            customer_id=customer_id,
            step=CheckoutStep.CART.value,
            status=CheckoutStatus.ACTIVE.value,
            currency_code=currency_code,
            spent_today=str(spent_today or 0),
            spent_this_month=str(spent_this_month or 0),
            started_at=now,
            updated_at=now,
        )
        session.raise_(
            CheckoutStarted(
                session_id=str(session.id),
                cart_id=str(cart_id),
                customer_id=str(customer_id) if customer_id else None,
                currency_code=currency_code,
                started_at=now,
            )
        )
        return session

    # -------------------------------------------------------------------
    # Read helpers
    # -------------------------------------------------------------------
    @property
    def approval(self) -> ApprovalDecision:
        return ApprovalDecision(
            required=bool(self.approval_required),
            status=ApprovalStatus(self.approval_status),
            reason=self.approval_reason,
        )

    @property
    def current_step(self) -> CheckoutStep:
        return CheckoutStep(self.step)

    @property
    def pricing_result(self) -> PricingResult | None:
        return PricingResult.from_dict(json.loads(self.pricing)) if self.pricing else None

    @property
    def error(self) -> dict | None:
        return json.loads(self.last_error) if self.last_error else None

    def _assert_active(self):
        if CheckoutStatus(self.status) != CheckoutStatus.ACTIVE:
            raise ValidationError({"status": [f"Checkout is {self.status}"]})

    def _assert_idle(self):
        if self.submission_in_flight:
            raise SubmissionInFlight()

    def submission_is_stale(self, stale_after) -> bool:
        """True when the in-flight attempt started more than ``stale_after`` seconds ago.

        An in-flight flag with no recorded start (a restored snapshot) is stale.
        """
        if not self.submission_in_flight:
            return False
        if not self.submission_started_at:
            return True
        started = self.submission_started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=UTC)
        return datetime.now(UTC) - started > timedelta(seconds=stale_after)

    def _touch(self):
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Shopper selections
    # -------------------------------------------------------------------
    def select_shipping_address(self, address):
        self._assert_active()
        self._assert_idle()
        if isinstance(address, dict):
            address = ShippingAddress(**address)

        with atomic_change(self):
            self.shipping_address = address
            self._touch()

        self.raise_(ShippingAddressSelected(session_id=str(self.id), address=json.dumps(address.to_dict())))

    def select_payment_method(self, method, currency):
        """Select ``method`` for paying in ``currency``.

        Only currency support is checked here; transaction bounds depend on the
        fee-inclusive total and are checked when leaving the Payment step.
        """
        self._assert_active()
        self._assert_idle()
        if not method.supports(currency.code):
            raise PaymentMethodIneligible(method.id, f"{currency.code} is not supported")

        with atomic_change(self):
            self.payment_method_id = method.id
            self._touch()

        self.raise_(PaymentMethodSelected(session_id=str(self.id), payment_method_id=method.id))

    def select_currency(self, currency, table):
        """Switch the display currency, deselecting a payment method that cannot settle it."""
        self._assert_active()
        self._assert_idle()
        previous = self.currency_code
        cleared = None
        if self.payment_method_id and not table.payment_method(self.payment_method_id).supports(currency.code):
            cleared = self.payment_method_id

        with atomic_change(self):
            self.currency_code = currency.code
            if cleared:
                self.payment_method_id = None
            self._touch()

        self.raise_(
            CurrencySelected(
                session_id=str(self.id),
                previous_currency=previous,
                currency_code=currency.code,
                cleared_payment_method=cleared,
            )
        )
        return cleared

    def apply_promo(self, promo):
        """Apply an approved promo; a new promo replaces the active one."""
        self._assert_active()
        self._assert_idle()
        replaced = self.promo_code if self.promo_code != promo.code else None

        with atomic_change(self):
            self.promo_code = promo.code
            self._touch()

        self.raise_(PromoApplied(session_id=str(self.id), promo_code=promo.code, replaced_promo_code=replaced))

    def remove_promo(self):
        self._assert_active()
        self._assert_idle()
        if not self.promo_code:
            return
        removed = self.promo_code

        with atomic_change(self):
            self.promo_code = None
            self._touch()

        self.raise_(PromoRemoved(session_id=str(self.id), promo_code=removed))

    def accept_terms(self):
        self._assert_active()
        self._assert_idle()
        if self.current_step != CheckoutStep.REVIEW:
            raise StepValidation("step", "Terms are accepted on the review step")

        now = datetime.now(UTC)
        with atomic_change(self):
            self.terms_accepted = True
            self.updated_at = now

        self.raise_(TermsAccepted(session_id=str(self.id), accepted_at=now))

    # -------------------------------------------------------------------
    # Pricing & approval
    # -------------------------------------------------------------------
    def refresh_pricing(self, pricing, currency, policy):
        """Store a fresh quote and re-run the approval gate against it.

        Approval is evaluated on the post-discount, fee-inclusive total.
        """
        self._assert_idle()
        previous = self.approval
        decision = gate.evaluate(
            pricing.grand_total,
            currency,
            policy,
            previous=previous,
            spent_today=Decimal(self.spent_today or "0"),
            spent_this_month=Decimal(self.spent_this_month or "0"),
        )

        with atomic_change(self):
            self.pricing = json.dumps(pricing.to_dict())
            self.approval_required = decision.required
            self.approval_status = decision.status.value
            self.approval_reason = decision.reason
            self._touch()

        if decision.required and not previous.required:
            self.raise_(
                ApprovalRequested(
                    session_id=str(self.id),
                    grand_total=str(pricing.grand_total),
                    currency_code=pricing.currency_code,
                    reason=decision.reason,
                )
            )
        return decision

    def approve_purchase(self, approver_id=None):
        """Record the parent's approval. Approving twice is harmless."""
        self._assert_active()
        self._assert_idle()
        current = self.approval
        decision = gate.approve(current)
        if decision == current:
            return

        now = datetime.now(UTC)
        with atomic_change(self):
            self.approval_status = decision.status.value
            self.approved_by = approver_id
            self.updated_at = now

        self.raise_(PurchaseApproved(session_id=str(self.id), approved_by=approver_id, approved_at=now))

    def request_approval(self):
        """Ask the parent again for a pending approval, from the Payment step."""
        self._assert_active()
        self._assert_idle()
        if ApprovalStatus(self.approval_status) != ApprovalStatus.PENDING:
            raise ApprovalNotPending(self.approval_status)
        pricing = self.pricing_result

        self.raise_(
            ApprovalRequested(
                session_id=str(self.id),
                grand_total=str(pricing.grand_total) if pricing else "0",
                currency_code=self.currency_code,
                reason=self.approval_reason,
            )
        )

    # -------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------
    def advance(self, context):
        """Move one step forward if the current step's guard passes.

        Review is left only by submitting the order.
        """
        self._assert_active()
        current = self.current_step
        if current in (CheckoutStep.REVIEW, CheckoutStep.COMPLETE):
            raise StepValidation("step", f"Cannot advance from {current.value}; submit the order instead")

        check_transition(self, context)
        target = current.next()

        with atomic_change(self):
            if target == CheckoutStep.REVIEW and not self.idempotency_key:
                self.idempotency_key = uuid4().hex
            self.step = target.value
            self._touch()

        self.raise_(StepAdvanced(session_id=str(self.id), from_step=current.value, to_step=target.value))
        return target

    def go_to(self, step):
        """Navigate back to ``step``. Entered data is kept."""
        self._assert_active()
        self._assert_idle()
        target = CheckoutStep(step)
        current = self.current_step
        if target == current:
            return current
        if current == CheckoutStep.COMPLETE or target.position > current.position:
            raise StepValidation("step", f"Cannot move from {current.value} to {target.value}")

        with atomic_change(self):
            self.step = target.value
            self._touch()

        self.raise_(StepReverted(session_id=str(self.id), from_step=current.value, to_step=target.value))
        return target

    def go_back(self):
        previous = self.current_step.previous()
        if previous is None:
            raise StepValidation("step", "Already at the first step")
        return self.go_to(previous)

    # -------------------------------------------------------------------
    # Order submission
    # -------------------------------------------------------------------
    def begin_submission(self):
        """Claim the submission slot for one attempt. Returns the attempt number."""
        self._assert_active()
        if self.current_step != CheckoutStep.REVIEW:
            raise StepValidation("step", "Orders are submitted from the review step")
        self._assert_idle()
        if self.submission_exhausted:
            raise StepValidation("submission", "Submission retries are exhausted; re-initiate the submission")
        leave_review(self)

        with atomic_change(self):
            self.submission_in_flight = True
            self.submission_attempts = (self.submission_attempts or 0) + 1
            self.submission_started_at = datetime.now(UTC)
            self._touch()

        self.raise_(
            OrderSubmissionStarted(
                session_id=str(self.id),
                idempotency_key=self.idempotency_key,
                attempt=self.submission_attempts,
            )
        )
        return self.submission_attempts

    def record_submission_success(self, order_id):
        now = datetime.now(UTC)
        pricing = self.pricing_result

        with atomic_change(self):
            self.submission_in_flight = False
            self.submission_started_at = None
            self.order_id = str(order_id)
            self.last_error = None
            self.step = CheckoutStep.COMPLETE.value
            self.status = CheckoutStatus.COMPLETED.value
            self.completed_at = now
            self.updated_at = now

        self.raise_(
            OrderPlaced(
                session_id=str(self.id),
                cart_id=str(self.cart_id),
                order_id=str(order_id),
                idempotency_key=self.idempotency_key,
                grand_total=str(pricing.grand_total) if pricing else "0",
                currency_code=self.currency_code,
                placed_at=now,
            )
        )

    def record_submission_failure(self, code, message, retryable, max_attempts):
        """Release the submission slot after a failed attempt.

        Once ``max_attempts`` attempts have been made with the current key the
        session stops accepting submissions until ``reinitiate_submission()``.
        """
        exhausted = (self.submission_attempts or 0) >= max_attempts

        with atomic_change(self):
            self.submission_in_flight = False
            self.submission_started_at = None
            self.submission_exhausted = exhausted
            self.last_error = json.dumps({"code": code, "message": message, "retryable": retryable})
            self._touch()

        self.raise_(
            OrderSubmissionFailed(
                session_id=str(self.id),
                idempotency_key=self.idempotency_key,
                attempt=self.submission_attempts,
                code=code,
                message=message,
                retryable=retryable,
                exhausted=exhausted,
            )
        )
        return exhausted

    def release_stale_submission(self, stale_after, max_attempts):
        """Free a submission slot whose attempt never reported back (e.g. the worker died).

        The attempt is recorded as a retryable failure; the order service
        de-duplicates by key if the order was in fact created.
        """
        if not self.submission_is_stale(stale_after):
            return False
        self.record_submission_failure(
            "stale_submission",
            f"No outcome recorded within {stale_after}s of the attempt",
            retryable=True,
            max_attempts=max_attempts,
        )
        return True

    def reinitiate_submission(self):
        """Start a fresh round of attempts under a new idempotency key."""
        self._assert_active()
        self._assert_idle()
        if not self.submission_exhausted:
            raise StepValidation("submission", "Submission can be re-initiated only after retries are exhausted")

        previous_key = self.idempotency_key
        with atomic_change(self):
            self.idempotency_key = uuid4().hex
            self.submission_attempts = 0
            self.submission_exhausted = False
            self.last_error = None
            self._touch()

        self.raise_(
            SubmissionReinitiated(
                session_id=str(self.id),
                previous_key=previous_key,
                idempotency_key=self.idempotency_key,
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def abandon(self):
        """Discard the checkout. Shipping and payment selections are dropped; the cart is not touched."""
        self._assert_active()
        self._assert_idle()

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = CheckoutStatus.ABANDONED.value
            self.shipping_address = None
            self.payment_method_id = None
            self.terms_accepted = False
            self.updated_at = now

        self.raise_(CheckoutAbandoned(session_id=str(self.id), step=self.step, abandoned_at=now))

    def start_over(self):
        """Reset the session to the Cart step, clearing every selection and the approval state."""
        if CheckoutStatus(self.status) == CheckoutStatus.COMPLETED:
            raise ValidationError({"status": ["A completed checkout cannot be restarted"]})
        self._assert_idle()
        from_step = self.step

        with atomic_change(self):
            self.step = CheckoutStep.CART.value
            self.status = CheckoutStatus.ACTIVE.value
            self.shipping_address = None
            self.payment_method_id = None
            self.promo_code = None
            self.terms_accepted = False
            self.approval_required = False
            self.approval_status = ApprovalStatus.NOT_REQUIRED.value
            self.approval_reason = None
            self.approved_by = None
            self.idempotency_key = None
            self.submission_attempts = 0
            self.submission_exhausted = False
            self.last_error = None
            self.pricing = None
            self._touch()

        self.raise_(CheckoutRestarted(session_id=str(self.id), from_step=from_step))

    # -------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------
    def to_dict(self):
        data = {"id": str(self.id)}
        for name in _SNAPSHOT_FIELDS:
            value = getattr(self, name)
            data[name] = str(value) if name in ("cart_id", "customer_id", "approved_by") and value else value
        data["shipping_address"] = self.shipping_address.to_dict() if self.shipping_address else None
        data["pricing"] = json.loads(self.pricing) if self.pricing else None
        data["last_error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data):
        """Restore a session serialized with ``to_dict()`` (e.g. after a page reload)."""
        attributes = {name: data.get(name) for name in _SNAPSHOT_FIELDS if data.get(name) is not None}
        if data.get("id"):
            attributes["id"] = data["id"]
        if data.get("shipping_address"):
            attributes["shipping_address"] = ShippingAddress(**data["shipping_address"])
        if data.get("pricing"):
            attributes["pricing"] = json.dumps(data["pricing"])
        if data.get("last_error"):
            attributes["last_error"] = json.dumps(data["last_error"])
        return cls(**attributes)
