"""Expense claim lifecycle: states, legal transitions and their guards.

A claim enters the lifecycle as either ``auto_approved`` (below the
auto-approval threshold) or ``pending_approval``. Only pending claims can be
approved or rejected; every other status is terminal for approval purposes.
Payment status moves independently and is advanced by the backend; the only
thing this module decides about it is whether a retry may be requested.

Every operation returns a ``TransitionResult`` and leaves the input claim
untouched.
"""

from __future__ import annotations

import datetime
from decimal import Decimal

from expense_flow.domain.authorization import Action, can_retry_payment, can_transition
from expense_flow.domain.validation import validate_rejection_reason
from expense_flow.errors import (
    InvalidTransitionError,
    TransitionResult,
    UnauthorizedError,
)
from expense_flow.models import (
    BusinessRules,
    ExpenseClaim,
    ExpenseStatus,
    Money,
    PaymentStatus,
    User,
)

TRANSITIONS: dict[ExpenseStatus, dict[Action, ExpenseStatus]] = {
    ExpenseStatus.PENDING_APPROVAL: {
        Action.APPROVE: ExpenseStatus.APPROVED,
        Action.REJECT: ExpenseStatus.REJECTED,
    },
}

TERMINAL_STATUSES = frozenset(
    {
        ExpenseStatus.AUTO_APPROVED,
        ExpenseStatus.APPROVED,
        ExpenseStatus.REJECTED,
        ExpenseStatus.COMPLETED,
    }
)

RETRYABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.FAILED})


def _amount_value(amount: Money | Decimal | int | float) -> Decimal:
    if isinstance(amount, Money):
        return amount.amount
    return Decimal(str(amount))


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def requires_manager_approval(
    amount: Money | Decimal | int | float, rules: BusinessRules | None = None
) -> bool:
    rules = rules or BusinessRules()
    return _amount_value(amount) >= rules.auto_approval_threshold


def initial_status(
    amount: Money | Decimal | int | float, rules: BusinessRules | None = None
) -> ExpenseStatus:
    """Status a newly submitted claim starts in.

    The threshold is inclusive on the approval side: a claim of exactly the
    threshold amount waits for review.
    """
    if requires_manager_approval(amount, rules):
        return ExpenseStatus.PENDING_APPROVAL
    return ExpenseStatus.AUTO_APPROVED


def approval_message(amount: Money | Decimal | int | float, rules: BusinessRules | None = None) -> str:
    """Hint shown on the submission form about what happens after submit."""
    rules = rules or BusinessRules()
    if requires_manager_approval(amount, rules):
        currency = amount.currency.value if isinstance(amount, Money) else "IDR"
        return (
            "This expense requires manager approval "
            f"(≥ {rules.auto_approval_threshold:,} {currency})"
        )
    return "This expense will be automatically approved"


def target_status(status: ExpenseStatus, action: Action) -> ExpenseStatus | None:
    return TRANSITIONS.get(status, {}).get(action)


def is_terminal(claim: ExpenseClaim) -> bool:
    return claim.status in TERMINAL_STATUSES


def _review_guard(
    claim: ExpenseClaim, actor: User, action: Action, rules: BusinessRules
) -> TransitionResult | None:
    if target_status(claim.status, action) is None:
        return TransitionResult.failure(
            InvalidTransitionError(
                f"Cannot {action.value} expense {claim.id}: it is already {claim.status.value}"
            ),
            claim,
        )
    if not actor.is_active:
        return TransitionResult.failure(
            UnauthorizedError(f"User {actor.id} is inactive"), claim
        )
    if not can_transition(actor.role, claim.amount, action, rules):
        return TransitionResult.failure(
            UnauthorizedError(
                f"Role '{actor.role.value}' may not {action.value} an expense of {claim.amount}"
            ),
            claim,
        )
    return None


def approve(
    claim: ExpenseClaim,
    actor: User,
    notes: str | None = None,
    *,
    rules: BusinessRules | None = None,
    now: datetime.datetime | None = None,
) -> TransitionResult:
    """Approve a pending claim.

    Notes are passed through to the backend by the caller; they do not
    change the claim record.
    """
    rules = rules or BusinessRules()
    denied = _review_guard(claim, actor, Action.APPROVE, rules)
    if denied is not None:
        return denied

    approved = claim.model_copy(
        update={"status": ExpenseStatus.APPROVED, "processed_at": now or _utcnow()}
    )
    return TransitionResult.success(approved)


def reject(
    claim: ExpenseClaim,
    actor: User,
    reason: str,
    *,
    rules: BusinessRules | None = None,
    now: datetime.datetime | None = None,
) -> TransitionResult:
    """Reject a pending claim. A non-empty reason is mandatory."""
    rules = rules or BusinessRules()
    denied = _review_guard(claim, actor, Action.REJECT, rules)
    if denied is not None:
        return denied

    reason_check = validate_rejection_reason(reason)
    if not reason_check.valid:
        return TransitionResult.failure(reason_check.to_error(), claim)

    rejected = claim.model_copy(
        update={
            "status": ExpenseStatus.REJECTED,
            "rejection_reason": reason.strip(),
            "processed_at": now or _utcnow(),
        }
    )
    return TransitionResult.success(rejected)


def retry_payment(claim: ExpenseClaim, actor: User | None = None) -> TransitionResult:
    """Check that a payment retry may be requested for this claim.

    Succeeds with the claim unchanged; the backend moves the payment status
    on once the retry request is accepted. There is no cap on retries.
    """
    if claim.payment_status not in RETRYABLE_PAYMENT_STATUSES:
        current = claim.payment_status.value if claim.payment_status else "none"
        return TransitionResult.failure(
            InvalidTransitionError(
                f"Cannot retry payment for expense {claim.id}: payment status is {current}"
            ),
            claim,
        )
    if actor is not None and (not actor.is_active or not can_retry_payment(actor.role)):
        return TransitionResult.failure(
            UnauthorizedError(f"User {actor.id} may not retry payments"), claim
        )
    return TransitionResult.success(claim)


def available_actions(
    claim: ExpenseClaim, actor: User, rules: BusinessRules | None = None
) -> set[Action]:
    """Actions a UI should offer this actor for this claim."""
    rules = rules or BusinessRules()
    actions: set[Action] = set()
    for action in (Action.APPROVE, Action.REJECT):
        if _review_guard(claim, actor, action, rules) is None:
            actions.add(action)
    if retry_payment(claim, actor).ok:
        actions.add(Action.RETRY_PAYMENT)
    return actions
