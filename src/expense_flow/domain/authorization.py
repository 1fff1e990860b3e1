"""Role-based authorization for claim transitions."""

from __future__ import annotations

from enum import Enum

from expense_flow.models import BusinessRules, Money, UserRole


class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    RETRY_PAYMENT = "retry_payment"


REVIEW_ACTIONS = frozenset({Action.APPROVE, Action.REJECT})


def can_transition(
    role: UserRole,
    amount: Money,
    action: Action,
    rules: BusinessRules | None = None,
) -> bool:
    """Decide whether a role may approve or reject a claim of this amount.

    Admins always may. Managers only act on claims at or above the
    auto-approval threshold, since anything below it never waits for review.
    Employees never may. Who submitted the claim is not considered.
    """
    if action not in REVIEW_ACTIONS:
        raise ValueError(f"can_transition only decides review actions, got {action!r}")

    rules = rules or BusinessRules()
    if role is UserRole.ADMIN:
        return True
    if role is UserRole.MANAGER:
        return amount.amount >= rules.auto_approval_threshold
    return False


def can_submit(role: UserRole) -> bool:
    return role in (UserRole.EMPLOYEE, UserRole.MANAGER, UserRole.ADMIN)


def can_retry_payment(role: UserRole) -> bool:
    # No role gate: whoever can see the claim may ask for the payment to be retried
    return role in (UserRole.EMPLOYEE, UserRole.MANAGER, UserRole.ADMIN)
