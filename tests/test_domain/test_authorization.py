"""Tests for the role-based transition policy."""

from __future__ import annotations

from decimal import Decimal

import pytest

from expense_flow.domain.authorization import (
    Action,
    can_retry_payment,
    can_submit,
    can_transition,
)
from expense_flow.models import BusinessRules, Money, UserRole

BELOW = Money(amount=Decimal("999999"))
AT = Money(amount=Decimal("1000000"))
ABOVE = Money(amount=Decimal("10000000"))


@pytest.mark.parametrize("action", [Action.APPROVE, Action.REJECT])
class TestAuthorizationMatrix:
    @pytest.mark.parametrize("amount", [BELOW, AT, ABOVE])
    def test_employee_always_denied(self, action, amount):
        assert can_transition(UserRole.EMPLOYEE, amount, action) is False

    @pytest.mark.parametrize("amount", [BELOW, AT, ABOVE])
    def test_admin_always_allowed(self, action, amount):
        assert can_transition(UserRole.ADMIN, amount, action) is True

    def test_manager_denied_below_threshold(self, action):
        assert can_transition(UserRole.MANAGER, BELOW, action) is False

    @pytest.mark.parametrize("amount", [AT, ABOVE])
    def test_manager_allowed_at_or_above_threshold(self, action, amount):
        assert can_transition(UserRole.MANAGER, amount, action) is True


def test_manager_follows_configured_threshold():
    rules = BusinessRules(auto_approval_threshold=Decimal("500"))
    assert can_transition(UserRole.MANAGER, Money(amount=Decimal("500")), Action.APPROVE, rules) is True
    assert can_transition(UserRole.MANAGER, Money(amount=Decimal("499")), Action.APPROVE, rules) is False


def test_retry_is_not_a_review_action():
    with pytest.raises(ValueError, match="review actions"):
        can_transition(UserRole.ADMIN, ABOVE, Action.RETRY_PAYMENT)


@pytest.mark.parametrize("role", list(UserRole))
def test_every_role_may_submit_and_retry(role):
    assert can_submit(role) is True
    assert can_retry_payment(role) is True
