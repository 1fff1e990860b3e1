"""Shared test fixtures for expense-flow."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest
import structlog

from expense_flow.models import (
    ApiConfig,
    BusinessRules,
    ClaimInput,
    ExpenseClaim,
    ExpenseStatus,
    Money,
    PaymentStatus,
    User,
    UserRole,
)

API_URL = "http://api.test/api/v1"
TODAY = datetime.date(2026, 10, 18)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog configuration after each test.

    Prevents setup_logging() from leaking a configured logger into other tests.
    """
    yield
    structlog.reset_defaults()


@pytest.fixture
def rules() -> BusinessRules:
    return BusinessRules()


@pytest.fixture
def today() -> datetime.date:
    return TODAY


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(base_url=API_URL, retry_backoff=0)


@pytest.fixture
def employee() -> User:
    return User(id="u-1", name="Eka Employee", email="eka@example.com", role=UserRole.EMPLOYEE)


@pytest.fixture
def manager() -> User:
    return User(id="u-2", name="Mira Manager", email="mira@example.com", role=UserRole.MANAGER)


@pytest.fixture
def admin() -> User:
    return User(id="u-3", name="Adi Admin", email="adi@example.com", role=UserRole.ADMIN)


@pytest.fixture
def valid_input() -> ClaimInput:
    return ClaimInput(
        description="Client lunch in Jakarta",
        amount=Decimal("250000"),
        category="meals",
        expense_date=TODAY - datetime.timedelta(days=3),
    )


def make_claim(**overrides) -> ExpenseClaim:
    fields = {
        "id": "42",
        "submitter_id": "u-1",
        "amount": Money(amount=Decimal("2000000")),
        "description": "Flight to Surabaya",
        "category": "travel",
        "expense_date": TODAY - datetime.timedelta(days=5),
        "status": ExpenseStatus.PENDING_APPROVAL,
        "payment_status": None,
    }
    fields.update(overrides)
    return ExpenseClaim(**fields)


@pytest.fixture
def pending_claim() -> ExpenseClaim:
    return make_claim()


@pytest.fixture
def failed_payment_claim() -> ExpenseClaim:
    return make_claim(
        id="43",
        status=ExpenseStatus.APPROVED,
        payment_status=PaymentStatus.FAILED,
    )


def api_expense(**overrides) -> dict:
    """A claim in the backend's wire shape."""
    payload = {
        "id": 42,
        "user_id": 1,
        "amount_idr": 2000000,
        "description": "Flight to Surabaya",
        "category": "travel",
        "expense_status": "pending_approval",
        "expense_date": "2026-10-13",
        "submitted_at": "2026-10-13T09:00:00Z",
        "processed_at": None,
        "created_at": "2026-10-13T09:00:00Z",
        "updated_at": "2026-10-13T09:00:00Z",
    }
    payload.update(overrides)
    return payload
