"""Tests for the error taxonomy and transition results."""

from __future__ import annotations

import pytest

from conftest import make_claim
from expense_flow.errors import (
    ClaimValidationError,
    ErrorKind,
    InvalidTransitionError,
    SessionExpiredError,
    TransitionResult,
    TransportError,
    UploadError,
    user_message,
)


def test_validation_error_message_lists_fields():
    error = ClaimValidationError({"amount": "Amount is required", "category": "Category is required"})
    assert error.kind is ErrorKind.VALIDATION
    assert error.message == "amount: Amount is required; category: Category is required"


def test_session_expired_is_a_transport_error():
    error = SessionExpiredError()
    assert isinstance(error, TransportError)
    assert error.status_code == 401
    assert error.kind is ErrorKind.SESSION_EXPIRED


@pytest.mark.parametrize(
    "error, fragment",
    [
        (InvalidTransitionError("x"), "already been processed"),
        (UploadError("x"), "submit without it"),
        (SessionExpiredError(), "sign in again"),
        (TransportError("x", status_code=0), "try again"),
    ],
)
def test_user_message(error, fragment):
    assert fragment in user_message(error)


class TestTransitionResult:
    def test_success(self):
        claim = make_claim()
        result = TransitionResult.success(claim)
        assert result.ok
        assert result.unwrap() is claim
        assert repr(result) == "TransitionResult(claim='42')"

    def test_failure_keeps_input_claim(self):
        claim = make_claim()
        result = TransitionResult.failure(InvalidTransitionError("done"), claim)
        assert not result.ok
        assert result.claim is claim
        with pytest.raises(InvalidTransitionError):
            result.unwrap()

    def test_empty_result(self):
        with pytest.raises(ValueError):
            TransitionResult().unwrap()
