"""Expense workflow: local rules first, then the backend as final arbiter.

Each command validates and guards locally against the caller's cached view
of the claim, and only then issues a single request to the backend. Every
outcome, including backend failures, comes back as a ``TransitionResult``.
"""

from __future__ import annotations

import datetime
from collections.abc import Awaitable

import structlog

from expense_flow.api.client import ExpenseApiClient
from expense_flow.api.uploads import FileStorageClient
from expense_flow.domain import lifecycle
from expense_flow.domain.authorization import can_submit
from expense_flow.domain.validation import validate
from expense_flow.errors import (
    ClaimValidationError,
    ExpenseFlowError,
    InvalidTransitionError,
    TransitionResult,
    TransportError,
    UnauthorizedError,
    UploadError,
)
from expense_flow.models import (
    MISSING_REJECTION_REASON,
    BusinessRules,
    ClaimInput,
    ExpenseClaim,
    ExpenseStatus,
    ReceiptUpload,
    User,
)

logger = structlog.get_logger()


def classify_transport_error(error: TransportError) -> ExpenseFlowError:
    """Map a backend rejection onto the error taxonomy by status code."""
    if error.status_code == 403:
        return UnauthorizedError(error.message)
    if error.status_code == 409:
        return InvalidTransitionError(error.message)
    if error.status_code in (400, 422):
        field_errors = {"general": "; ".join(error.errors) if error.errors else error.message}
        return ClaimValidationError(field_errors, message=error.message)
    return error


class ExpenseWorkflow:
    """Submission, review and payment-retry commands for claims."""

    def __init__(
        self,
        client: ExpenseApiClient,
        rules: BusinessRules | None = None,
        uploads: FileStorageClient | None = None,
    ) -> None:
        self.client = client
        self.rules = rules or BusinessRules()
        self.uploads = uploads

    async def _call(
        self,
        request: Awaitable[ExpenseClaim],
        *,
        action: str,
        claim: ExpenseClaim | None = None,
    ) -> TransitionResult:
        log = logger.bind(action=action, expense_id=claim.id if claim else None)
        try:
            updated = await request
        except TransportError as e:
            error = classify_transport_error(e)
            log.warning("backend_rejected", kind=error.kind.value, status=e.status_code, error=e.message)
            return TransitionResult.failure(error, claim)
        log.info("backend_accepted", status=updated.status.value)
        return TransitionResult.success(updated)

    async def submit(
        self,
        candidate: ClaimInput,
        actor: User,
        *,
        today: datetime.date | None = None,
    ) -> TransitionResult:
        """Validate and create a claim.

        The backend assigns the initial status; a mismatch with the local
        threshold rule is logged, and the backend's answer is kept.
        """
        if not actor.is_active or not can_submit(actor.role):
            return TransitionResult.failure(UnauthorizedError(f"User {actor.id} may not submit expenses"))

        result = validate(candidate, self.rules, today=today)
        if not result.valid:
            logger.info("submission_invalid", fields=sorted(result.field_errors))
            return TransitionResult.failure(result.to_error())

        expected = lifecycle.initial_status(candidate.amount, self.rules)
        outcome = await self._call(self.client.create_expense(candidate), action="submit")
        if not outcome.ok:
            return outcome

        logger.info("expense_submitted", expense_id=outcome.claim.id, status=outcome.claim.status.value)
        if outcome.claim.status is not expected:
            logger.warning(
                "initial_status_mismatch",
                expense_id=outcome.claim.id,
                expected=expected.value,
                actual=outcome.claim.status.value,
            )
        return outcome

    async def update(
        self,
        claim: ExpenseClaim,
        changes: ClaimInput,
        *,
        today: datetime.date | None = None,
    ) -> TransitionResult:
        """Edit a claim that is still waiting for review.

        Only the fields set on ``changes`` are validated and sent.
        """
        if claim.status is not ExpenseStatus.PENDING_APPROVAL:
            return TransitionResult.failure(
                InvalidTransitionError(f"Expense {claim.id} is {claim.status.value} and can no longer be edited"),
                claim,
            )

        result = validate(changes, self.rules, today=today)
        field_errors = {
            field: message
            for field, message in result.field_errors.items()
            if field in changes.model_fields_set
        }
        if field_errors:
            return TransitionResult.failure(ClaimValidationError(field_errors), claim)

        return await self._call(
            self.client.update_expense(claim.id, changes), action="update", claim=claim
        )

    async def approve(
        self,
        claim: ExpenseClaim,
        actor: User,
        notes: str | None = None,
    ) -> TransitionResult:
        local = lifecycle.approve(claim, actor, notes, rules=self.rules)
        if not local.ok:
            logger.info("transition_denied", action="approve", expense_id=claim.id, kind=local.error.kind.value)
            return local
        return await self._call(
            self.client.approve_expense(claim.id, notes), action="approve", claim=claim
        )

    async def reject(self, claim: ExpenseClaim, actor: User, reason: str) -> TransitionResult:
        local = lifecycle.reject(claim, actor, reason, rules=self.rules)
        if not local.ok:
            logger.info("transition_denied", action="reject", expense_id=claim.id, kind=local.error.kind.value)
            return local
        outcome = await self._call(
            self.client.reject_expense(claim.id, reason.strip()), action="reject", claim=claim
        )
        if outcome.ok and outcome.claim.rejection_reason == MISSING_REJECTION_REASON:
            outcome = TransitionResult.success(
                outcome.claim.model_copy(update={"rejection_reason": reason.strip()})
            )
        return outcome

    async def retry_payment(self, claim: ExpenseClaim, actor: User | None = None) -> TransitionResult:
        local = lifecycle.retry_payment(claim, actor)
        if not local.ok:
            logger.info("transition_denied", action="retry_payment", expense_id=claim.id, kind=local.error.kind.value)
            return local
        return await self._call(self.client.retry_payment(claim.id), action="retry_payment", claim=claim)

    async def upload_receipt(self, data: bytes, mime_type: str, filename: str) -> ReceiptUpload:
        """Upload a receipt for a draft. Failures are recorded on the returned state."""
        if self.uploads is None:
            raise UploadError("No file storage client configured")
        return await self.uploads.upload_to_state(data, mime_type, filename)
