"""Expense backend API client: claim CRUD and lifecycle transitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from expense_flow.api.base import BackendHttpClient, parse_record
from expense_flow.models import (
    ApiConfig,
    BusinessRules,
    Category,
    ClaimInput,
    ExpenseClaim,
    ExpensePage,
    ExpenseSearchParams,
    ExpenseStatus,
)

if TYPE_CHECKING:
    from expense_flow.session.identity import Session

logger = structlog.get_logger()


class ExpenseApiClient(BackendHttpClient):
    """Client for the expense backend.

    The backend is the single source of truth for claim state: it assigns
    ids, computes the initial status on create, and authoritatively rejects
    illegal transitions. Transition requests therefore carry only the claim
    id and the intended action, never an assumed prior state.
    """

    def __init__(
        self,
        config: ApiConfig,
        session: Session | None = None,
        *,
        rules: BusinessRules | None = None,
        **kwargs: Any,
    ) -> None:
        self.config = config
        self.session = session
        self.rules = rules or BusinessRules()

        if session is not None:
            token_provider = session.token_provider(fallback=config.access_token)
            on_unauthorized = session.expire
        else:

            def token_provider() -> str | None:
                return config.access_token

            on_unauthorized = None

        super().__init__(
            config.base_url,
            timeout=config.timeout,
            token_provider=token_provider,
            on_unauthorized=on_unauthorized,
            read_attempts=config.read_attempts,
            retry_backoff=config.retry_backoff,
            **kwargs,
        )

    async def __aenter__(self) -> ExpenseApiClient:
        return self

    def _claim(self, data: Any) -> ExpenseClaim:
        claim = parse_record(ExpenseClaim.from_api, data, what="expense")
        self._check_bounds(claim)
        return claim

    def _check_bounds(self, claim: ExpenseClaim) -> None:
        # The backend owns the maximum; a record above it is kept but flagged
        if claim.amount.amount > self.rules.max_expense_amount:
            logger.warning(
                "expense_exceeds_max_amount",
                expense_id=claim.id,
                amount=str(claim.amount.amount),
                max_amount=str(self.rules.max_expense_amount),
            )

    async def list_expenses(self, params: ExpenseSearchParams | None = None) -> ExpensePage:
        """Fetch one page of claims matching the filters."""
        params = params or ExpenseSearchParams()
        data = await self._get("/expenses", params=params.to_query())
        page = parse_record(lambda raw: ExpensePage.from_api(raw or {}, params), data, what="expense page")
        for claim in page.items:
            self._check_bounds(claim)
        logger.debug("expenses_listed", count=len(page.items), offset=page.offset, total=page.total)
        return page

    async def list_pending_approvals(self, params: ExpenseSearchParams | None = None) -> ExpensePage:
        """Claims awaiting a manager decision."""
        params = (params or ExpenseSearchParams()).model_copy(
            update={"status": [ExpenseStatus.PENDING_APPROVAL]}
        )
        return await self.list_expenses(params)

    async def get_expense(self, expense_id: str) -> ExpenseClaim:
        data = await self._get(f"/expenses/{expense_id}")
        return self._claim(data)

    async def create_expense(self, claim: ClaimInput) -> ExpenseClaim:
        """Submit a new claim. The backend assigns the id and initial status."""
        logger.info(
            "creating_expense",
            amount=str(claim.amount),
            currency=claim.currency,
            category=claim.category,
        )
        data = await self._request("POST", "/expenses", json=claim.to_api())
        return self._claim(data)

    async def update_expense(self, expense_id: str, changes: ClaimInput) -> ExpenseClaim:
        """Update a claim. Only fields explicitly set on ``changes`` are sent.

        The backend only accepts this while the claim is pending approval.
        """
        data = await self._request(
            "PUT", f"/expenses/{expense_id}", json=changes.to_api(partial=True)
        )
        return self._claim(data)

    async def delete_expense(self, expense_id: str) -> None:
        await self._request("DELETE", f"/expenses/{expense_id}")
        logger.info("expense_deleted", expense_id=expense_id)

    async def approve_expense(self, expense_id: str, notes: str | None = None) -> ExpenseClaim:
        """Approve a claim; the backend starts payment processing on success."""
        body = {"notes": notes} if notes else {}
        data = await self._request("PUT", f"/expenses/{expense_id}/approve", json=body)
        logger.info("expense_approved", expense_id=expense_id)
        return self._claim(data)

    async def reject_expense(self, expense_id: str, reason: str) -> ExpenseClaim:
        data = await self._request(
            "PUT", f"/expenses/{expense_id}/reject", json={"reason": reason}
        )
        logger.info("expense_rejected", expense_id=expense_id)
        return self._claim(data)

    async def retry_payment(self, expense_id: str) -> ExpenseClaim:
        data = await self._request("POST", f"/expenses/{expense_id}/payment/retry")
        logger.info("payment_retry_requested", expense_id=expense_id)
        return self._claim(data)

    async def get_payment_status(self, expense_id: str) -> dict[str, Any]:
        """Return ``{"status": ..., "details": ...}`` for a claim's payment."""
        data = await self._get(f"/expenses/{expense_id}/payment/status")
        return data or {}

    async def list_categories(self) -> list[Category]:
        data = await self._get("/categories")
        return parse_record(
            lambda raw: [Category.model_validate(item) for item in raw or []], data, what="category list"
        )
