"""Application state for an expense list/detail UI.

``ExpenseBoard`` is an explicit object that a UI creates and passes around;
there is no module-level state. Any UI framework binds to it through
:meth:`ExpenseBoard.subscribe` and its own reactivity primitive.

Cached claims are only ever replaced by records the backend returned.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from pydantic import BaseModel

from expense_flow.api.client import ExpenseApiClient
from expense_flow.errors import ExpenseFlowError, TransitionResult
from expense_flow.models import (
    Category,
    ClaimInput,
    ExpenseClaim,
    ExpensePage,
    ExpenseSearchParams,
    ExpenseStatus,
    User,
)
from expense_flow.workflow import ExpenseWorkflow

logger = structlog.get_logger()

Listener = Callable[["ExpenseBoard"], None]


class Pagination(BaseModel):
    limit: int = 10
    offset: int = 0
    total: int | None = None
    has_more: bool = False


class ExpenseBoard:
    """Claim list, current claim and categories, with the commands that change them."""

    def __init__(
        self,
        client: ExpenseApiClient,
        workflow: ExpenseWorkflow | None = None,
        *,
        search_params: ExpenseSearchParams | None = None,
    ) -> None:
        self.client = client
        self.workflow = workflow or ExpenseWorkflow(client)
        self.claims: list[ExpenseClaim] = []
        self.current: ExpenseClaim | None = None
        self.categories: list[Category] = []
        self.search_params = search_params or ExpenseSearchParams()
        self.pagination = Pagination(limit=self.search_params.limit)
        self.loading = False
        self.submitting = False
        self.error: ExpenseFlowError | None = None
        self._listeners: list[Listener] = []
        self._generation = 0

    @property
    def has_claims(self) -> bool:
        return bool(self.claims)

    @property
    def is_empty(self) -> bool:
        return not self.loading and not self.claims

    @property
    def can_load_more(self) -> bool:
        return self.pagination.has_more and not self.loading

    def find(self, claim_id: str) -> ExpenseClaim | None:
        return next((c for c in self.claims if c.id == claim_id), None)

    def pending_approvals(self) -> list[ExpenseClaim]:
        return [c for c in self.claims if c.status is ExpenseStatus.PENDING_APPROVAL]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(board)`` after every state change. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _apply(self, claim: ExpenseClaim, *, prepend: bool = False) -> None:
        """Replace the cached record with the same id, or add it."""
        for index, existing in enumerate(self.claims):
            if existing.id == claim.id:
                self.claims[index] = claim
                break
        else:
            if prepend:
                self.claims.insert(0, claim)
            else:
                self.claims.append(claim)

        if self.current is not None and self.current.id == claim.id:
            self.current = claim

    def _set_page(self, page: ExpensePage) -> None:
        self.pagination = Pagination(
            limit=page.limit, offset=page.offset, total=page.total, has_more=page.has_more
        )

    async def _fetch_page(self, params: ExpenseSearchParams, *, failure_event: str) -> ExpensePage | None:
        """Fetch one page as the newest list request.

        Returns None on failure, and also when a later load started while this
        one was in flight. A superseded response is dropped without touching
        claims, pagination, loading or error.
        """
        self._generation += 1
        generation = self._generation
        self.loading = True
        self._notify()
        try:
            page = await self.client.list_expenses(params)
        except ExpenseFlowError as e:
            if generation == self._generation:
                logger.warning(failure_event, error=e.message)
                self.error = e
            return None
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation:
            logger.debug("stale_page_dropped", offset=params.offset, search=params.search)
            return None
        return page

    async def load(self, params: ExpenseSearchParams | None = None) -> None:
        """Replace the list with the first page for ``params`` (or current params)."""
        params = params or self.search_params
        self.error = None
        page = await self._fetch_page(params, failure_event="load_expenses_failed")
        if page is not None:
            self.claims = list(page.items)
            self._set_page(page)
            self.search_params = params
            logger.debug("expenses_loaded", count=len(page.items))
        self._notify()

    async def load_more(self) -> None:
        """Append the next page. Ignored while a load is in flight or at the end.

        Rows already on the board (same id) are replaced, not duplicated.
        """
        if not self.can_load_more:
            return

        params = self.search_params.model_copy(
            update={"offset": self.pagination.offset + self.pagination.limit}
        )
        page = await self._fetch_page(params, failure_event="load_more_failed")
        if page is not None:
            for claim in page.items:
                self._apply(claim)
            self._set_page(page)
            self.search_params = params
        self._notify()

    async def search(self, params: ExpenseSearchParams) -> None:
        """Run a new search from the first page."""
        await self.load(params.model_copy(update={"offset": 0}))

    async def reset_search(self) -> None:
        await self.load(ExpenseSearchParams(limit=self.search_params.limit))

    async def refresh(self) -> None:
        await self.load(self.search_params.model_copy(update={"offset": 0}))

    async def load_categories(self) -> list[Category]:
        """Load categories. Failures leave an empty list and are only logged."""
        try:
            self.categories = await self.client.list_categories()
        except ExpenseFlowError as e:
            logger.warning("load_categories_failed", error=e.message)
            self.categories = []
        self._notify()
        return self.categories

    async def open(self, claim_id: str) -> ExpenseClaim | None:
        """Fetch a claim fresh from the backend and make it current."""
        self.loading = True
        self.error = None
        self._notify()
        try:
            claim = await self.client.get_expense(claim_id)
        except ExpenseFlowError as e:
            self.error = e
            return None
        else:
            self.current = claim
            self._apply(claim)
            return claim
        finally:
            self.loading = False
            self._notify()

    async def _run(self, operation, *, prepend: bool = False) -> TransitionResult:
        self.submitting = True
        self.error = None
        self._notify()
        try:
            result: TransitionResult = await operation
        finally:
            self.submitting = False

        if result.ok:
            self._apply(result.claim, prepend=prepend)
        else:
            self.error = result.error
        self._notify()
        return result

    async def submit(self, candidate: ClaimInput, actor: User) -> TransitionResult:
        result = await self._run(self.workflow.submit(candidate, actor), prepend=True)
        if result.ok:
            self.current = result.claim
        return result

    async def update(self, claim: ExpenseClaim, changes: ClaimInput) -> TransitionResult:
        return await self._run(self.workflow.update(claim, changes))

    async def approve(self, claim: ExpenseClaim, actor: User, notes: str | None = None) -> TransitionResult:
        return await self._run(self.workflow.approve(claim, actor, notes))

    async def reject(self, claim: ExpenseClaim, actor: User, reason: str) -> TransitionResult:
        return await self._run(self.workflow.reject(claim, actor, reason))

    async def retry_payment(self, claim: ExpenseClaim, actor: User | None = None) -> TransitionResult:
        return await self._run(self.workflow.retry_payment(claim, actor))

    async def delete(self, claim_id: str) -> bool:
        """Delete a claim on the backend and drop it from the board."""
        self.submitting = True
        self.error = None
        self._notify()
        try:
            await self.client.delete_expense(claim_id)
        except ExpenseFlowError as e:
            logger.warning("delete_expense_failed", expense_id=claim_id, error=e.message)
            self.error = e
            return False
        else:
            self.claims = [c for c in self.claims if c.id != claim_id]
            if self.current is not None and self.current.id == claim_id:
                self.current = None
            return True
        finally:
            self.submitting = False
            self._notify()
