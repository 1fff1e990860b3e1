"""Error taxonomy and the typed result returned by lifecycle operations.

Clients at the HTTP boundary raise these errors. The lifecycle, workflow and
board layers catch them and hand them back inside a ``TransitionResult`` so a
UI flow can render them without unwinding.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from expense_flow.models import ExpenseClaim


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    INVALID_TRANSITION = "invalid_transition"
    UPLOAD = "upload"
    TRANSPORT = "transport"
    SESSION_EXPIRED = "session_expired"


class ExpenseFlowError(Exception):
    """Base class for all expense-flow errors."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClaimValidationError(ExpenseFlowError):
    """One or more fields failed the business rules."""

    kind = ErrorKind.VALIDATION

    def __init__(self, field_errors: dict[str, str], message: str | None = None) -> None:
        self.field_errors = dict(field_errors)
        if message is None:
            message = "; ".join(f"{field}: {msg}" for field, msg in self.field_errors.items())
        super().__init__(message or "Validation failed")


class UnauthorizedError(ExpenseFlowError):
    """The actor may not perform the requested transition."""

    kind = ErrorKind.UNAUTHORIZED


class InvalidTransitionError(ExpenseFlowError):
    """The transition is not legal from the claim's current state."""

    kind = ErrorKind.INVALID_TRANSITION


class UploadError(ExpenseFlowError):
    """A receipt could not be checked or stored."""

    kind = ErrorKind.UPLOAD


class TransportError(ExpenseFlowError):
    """The backend could not be reached or answered with an error status.

    ``status_code`` is 0 when no HTTP status applies: network-level failures
    (timeouts, refused connections) and response bodies we could not parse.
    ``errors`` carries any error list from the response body.
    """

    kind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []


class SessionExpiredError(TransportError):
    """The backend rejected our credentials (HTTP 401)."""

    kind = ErrorKind.SESSION_EXPIRED

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message, status_code=401)


_USER_MESSAGES = {
    ErrorKind.VALIDATION: "Please correct the highlighted fields.",
    ErrorKind.UNAUTHORIZED: "You are not allowed to perform this action.",
    ErrorKind.INVALID_TRANSITION: "This expense has already been processed. Refresh to see its current state.",
    ErrorKind.UPLOAD: "The receipt could not be uploaded. You can submit without it.",
    ErrorKind.TRANSPORT: "Something went wrong talking to the server. Please try again.",
    ErrorKind.SESSION_EXPIRED: "Your session has expired. Please sign in again.",
}


def user_message(error: ExpenseFlowError) -> str:
    """Return the message a UI should show for an error of this kind."""
    return _USER_MESSAGES[error.kind]


class TransitionResult:
    """Outcome of a lifecycle operation.

    Exactly one of ``claim`` (on success) or ``error`` is meaningful. On
    failure, ``claim`` holds the unmodified input claim when one was given.
    """

    __slots__ = ("claim", "error")

    def __init__(
        self,
        claim: ExpenseClaim | None = None,
        error: ExpenseFlowError | None = None,
    ) -> None:
        self.claim = claim
        self.error = error

    @classmethod
    def success(cls, claim: ExpenseClaim) -> TransitionResult:
        return cls(claim=claim)

    @classmethod
    def failure(cls, error: ExpenseFlowError, claim: ExpenseClaim | None = None) -> TransitionResult:
        return cls(claim=claim, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> ExpenseClaim:
        """Return the claim, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        if self.claim is None:
            raise ValueError("TransitionResult has neither a claim nor an error")
        return self.claim

    def __repr__(self) -> str:
        if self.error is not None:
            return f"TransitionResult(error={self.error!r})"
        return f"TransitionResult(claim={getattr(self.claim, 'id', None)!r})"
