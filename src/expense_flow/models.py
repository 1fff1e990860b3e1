"""Core data models for expense-flow."""

import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _LenientEnum(str, Enum):
    """String enum that also accepts differently-cased wire values."""

    @classmethod
    def _missing_(cls, value: object):
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value.lower() == normalized:
                    return member
        return None


class Currency(_LenientEnum):
    IDR = "IDR"
    USD = "USD"


class ExpenseStatus(_LenientEnum):
    """Approval state of a claim."""

    PENDING_APPROVAL = "pending_approval"
    AUTO_APPROVED = "auto_approved"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @classmethod
    def _missing_(cls, value: object):
        # Older backend builds report "pending" for claims awaiting review
        if isinstance(value, str) and value.strip().lower() == "pending":
            return cls.PENDING_APPROVAL
        return super()._missing_(value)


class PaymentStatus(_LenientEnum):
    """Money-movement state, advanced by the payment backend."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"


class UserRole(_LenientEnum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class Money(BaseModel):
    """An amount in a supported currency. Immutable, compared by value."""

    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(ge=0)
    currency: Currency = Currency.IDR

    def __str__(self) -> str:
        return f"{self.amount:,} {self.currency.value}"


class BusinessRules(BaseModel):
    """Thresholds and limits applied by the validation and approval rules."""

    auto_approval_threshold: Decimal = Decimal("1000000")
    max_expense_amount: Decimal = Decimal("100000000")
    min_description_length: int = Field(default=5, ge=0)
    max_description_length: int = Field(default=500, ge=1)
    max_backdate_months: int = Field(
        default=12,
        ge=1,
        description="How far back (in calendar months) an expense date may lie",
    )
    supported_currencies: list[Currency] = Field(
        default_factory=lambda: [Currency.IDR, Currency.USD]
    )
    receipt_max_size: int = Field(default=5 * 1024 * 1024, description="Bytes")
    supported_receipt_formats: list[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/jpg", "application/pdf"]
    )


class ReceiptRef(BaseModel):
    """A stored receipt as returned by the file storage service."""

    model_config = ConfigDict(frozen=True)

    url: str
    filename: str


class ReceiptUpload(BaseModel):
    """Client-side state of a receipt upload attached to a claim draft."""

    url: str | None = None
    filename: str | None = None
    uploading: bool = False
    error: str | None = None

    @property
    def is_complete(self) -> bool:
        return not self.error and not self.uploading and bool(self.url) and bool(self.filename)

    def to_ref(self) -> ReceiptRef | None:
        if not self.is_complete:
            return None
        return ReceiptRef(url=self.url, filename=self.filename)


def _json_number(value: Decimal) -> int | float:
    """Render a Decimal as the plain JSON number the backend expects."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class ClaimInput(BaseModel):
    """A candidate claim as entered by the user, before validation.

    Fields are deliberately loose so that incomplete or invalid input can be
    held and reported on by the validation engine.
    """

    description: str = ""
    amount: Decimal | None = None
    currency: str = Currency.IDR.value
    category: str = ""
    expense_date: datetime.date | None = None
    receipt: ReceiptUpload | None = None

    def to_api(self, *, partial: bool = False) -> dict[str, Any]:
        """Build the backend create/update payload.

        Args:
            partial: Only include fields that were explicitly set, for updates.
        """
        fields = self.model_fields_set if partial else set(type(self).model_fields)
        payload: dict[str, Any] = {}

        if "amount" in fields and self.amount is not None:
            payload["amount_idr"] = _json_number(self.amount)
        if "currency" in fields:
            payload["currency"] = self.currency
        if "description" in fields:
            payload["description"] = self.description.strip()
        if "category" in fields:
            payload["category"] = self.category.strip()
        if "expense_date" in fields and self.expense_date is not None:
            payload["expense_date"] = self.expense_date.isoformat()
        if "receipt" in fields and self.receipt is not None:
            ref = self.receipt.to_ref()
            if ref is not None:
                payload["receipt_url"] = ref.url
                payload["receipt_filename"] = ref.filename

        return payload


def _date_part(value: Any) -> Any:
    if isinstance(value, str) and len(value) > 10:
        return value[:10]
    return value


MISSING_REJECTION_REASON = "No reason recorded"


class ExpenseClaim(BaseModel):
    """A submitted expense claim as held by the backend."""

    model_config = ConfigDict(frozen=True)

    id: str
    submitter_id: str
    amount: Money
    description: str
    category: str
    expense_date: datetime.date
    receipt: ReceiptRef | None = None
    status: ExpenseStatus
    payment_status: PaymentStatus | None = None
    submitted_at: datetime.datetime | None = None
    processed_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    rejection_reason: str | None = None

    @field_validator("amount")
    @classmethod
    def _amount_positive(cls, value: Money) -> Money:
        if value.amount <= 0:
            raise ValueError("claim amount must be greater than 0")
        return value

    @model_validator(mode="after")
    def _rejected_has_reason(self) -> "ExpenseClaim":
        if self.status is ExpenseStatus.REJECTED and not (self.rejection_reason or "").strip():
            raise ValueError("rejected claims must carry a rejection reason")
        return self

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "ExpenseClaim":
        """Map the backend's snake_case wire shape onto the model."""
        raw_amount = payload.get("amount_idr", payload.get("amount"))
        if isinstance(raw_amount, dict):
            amount = Money.model_validate(raw_amount)
        else:
            amount = Money(amount=raw_amount, currency=payload.get("currency") or Currency.IDR)

        receipt = None
        if payload.get("receipt_url"):
            receipt = ReceiptRef(
                url=payload["receipt_url"],
                filename=payload.get("receipt_filename") or Path(payload["receipt_url"]).name,
            )

        status = payload.get("expense_status", payload.get("status"))
        rejection_reason = payload.get("rejection_reason")
        is_rejected = str(getattr(status, "value", status) or "").strip().lower() == ExpenseStatus.REJECTED.value
        if is_rejected and not (rejection_reason or "").strip():
            # List and transition responses do not always echo the reason
            rejection_reason = MISSING_REJECTION_REASON

        return cls(
            id=str(payload["id"]),
            submitter_id=str(payload.get("user_id", payload.get("submitter_id", ""))),
            amount=amount,
            description=payload.get("description", ""),
            category=str(payload.get("category", payload.get("category_id", ""))),
            expense_date=_date_part(payload["expense_date"]),
            receipt=receipt,
            status=status,
            payment_status=payload.get("payment_status"),
            submitted_at=payload.get("submitted_at"),
            processed_at=payload.get("processed_at"),
            created_at=payload.get("created_at"),
            updated_at=payload.get("updated_at"),
            rejection_reason=rejection_reason,
        )


class Category(BaseModel):
    id: str
    name: str
    description: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> str:
        return str(value)


_ADMIN_PERMISSIONS = {"admin", "manage_users"}
_MANAGER_PERMISSIONS = {"approve_expenses"}


class User(BaseModel):
    """The signed-in user. Read-only to this library."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str
    role: UserRole = UserRole.EMPLOYEE
    is_active: bool = True
    department: str | None = None
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "User":
        """Build a user from the identity endpoint, deriving a role if absent."""
        permissions = list(payload.get("permissions") or [])
        role = payload.get("role")
        if role is None:
            if _ADMIN_PERMISSIONS.intersection(permissions):
                role = UserRole.ADMIN
            elif _MANAGER_PERMISSIONS.intersection(permissions):
                role = UserRole.MANAGER
            else:
                role = UserRole.EMPLOYEE

        return cls(
            id=str(payload["id"]),
            name=payload.get("name", ""),
            email=payload.get("email", ""),
            role=role,
            is_active=payload.get("is_active", payload.get("active", True)),
            department=payload.get("department"),
            permissions=permissions,
        )


class ExpenseSearchParams(BaseModel):
    """Filters and pagination for listing claims."""

    status: list[ExpenseStatus] | None = None
    payment_status: list[PaymentStatus] | None = None
    category_id: str | None = None
    submitted_by: str | None = None
    date_from: datetime.date | None = None
    date_to: datetime.date | None = None
    amount_min: Decimal | None = None
    amount_max: Decimal | None = None
    search: str | None = None
    sort_by: Literal["created_at", "amount", "updated_at"] | None = None
    sort_order: Literal["asc", "desc"] | None = None
    page: int | None = Field(default=None, ge=1)
    limit: int = Field(default=10, ge=1)
    offset: int = Field(default=0, ge=0)

    def to_query(self) -> dict[str, str | int]:
        """Map to backend query parameters, omitting unset filters."""
        query: dict[str, str | int] = {"per_page": self.limit, "offset": self.offset}
        if self.page:
            query["page"] = self.page
        if self.search:
            query["search"] = self.search
        if self.status:
            query["status"] = ",".join(s.value for s in self.status)
        if self.payment_status:
            query["payment_status"] = ",".join(s.value for s in self.payment_status)
        if self.category_id:
            query["category_id"] = self.category_id
        if self.submitted_by:
            query["submitted_by"] = self.submitted_by
        if self.date_from:
            query["date_from"] = self.date_from.isoformat()
        if self.date_to:
            query["date_to"] = self.date_to.isoformat()
        if self.amount_min is not None:
            query["amount_min"] = str(self.amount_min)
        if self.amount_max is not None:
            query["amount_max"] = str(self.amount_max)
        if self.sort_by:
            query["sort_by"] = self.sort_by
        if self.sort_order:
            query["sort_order"] = self.sort_order
        return query


class ExpensePage(BaseModel):
    """One page of claims from the list endpoint."""

    items: list[ExpenseClaim] = Field(default_factory=list)
    limit: int = 10
    offset: int = 0
    total: int | None = None

    @property
    def has_more(self) -> bool:
        if self.total is not None:
            return self.offset + self.limit < self.total
        # Without a total, a full page suggests there may be more
        return len(self.items) >= self.limit

    @classmethod
    def from_api(cls, data: Any, params: ExpenseSearchParams) -> "ExpensePage":
        if isinstance(data, list):
            return cls(
                items=[ExpenseClaim.from_api(item) for item in data],
                limit=params.limit,
                offset=params.offset,
            )

        raw_items = data.get("expenses", data.get("items", []))
        total = data.get("total", data.get("total_data"))
        return cls(
            items=[ExpenseClaim.from_api(item) for item in raw_items],
            limit=data.get("limit") or params.limit,
            offset=data.get("offset", params.offset),
            total=total,
        )


class ApiConfig(BaseModel):
    """Backend API configuration."""

    base_url: str = "http://localhost:8080/api/v1"
    auth_base_url: str | None = None
    timeout: float = 10.0
    read_attempts: int = Field(default=3, ge=1, description="Attempts for idempotent reads on network failure")
    retry_backoff: float = Field(default=0.5, ge=0, description="Exponential backoff multiplier, seconds")
    access_token: str | None = Field(
        default=None,
        description="Static bearer token for service accounts; a signed-in session takes precedence",
    )

    @property
    def resolved_auth_base_url(self) -> str:
        return self.auth_base_url or self.base_url


class UploadConfig(BaseModel):
    """Receipt file storage configuration."""

    url: str = "https://api.escuelajs.co/api/v1/files/upload"
    timeout: float = 30.0


class SessionConfig(BaseModel):
    """Where session tokens are kept between runs."""

    state_dir: Path = Path.home() / ".config" / "expense-flow" / "session"
    persist_tokens: bool = True


class LoggingConfig(BaseModel):
    """How the host process renders structlog output."""

    model_config = ConfigDict(populate_by_name=True)

    level: Literal["debug", "info", "warning", "error"] = "info"
    json_output: bool = Field(default=False, alias="json", description="One JSON object per line")
    quiet_loggers: list[str] = Field(
        default_factory=lambda: ["httpx", "httpcore"],
        description="Stdlib loggers held at WARNING unless running at DEBUG",
    )

    @field_validator("level", mode="before")
    @classmethod
    def _lowercase_level(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class AppConfig(BaseModel):
    """Top-level application configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    rules: BusinessRules = Field(default_factory=BusinessRules)
    uploads: UploadConfig = Field(default_factory=UploadConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
