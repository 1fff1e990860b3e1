"""Field-level validation of expense claims against the business rules.

Every field is checked and all failures are reported together; within a
single field the first failing rule supplies the message. Nothing here does
I/O or raises for bad input: invalid input produces a ``ValidationResult``.
"""

from __future__ import annotations

import calendar
import datetime
from collections.abc import Callable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from expense_flow.errors import ClaimValidationError
from expense_flow.models import BusinessRules, ClaimInput, ReceiptRef, ReceiptUpload

FieldRule = Callable[[Any, BusinessRules, datetime.date], "str | None"]

RECEIPT_INCOMPLETE = "Receipt file upload failed or is incomplete"


class ValidationResult(BaseModel):
    """Per-field validation outcome."""

    valid: bool = True
    field_errors: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_errors(cls, field_errors: dict[str, str]) -> ValidationResult:
        return cls(valid=not field_errors, field_errors=field_errors)

    def to_error(self) -> ClaimValidationError | None:
        if self.valid:
            return None
        return ClaimValidationError(self.field_errors)


def months_before(day: datetime.date, months: int) -> datetime.date:
    """Return the same day-of-month ``months`` calendar months earlier.

    Clamps to the last day of the target month (e.g. 31 Mar - 1 month -> 28/29 Feb).
    """
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, min(day.day, last_day))


def describe_window(months: int) -> str:
    if months % 12 == 0:
        years = months // 12
        return f"{years} year" if years == 1 else f"{years} years"
    return f"{months} month" if months == 1 else f"{months} months"


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def _as_date(value: Any) -> datetime.date | None:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _check_description(value: Any, rules: BusinessRules, today: datetime.date) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return "Description is required"
    if len(value.strip()) < rules.min_description_length:
        return f"Description must be at least {rules.min_description_length} characters"
    if len(value) > rules.max_description_length:
        return f"Description cannot exceed {rules.max_description_length} characters"
    return None


def _check_amount(value: Any, rules: BusinessRules, today: datetime.date) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return "Amount is required"
    amount = _as_decimal(value)
    if amount is None:
        return "Amount must be a number"
    if amount <= 0:
        return "Amount must be greater than 0"
    if amount > rules.max_expense_amount:
        return f"Amount cannot exceed {rules.max_expense_amount:,}"
    return None


def _check_currency(value: Any, rules: BusinessRules, today: datetime.date) -> str | None:
    if value is None:
        return None
    code = getattr(value, "value", value)
    supported = [c.value for c in rules.supported_currencies]
    if not isinstance(code, str) or code.strip().upper() not in supported:
        return f"Currency must be one of: {', '.join(supported)}"
    return None


def _check_category(value: Any, rules: BusinessRules, today: datetime.date) -> str | None:
    if value is None or not str(value).strip():
        return "Category is required"
    return None


def _check_expense_date(value: Any, rules: BusinessRules, today: datetime.date) -> str | None:
    if value is None or value == "":
        return "Expense date is required"
    expense_date = _as_date(value)
    if expense_date is None:
        return "Expense date is not a valid date"
    if expense_date > today:
        return "Expense date cannot be in the future"
    if expense_date < months_before(today, rules.max_backdate_months):
        return f"Expense date cannot be more than {describe_window(rules.max_backdate_months)} ago"
    return None


def _check_receipt(value: Any, rules: BusinessRules, today: datetime.date) -> str | None:
    if value is None:
        return None
    if isinstance(value, ReceiptRef):
        complete = bool(value.url.strip()) and bool(value.filename.strip())
    else:
        if isinstance(value, Mapping):
            try:
                value = ReceiptUpload.model_validate(value)
            except ValidationError:
                return RECEIPT_INCOMPLETE
        complete = isinstance(value, ReceiptUpload) and value.is_complete
    return None if complete else RECEIPT_INCOMPLETE


FIELD_RULES: dict[str, FieldRule] = {
    "description": _check_description,
    "amount": _check_amount,
    "currency": _check_currency,
    "category": _check_category,
    "expense_date": _check_expense_date,
    "receipt": _check_receipt,
}


def _field_value(candidate: ClaimInput | Mapping[str, Any], field: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(field)
    return getattr(candidate, field)


def validate_field(
    field: str,
    candidate: ClaimInput | Mapping[str, Any],
    rules: BusinessRules | None = None,
    *,
    today: datetime.date | None = None,
) -> str | None:
    """Validate a single field, returning its error message or None.

    Raises:
        KeyError: If ``field`` is not a known claim field.
    """
    if field not in FIELD_RULES:
        raise KeyError(f"Unknown claim field '{field}'. Known: {', '.join(FIELD_RULES)}")
    rules = rules or BusinessRules()
    today = today or datetime.date.today()
    return FIELD_RULES[field](_field_value(candidate, field), rules, today)


def validate(
    candidate: ClaimInput | Mapping[str, Any],
    rules: BusinessRules | None = None,
    *,
    today: datetime.date | None = None,
) -> ValidationResult:
    """Check a candidate claim against every field rule.

    Args:
        candidate: A ClaimInput, or a plain mapping of raw form values keyed
            by field name.
        rules: Business rules to apply. Defaults to BusinessRules().
        today: Reference date for the expense date window. Defaults to today.

    Returns:
        ValidationResult listing every failing field.
    """
    rules = rules or BusinessRules()
    today = today or datetime.date.today()

    errors: dict[str, str] = {}
    for field in FIELD_RULES:
        message = validate_field(field, candidate, rules, today=today)
        if message is not None:
            errors[field] = message
    return ValidationResult.from_errors(errors)


def validate_rejection_reason(reason: str | None) -> ValidationResult:
    if reason is None or not reason.strip():
        return ValidationResult.from_errors({"reason": "Rejection reason is required"})
    return ValidationResult()


def validate_receipt_file(
    size: int,
    mime_type: str,
    rules: BusinessRules | None = None,
) -> ValidationResult:
    """Check a receipt file's size and type before it is uploaded."""
    rules = rules or BusinessRules()
    if size > rules.receipt_max_size:
        limit_mb = rules.receipt_max_size / (1024 * 1024)
        return ValidationResult.from_errors(
            {"receipt": f"File size must not exceed {limit_mb:g}MB"}
        )
    if mime_type not in rules.supported_receipt_formats:
        return ValidationResult.from_errors(
            {"receipt": "Only JPEG, PNG, and PDF files are allowed"}
        )
    return ValidationResult()
