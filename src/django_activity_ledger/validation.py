"""Validation gate for report and entry payloads.

Validators never raise. They collect every violated rule into a
ValidationResult and coerce accepted values into ``cleaned`` so services
write typed data only.
"""

import datetime
import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from django.utils import timezone

from django_activity_ledger import conf
from django_activity_ledger.money import line_total_cents, to_decimal


REPORT_DESCRIPTION_MAX_LENGTH = 2000
ENTRY_DESCRIPTION_MAX_LENGTH = 500
MAX_QUANTITY = Decimal("99999999.99")
MAX_UNIT_PRICE_CENTS = 10**12
MAX_LINE_TOTAL_CENTS = 10**15

REPORT_FIELDS = ("month", "year", "currency", "description", "status")
ENTRY_FIELDS = ("date", "quantity", "unit_price_cents", "work_item_id", "description")

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
DIGITS_PATTERN = re.compile(r"^-?\d+$")


@dataclass(frozen=True)
class Violation:
    """One broken rule.

    Attributes:
        field: Input field name
        rule: Stable rule identifier (e.g. "required", "range")
        message: Human-readable message
    """
    field: str
    rule: str
    message: str


@dataclass
class ValidationResult:
    """Result of payload validation.

    Attributes:
        is_valid: True if no rule was violated
        violations: Every violated rule, in field order
        cleaned: Coerced values for the fields that passed
    """
    is_valid: bool = True
    violations: list[Violation] = field(default_factory=list)
    cleaned: dict = field(default_factory=dict)

    def add_violation(self, field_name: str, rule: str, message: str) -> None:
        """Record a violation and mark as invalid."""
        self.violations.append(Violation(field_name, rule, message))
        self.is_valid = False

    def __bool__(self) -> bool:
        return self.is_valid


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_int(value):
    """Coerce ints and digit strings; anything else returns None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and DIGITS_PATTERN.match(value.strip()):
        return int(value.strip())
    return None


def _check_required(result: ValidationResult, params: dict, required) -> None:
    for name in required:
        if _is_blank(params.get(name)):
            result.add_violation(name, "required", f"{name} is required")


def _check_empty(result: ValidationResult, params, known_fields) -> bool:
    """Reject patches that would change nothing, including unknown-key-only ones."""
    if not params or not any(name in params for name in known_fields):
        result.add_violation("payload", "empty_payload", "Update payload must change at least one known field")
        return True
    return False


def _check_description(result, params, max_length):
    if "description" not in params:
        return
    description = params["description"]
    if description is None:
        result.cleaned["description"] = ""
        return
    if not isinstance(description, str):
        result.add_violation("description", "type", "description must be a string")
        return
    if len(description) > max_length:
        result.add_violation(
            "description",
            "max_length",
            f"description must be at most {max_length} characters",
        )
        return
    result.cleaned["description"] = description


def validate_report_params(params, *, partial: bool = False) -> ValidationResult:
    """
    Validate report create or update parameters.

    Args:
        params: Raw payload; unknown keys are ignored
        partial: True for updates (no required fields; an empty or
            unknown-keys-only payload is rejected)

    Returns:
        ValidationResult with cleaned month/year/currency/description
    """
    result = ValidationResult()
    params = params or {}

    if partial:
        if _check_empty(result, params, REPORT_FIELDS):
            return result
    else:
        _check_required(result, params, ("month", "year"))

    if not _is_blank(params.get("month")):
        month = _as_int(params["month"])
        if month is None:
            result.add_violation("month", "type", "month must be an integer")
        elif not 1 <= month <= 12:
            result.add_violation("month", "range", "month must be between 1 and 12")
        else:
            result.cleaned["month"] = month
    elif partial and "month" in params:
        result.add_violation("month", "required", "month cannot be blank")

    if not _is_blank(params.get("year")):
        year = _as_int(params["year"])
        min_year, max_year = conf.get_year_range()
        if year is None:
            result.add_violation("year", "type", "year must be an integer")
        elif not min_year <= year <= max_year:
            result.add_violation("year", "range", f"year must be between {min_year} and {max_year}")
        else:
            result.cleaned["year"] = year
    elif partial and "year" in params:
        result.add_violation("year", "required", "year cannot be blank")

    if "currency" in params:
        currency = params["currency"]
        if not isinstance(currency, str) or not CURRENCY_PATTERN.match(currency):
            result.add_violation("currency", "format", "currency must be a 3-letter upper-case ISO code")
        elif currency not in conf.get_currencies():
            result.add_violation("currency", "allowed", f"currency {currency} is not supported")
        else:
            result.cleaned["currency"] = currency
    elif not partial:
        result.cleaned["currency"] = conf.get_default_currency()

    _check_description(result, params, REPORT_DESCRIPTION_MAX_LENGTH)
    return result


def _clean_date(result: ValidationResult, value) -> None:
    if isinstance(value, datetime.datetime):
        value = value.date()
    if isinstance(value, str):
        try:
            value = datetime.date.fromisoformat(value.strip())
        except ValueError:
            result.add_violation("date", "format", "date must be an ISO 8601 date (YYYY-MM-DD)")
            return
    if not isinstance(value, datetime.date):
        result.add_violation("date", "format", "date must be an ISO 8601 date (YYYY-MM-DD)")
        return
    if value > timezone.localdate():
        result.add_violation("date", "future_date", "date cannot be in the future")
        return
    result.cleaned["date"] = value


def _clean_quantity(result: ValidationResult, value) -> None:
    try:
        quantity = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        result.add_violation("quantity", "type", "quantity must be a decimal number")
        return
    if not quantity.is_finite():
        result.add_violation("quantity", "type", "quantity must be a decimal number")
    elif quantity <= 0:
        result.add_violation("quantity", "positive", "quantity must be greater than 0")
    elif quantity > MAX_QUANTITY:
        result.add_violation("quantity", "range", "quantity is too large")
    elif quantity.as_tuple().exponent < -2 and quantity != quantity.quantize(Decimal("0.01")):
        result.add_violation("quantity", "precision", "quantity allows at most 2 decimal places")
    else:
        result.cleaned["quantity"] = quantity.quantize(Decimal("0.01"))


def _clean_unit_price(result: ValidationResult, value) -> None:
    unit_price = _as_int(value)
    if unit_price is None and isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        unit_price = int(value)
    if unit_price is None:
        result.add_violation("unit_price_cents", "integer", "unit_price_cents must be an integer number of cents")
    elif unit_price < 0:
        result.add_violation("unit_price_cents", "non_negative", "unit_price_cents must not be negative")
    elif unit_price > MAX_UNIT_PRICE_CENTS:
        result.add_violation("unit_price_cents", "range", "unit_price_cents is too large")
    else:
        result.cleaned["unit_price_cents"] = unit_price


def _check_line_total(result: ValidationResult) -> None:
    quantity = result.cleaned.get("quantity")
    unit_price = result.cleaned.get("unit_price_cents")
    if quantity is None or unit_price is None:
        return
    if line_total_cents(quantity, unit_price) > MAX_LINE_TOTAL_CENTS:
        result.add_violation("unit_price_cents", "range", "quantity x unit_price_cents is too large")


def _clean_work_item_id(result: ValidationResult, value) -> None:
    try:
        result.cleaned["work_item_id"] = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        result.add_violation("work_item_id", "format", "work_item_id must be a UUID")


def validate_entry_params(params, *, partial: bool = False) -> ValidationResult:
    """
    Validate entry create or update parameters.

    Args:
        params: Raw payload; unknown keys are ignored
        partial: True for updates (no required fields; an empty or
            unknown-keys-only payload is rejected)

    Returns:
        ValidationResult with cleaned date/quantity/unit_price_cents/
        description/work_item_id
    """
    result = ValidationResult()
    params = params or {}

    if partial:
        if _check_empty(result, params, ENTRY_FIELDS):
            return result
    else:
        _check_required(result, params, ("date", "quantity", "unit_price_cents", "work_item_id"))

    if not _is_blank(params.get("date")):
        _clean_date(result, params["date"])
    elif partial and "date" in params:
        result.add_violation("date", "required", "date cannot be blank")

    if not _is_blank(params.get("quantity")):
        _clean_quantity(result, params["quantity"])
    elif partial and "quantity" in params:
        result.add_violation("quantity", "required", "quantity cannot be blank")

    if not _is_blank(params.get("unit_price_cents")):
        _clean_unit_price(result, params["unit_price_cents"])
    elif partial and "unit_price_cents" in params:
        result.add_violation("unit_price_cents", "required", "unit_price_cents cannot be blank")

    if not _is_blank(params.get("work_item_id")):
        _clean_work_item_id(result, params["work_item_id"])
    elif partial and "work_item_id" in params:
        result.add_violation("work_item_id", "required", "work_item_id cannot be blank")

    _check_line_total(result)
    _check_description(result, params, ENTRY_DESCRIPTION_MAX_LENGTH)
    return result
