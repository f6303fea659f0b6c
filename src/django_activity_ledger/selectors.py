"""Read operations for activity reports and their entries.

Selectors are read-only: they never write and never take row locks.
"""

import datetime
import logging
import uuid
from decimal import InvalidOperation

from django.core.paginator import EmptyPage, Paginator

from django_activity_ledger import conf
from django_activity_ledger.models import ActivityReport, ReportStatus
from django_activity_ledger.money import to_decimal
from django_activity_ledger.permissions import authorize, forbidden_message
from django_activity_ledger.results import ServiceResult, forbidden, invalid_payload, not_found
from django_activity_ledger.serializers import serialize_entry, serialize_report
from django_activity_ledger.services import aggregation, linker
from django_activity_ledger.validation import (
    MAX_QUANTITY,
    MAX_UNIT_PRICE_CENTS,
    ValidationResult,
    validate_report_params,
)

logger = logging.getLogger(__name__)

ENTRY_SORT_FIELDS = (
    "date",
    "quantity",
    "unit_price_cents",
    "line_total_cents",
    "description",
    "created_at",
    "updated_at",
)


def get_report(actor, report: ActivityReport) -> ServiceResult:
    """
    Return a report with its chronological entries and linked work items.

    Args:
        actor: The acting user (must own the report)
        report: The ActivityReport

    Returns:
        ServiceResult with {"report": ...}
    """
    if report is None:
        return not_found("report_not_found", "Report not found")
    authorization = authorize(actor, report)
    if not authorization.allowed:
        return forbidden(forbidden_message(authorization), authorization.reason)

    return ServiceResult.ok({
        "report": serialize_report(
            report,
            lines=aggregation.entry_lines(report),
            work_items=linker.work_items_for_report(report.pk),
        )
    })


def _clean_filters(filters: dict) -> ValidationResult:
    """Validate list filters, reusing the report field rules."""
    period = {name: filters[name] for name in ("month", "year", "currency") if name in filters}
    result = validate_report_params(period, partial=True) if period else ValidationResult()

    if "month" in filters and "year" not in filters:
        result.add_violation("month", "requires_year", "Filtering by month requires a year")

    if "status" in filters:
        status = filters["status"]
        if status not in ReportStatus.values:
            result.add_violation("status", "allowed", f"Unknown report status: {status!r}")
        else:
            result.cleaned["status"] = status
    return result


def _clamp_per_page(per_page) -> int:
    if per_page is None:
        per_page = conf.get_page_size()
    try:
        per_page = int(per_page)
    except (TypeError, ValueError):
        per_page = conf.get_page_size()
    return max(1, min(per_page, conf.get_max_page_size()))


def _paginate(queryset, page, per_page):
    """Return (items, pagination) for a queryset; out-of-range pages are empty."""
    paginator = Paginator(queryset, _clamp_per_page(per_page))
    try:
        page_number = max(int(page), 1)
    except (TypeError, ValueError):
        page_number = 1
    try:
        items = list(paginator.page(page_number).object_list)
    except EmptyPage:
        items = []
    return items, {
        "page": page_number,
        "per_page": paginator.per_page,
        "total": paginator.count,
        "pages": paginator.num_pages,
    }


def list_reports(actor, *, filters=None, page=1, per_page=None) -> ServiceResult:
    """
    List the actor's own reports, newest period first.

    Args:
        actor: The acting user
        filters: Optional status, year, month (requires year), currency
        page: 1-based page number; out-of-range pages yield an empty page
        per_page: Page size, clamped to ACTIVITY_LEDGER_MAX_PAGE_SIZE

    Returns:
        ServiceResult with {"reports": [...], "pagination": {...}}
    """
    if actor is None or getattr(actor, "is_authenticated", False) is not True:
        return forbidden("Authentication is required", "missing_actor")

    filters = filters or {}
    validation = _clean_filters(filters)
    if not validation.is_valid:
        return invalid_payload(validation.violations, code="invalid_filters")

    reports = ActivityReport.objects.filter(owner_id=actor.pk, **validation.cleaned).order_by(
        "-year", "-month", "-created_at"
    )

    items, pagination = _paginate(reports, page, per_page)
    return ServiceResult.ok({
        "reports": [serialize_report(report) for report in items],
        "pagination": pagination,
    })


def _clean_entry_filters(filters: dict) -> ValidationResult:
    """Validate entry list filters into ORM lookups."""
    result = ValidationResult()

    for name, lookup in (("start_date", "date__gte"), ("end_date", "date__lte")):
        if name not in filters:
            continue
        value = filters[name]
        try:
            if not isinstance(value, datetime.date):
                value = datetime.date.fromisoformat(str(value))
            result.cleaned[lookup] = value
        except ValueError:
            result.add_violation(name, "format", f"{name} must be an ISO 8601 date (YYYY-MM-DD)")
    start, end = result.cleaned.get("date__gte"), result.cleaned.get("date__lte")
    if start and end and start > end:
        result.add_violation("start_date", "range", "start_date cannot be after end_date")

    for name, lookup in (("min_quantity", "quantity__gte"), ("max_quantity", "quantity__lte")):
        if name not in filters:
            continue
        try:
            quantity = to_decimal(filters[name])
        except (InvalidOperation, ValueError, TypeError):
            quantity = None
        if quantity is None or not quantity.is_finite() or quantity < 0:
            result.add_violation(name, "type", f"{name} must be a non-negative number")
        elif quantity > MAX_QUANTITY:
            result.add_violation(name, "range", f"{name} is too large")
        else:
            result.cleaned[lookup] = quantity

    for name, lookup in (("min_unit_price", "unit_price_cents__gte"), ("max_unit_price", "unit_price_cents__lte")):
        if name not in filters:
            continue
        value = filters[name]
        if isinstance(value, bool) or not str(value).strip().isdecimal():
            result.add_violation(name, "integer", f"{name} must be a non-negative integer number of cents")
        elif int(str(value).strip()) > MAX_UNIT_PRICE_CENTS:
            result.add_violation(name, "range", f"{name} is too large")
        else:
            result.cleaned[lookup] = int(str(value).strip())

    if "work_item_id" in filters:
        try:
            result.cleaned["work_item_links__work_item_id"] = uuid.UUID(str(filters["work_item_id"]))
        except ValueError:
            result.add_violation("work_item_id", "format", "work_item_id must be a UUID")

    if filters.get("description"):
        result.cleaned["description__icontains"] = str(filters["description"])
    return result


def _entry_ordering(sort_field, sort_direction) -> list:
    """Sort field and direction; unknown values fall back to newest date first."""
    field_name = sort_field if sort_field in ENTRY_SORT_FIELDS else "date"
    prefix = "" if str(sort_direction or "").lower() == "asc" else "-"
    return [f"{prefix}{field_name}", "-created_at", "id"]


def list_entries(
    actor,
    report: ActivityReport,
    *,
    filters=None,
    sort_field=None,
    sort_direction=None,
    page=1,
    per_page=None,
) -> ServiceResult:
    """
    List the active entries of a report.

    Args:
        actor: The acting user (must own the report)
        report: The ActivityReport
        filters: Optional start_date, end_date, work_item_id, min_quantity,
            max_quantity, min_unit_price, max_unit_price, description
            (case-insensitive substring)
        sort_field: One of ENTRY_SORT_FIELDS; default "date"
        sort_direction: "asc" or "desc"; default "desc"
        page: 1-based page number; out-of-range pages yield an empty page
        per_page: Page size, clamped to ACTIVITY_LEDGER_MAX_PAGE_SIZE

    Returns:
        ServiceResult with {"entries": [...], "pagination": {...}}
    """
    if report is None:
        return not_found("report_not_found", "Report not found")
    authorization = authorize(actor, report)
    if not authorization.allowed:
        return forbidden(forbidden_message(authorization), authorization.reason)

    validation = _clean_entry_filters(filters or {})
    if not validation.is_valid:
        return invalid_payload(validation.violations, code="invalid_filters")

    entries = (
        linker.entries_for_report(report.pk)
        .filter(**validation.cleaned)
        .prefetch_related("work_item_links__work_item")
        .order_by(*_entry_ordering(sort_field, sort_direction))
        .distinct()
    )
    items, pagination = _paginate(entries, page, per_page)

    data = []
    for entry in items:
        link_row = next(iter(entry.work_item_links.all()), None)
        data.append(serialize_entry(entry, link_row.work_item if link_row is not None else None))
    return ServiceResult.ok({"entries": data, "pagination": pagination})
