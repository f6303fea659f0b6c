"""Inbound operations, addressed by id.

Transport adapters (views, RPC handlers, management commands) call these.
Each one resolves its rows, rejects missing parameters with BadRequest and
delegates to the service layer. Soft-deleted rows resolve to NotFound.

Usage:
    result = api.create_entry(request.user, report_id, request_data)
    return JsonResponse(result.as_dict(), status=result.http_status)
"""

import uuid

from django_activity_ledger import selectors
from django_activity_ledger.models import ActivityEntry, ActivityReport
from django_activity_ledger.results import ServiceResult, bad_request, not_found
from django_activity_ledger.services import entries, export, reports


def _parse_id(value):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def _missing(name: str) -> ServiceResult:
    return bad_request("missing_parameter", f"{name} is required")


def _resolve(model, name: str, value):
    """Return (row, failure) for an id parameter."""
    if value is None or value == "":
        return None, _missing(name)
    pk = _parse_id(value)
    row = model.objects.filter(pk=pk).first() if pk is not None else None
    if row is None:
        label = name[:-3] if name.endswith("_id") else name
        return None, not_found(f"{label}_not_found", f"{label.replace('_', ' ').capitalize()} not found")
    return row, None


def _require_payload(name: str, payload):
    if payload is None:
        return _missing(name)
    if not isinstance(payload, dict):
        return bad_request("invalid_parameter", f"{name} must be an object")
    return None


def create_report(actor, params) -> ServiceResult:
    failure = _require_payload("params", params)
    if failure:
        return failure
    return reports.create_report(actor, params)


def get_report(actor, report_id) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    return selectors.get_report(actor, report)


def list_reports(actor, *, filters=None, page=1, per_page=None) -> ServiceResult:
    if filters is not None and not isinstance(filters, dict):
        return bad_request("invalid_parameter", "filters must be an object")
    return selectors.list_reports(actor, filters=filters, page=page, per_page=per_page)


def update_report(actor, report_id, patch) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    failure = _require_payload("patch", patch)
    if failure:
        return failure
    return reports.update_report(actor, report, patch)


def submit_report(actor, report_id) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    return reports.submit_report(actor, report)


def lock_report(actor, report_id, *, appender=None) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    return reports.lock_report(actor, report, appender=appender)


def destroy_report(actor, report_id) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    return reports.destroy_report(actor, report)


def export_report(actor, report_id, *, include_entries=True, export_format="csv") -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    return export.export_report(
        actor,
        report,
        include_entries=include_entries,
        export_format=export_format,
    )


def create_entry(actor, report_id, params) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    failure = _require_payload("params", params)
    if failure:
        return failure
    return entries.create_entry(actor, report, params)


def update_entry(actor, entry_id, patch) -> ServiceResult:
    entry, failure = _resolve(ActivityEntry, "entry_id", entry_id)
    if failure:
        return failure
    failure = _require_payload("patch", patch)
    if failure:
        return failure
    return entries.update_entry(actor, entry, patch)


def destroy_entry(actor, entry_id) -> ServiceResult:
    entry, failure = _resolve(ActivityEntry, "entry_id", entry_id)
    if failure:
        return failure
    return entries.destroy_entry(actor, entry)


def list_entries(
    actor, report_id, *, filters=None, sort_field=None, sort_direction=None, page=1, per_page=None,
) -> ServiceResult:
    report, failure = _resolve(ActivityReport, "report_id", report_id)
    if failure:
        return failure
    if filters is not None and not isinstance(filters, dict):
        return bad_request("invalid_parameter", "filters must be an object")
    return selectors.list_entries(
        actor,
        report,
        filters=filters,
        sort_field=sort_field,
        sort_direction=sort_direction,
        page=page,
        per_page=per_page,
    )
