"""Entry service.

Provides:
- create_entry: Add an entry to a draft report
- update_entry: Patch an entry of a draft report
- destroy_entry: Soft-delete an entry of a draft report

Check order: permission on the parent report, report is draft, payload is
valid, work item resolves and is accessible, (work item, date) is unique
among the report's active entries. Writes, link rows and the totals
recompute share one transaction holding a row lock on the report.
"""

import logging

from django.db import transaction

from django_activity_ledger.exceptions import ActivityLedgerConfigError, RollbackWithResult
from django_activity_ledger.models import (
    ActivityEntry,
    ActivityReport,
    EntryWorkItemLink,
    ReportEntryLink,
    WorkItem,
)
from django_activity_ledger.permissions import authorize, can_access_work_item, forbidden_message
from django_activity_ledger.results import (
    ServiceResult,
    conflict,
    forbidden,
    internal_error,
    invalid_payload,
    not_found,
)
from django_activity_ledger.serializers import serialize_entry, serialize_report
from django_activity_ledger.services import aggregation, linker
from django_activity_ledger.validation import MAX_LINE_TOTAL_CENTS, Violation, validate_entry_params

logger = logging.getLogger(__name__)


def _lock_report(report_id) -> ActivityReport:
    """Re-read the report under a row lock; NotFound if gone."""
    report = ActivityReport.objects.select_for_update().filter(pk=report_id).first()
    if report is None:
        raise RollbackWithResult(not_found("report_not_found", "Report not found"))
    return report


def _require_draft(report: ActivityReport) -> None:
    if not report.is_draft:
        raise RollbackWithResult(
            conflict("report_not_draft", f"Entries of a {report.status} report cannot be modified")
        )


def _resolve_work_item(actor, work_item_id) -> WorkItem:
    work_item = WorkItem.objects.filter(pk=work_item_id).first()
    if work_item is None:
        raise RollbackWithResult(not_found("work_item_not_found", "Work item not found"))
    if not can_access_work_item(actor, work_item):
        raise RollbackWithResult(
            invalid_payload(
                [Violation("work_item_id", "not_accessible", "Work item is not accessible")],
                code="work_item_not_accessible",
            )
        )
    return work_item


def _check_unique(report: ActivityReport, work_item: WorkItem, date, *, exclude_entry=None) -> None:
    duplicates = linker.entries_for_report(report.pk).filter(
        date=date,
        work_item_links__work_item=work_item,
    )
    if exclude_entry is not None:
        duplicates = duplicates.exclude(pk=exclude_entry.pk)
    if duplicates.exists():
        raise RollbackWithResult(
            conflict(
                "duplicate_entry",
                f"An entry for this work item already exists on {date.isoformat()}",
            )
        )


def _parent_report(entry: ActivityEntry):
    link_row = (
        ReportEntryLink.objects
        .select_related("report")
        .filter(entry_id=entry.pk)
        .first()
    )
    return link_row.report if link_row else None


def _current_work_item(entry: ActivityEntry):
    link_row = (
        EntryWorkItemLink.objects
        .select_related("work_item")
        .filter(entry_id=entry.pk)
        .first()
    )
    return link_row.work_item if link_row else None


def _authorization_failure(actor, report):
    authorization = authorize(actor, report)
    if not authorization.allowed:
        return forbidden(forbidden_message(authorization), authorization.reason)
    return None


def _result_data(report, entry, work_item) -> dict:
    return {
        "entry": serialize_entry(entry, work_item),
        "report": serialize_report(report),
    }


def create_entry(actor, report: ActivityReport, params) -> ServiceResult:
    """
    Create an entry in a draft report.

    Args:
        actor: The acting user (must own the report)
        report: The parent ActivityReport
        params: date, quantity, unit_price_cents, work_item_id, description

    Returns:
        ServiceResult with {"entry": ..., "report": ...}
    """
    if report is None:
        return not_found("report_not_found", "Report not found")
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            _require_draft(locked)

            validation = validate_entry_params(params)
            if not validation.is_valid:
                raise RollbackWithResult(invalid_payload(validation.violations))
            cleaned = validation.cleaned

            work_item = _resolve_work_item(actor, cleaned["work_item_id"])
            _check_unique(locked, work_item, cleaned["date"])

            entry = ActivityEntry(
                date=cleaned["date"],
                quantity=cleaned["quantity"],
                unit_price_cents=cleaned["unit_price_cents"],
                description=cleaned.get("description", ""),
                created_by=actor,
            )
            entry.line_total_cents = entry.compute_line_total()
            entry.save()

            linker.attach_entry(locked, entry)
            linker.assign_work_item(entry, work_item)
            linker.ensure_report_work_item(locked, work_item)
            aggregation.recalculate(locked)
    except RollbackWithResult as rollback:
        return rollback.result
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to create entry on report %s by actor %s", report.pk, actor.pk)
        return internal_error("entry_create_failed", "Could not create entry")

    logger.info("Created entry %s on report %s", entry.pk, locked.pk)
    return ServiceResult.ok(_result_data(locked, entry, work_item))


def update_entry(actor, entry: ActivityEntry, patch) -> ServiceResult:
    """
    Patch an entry of a draft report.

    Changing the date or the work item re-checks (work item, date)
    uniqueness. The work item link of the report is released once its last
    entry moves away.
    """
    if entry is None:
        return not_found("entry_not_found", "Entry not found")
    report = _parent_report(entry)
    if report is None:
        return not_found("entry_not_found", "Entry does not belong to a report")
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            current = ActivityEntry.objects.select_for_update().filter(pk=entry.pk).first()
            if current is None:
                raise RollbackWithResult(not_found("entry_not_found", "Entry not found"))
            _require_draft(locked)

            validation = validate_entry_params(patch, partial=True)
            if not validation.is_valid:
                raise RollbackWithResult(invalid_payload(validation.violations))
            cleaned = validation.cleaned

            previous_work_item = _current_work_item(current)
            work_item = previous_work_item
            if "work_item_id" in cleaned and (
                previous_work_item is None or cleaned["work_item_id"] != previous_work_item.pk
            ):
                work_item = _resolve_work_item(actor, cleaned["work_item_id"])

            date = cleaned.get("date", current.date)
            if work_item is not None and (date != current.date or work_item != previous_work_item):
                _check_unique(locked, work_item, date, exclude_entry=current)

            for field_name in ("date", "quantity", "unit_price_cents", "description"):
                if field_name in cleaned:
                    setattr(current, field_name, cleaned[field_name])
            current.line_total_cents = current.compute_line_total()
            if current.line_total_cents > MAX_LINE_TOTAL_CENTS:
                raise RollbackWithResult(invalid_payload([
                    Violation("unit_price_cents", "range", "quantity x unit_price_cents is too large"),
                ]))
            current.save()

            if work_item is not None and work_item != previous_work_item:
                linker.assign_work_item(current, work_item)
                linker.ensure_report_work_item(locked, work_item)
                if previous_work_item is not None:
                    linker.release_report_work_item(locked, previous_work_item)
            aggregation.recalculate(locked)
    except RollbackWithResult as rollback:
        return rollback.result
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to update entry %s by actor %s", entry.pk, actor.pk)
        return internal_error("entry_update_failed", "Could not update entry")

    logger.info("Updated entry %s on report %s", current.pk, locked.pk)
    return ServiceResult.ok(_result_data(locked, current, work_item))


def destroy_entry(actor, entry: ActivityEntry) -> ServiceResult:
    """
    Soft-delete an entry of a draft report and recompute totals.

    The row stays reachable through ActivityEntry.all_objects.
    """
    if entry is None:
        return not_found("entry_not_found", "Entry not found")
    report = _parent_report(entry)
    if report is None:
        return not_found("entry_not_found", "Entry does not belong to a report")
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            current = ActivityEntry.objects.select_for_update().filter(pk=entry.pk).first()
            if current is None:
                raise RollbackWithResult(not_found("entry_not_found", "Entry not found"))
            _require_draft(locked)

            work_item = _current_work_item(current)
            current.soft_delete()
            if work_item is not None:
                linker.release_report_work_item(locked, work_item)
            aggregation.recalculate(locked)
    except RollbackWithResult as rollback:
        return rollback.result
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to destroy entry %s by actor %s", entry.pk, actor.pk)
        return internal_error("entry_destroy_failed", "Could not delete entry")

    logger.info("Deleted entry %s from report %s", current.pk, locked.pk)
    return ServiceResult.ok(_result_data(locked, current, work_item))
