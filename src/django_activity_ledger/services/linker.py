"""Association linker.

Every report / entry / work item association is a join row. This module is
the only writer of those rows.

Provides:
- link / unlink: report <-> work item
- attach_entry / assign_work_item: helpers used inside entry transactions
- entries_for_report / reports_for_work_item / work_items_for_report: reads
- debug_info: diagnostic snapshot that never raises
"""

import logging
import uuid

from django.db import DatabaseError, transaction

from django_activity_ledger.exceptions import RollbackWithResult
from django_activity_ledger.models import (
    ActivityEntry,
    ActivityReport,
    EntryWorkItemLink,
    ReportEntryLink,
    ReportWorkItemLink,
    WorkItem,
)
from django_activity_ledger.results import (
    ServiceResult,
    bad_request,
    conflict,
    internal_error,
    not_found,
)

logger = logging.getLogger(__name__)


def _parse_uuid(value):
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


def link(report_id, work_item_id) -> ServiceResult:
    """
    Link a work item to a report. Idempotent.

    Args:
        report_id: ActivityReport id
        work_item_id: WorkItem id

    Returns:
        ServiceResult with {"link": ReportWorkItemLink, "created": bool}
    """
    if not report_id or not work_item_id:
        return bad_request("missing_parameter", "report_id and work_item_id are required")
    report_pk = _parse_uuid(report_id)
    work_item_pk = _parse_uuid(work_item_id)
    if report_pk is None or work_item_pk is None:
        return bad_request("invalid_identifier", "report_id and work_item_id must be UUIDs")

    try:
        with transaction.atomic():
            report = ActivityReport.objects.filter(pk=report_pk).first()
            if report is None:
                raise RollbackWithResult(not_found("report_not_found", "Report not found"))
            work_item = WorkItem.objects.filter(pk=work_item_pk).first()
            if work_item is None:
                raise RollbackWithResult(not_found("work_item_not_found", "Work item not found"))
            link_row, created = ReportWorkItemLink.objects.get_or_create(
                report=report,
                work_item=work_item,
            )
    except RollbackWithResult as rollback:
        return rollback.result
    except DatabaseError:
        logger.exception(
            "Failed to link work item %s to report %s", work_item_pk, report_pk
        )
        return internal_error("link_failed", "Could not link work item to report")

    if created:
        logger.info("Linked work item %s to report %s", work_item_pk, report_pk)
    return ServiceResult.ok({"link": link_row, "created": created})


def unlink(report_id, work_item_id) -> ServiceResult:
    """
    Remove the link between a report and a work item.

    Refused while an active entry of the report still bills the work item.
    """
    if not report_id or not work_item_id:
        return bad_request("missing_parameter", "report_id and work_item_id are required")
    report_pk = _parse_uuid(report_id)
    work_item_pk = _parse_uuid(work_item_id)
    if report_pk is None or work_item_pk is None:
        return bad_request("invalid_identifier", "report_id and work_item_id must be UUIDs")

    try:
        with transaction.atomic():
            link_row = (
                ReportWorkItemLink.objects
                .select_for_update()
                .filter(report_id=report_pk, work_item_id=work_item_pk)
                .first()
            )
            if link_row is None:
                raise RollbackWithResult(not_found("link_not_found", "Work item is not linked to report"))
            in_use = entries_for_report(report_pk).filter(
                work_item_links__work_item_id=work_item_pk,
            ).exists()
            if in_use:
                raise RollbackWithResult(
                    conflict("work_item_in_use", "Active entries still bill this work item")
                )
            link_row.delete()
    except RollbackWithResult as rollback:
        return rollback.result
    except DatabaseError:
        logger.exception(
            "Failed to unlink work item %s from report %s", work_item_pk, report_pk
        )
        return internal_error("unlink_failed", "Could not unlink work item from report")

    logger.info("Unlinked work item %s from report %s", work_item_pk, report_pk)
    return ServiceResult.ok({"report_id": report_pk, "work_item_id": work_item_pk})


def attach_entry(report: ActivityReport, entry: ActivityEntry) -> ReportEntryLink:
    """Create the report <-> entry join row. Caller owns the transaction."""
    return ReportEntryLink.objects.create(report=report, entry=entry)


def assign_work_item(entry: ActivityEntry, work_item: WorkItem) -> EntryWorkItemLink:
    """
    Point an entry at a work item, replacing any previous assignment.

    Caller owns the transaction.
    """
    link_row, _ = EntryWorkItemLink.objects.update_or_create(
        entry=entry,
        defaults={"work_item": work_item},
    )
    return link_row


def ensure_report_work_item(report: ActivityReport, work_item: WorkItem) -> ReportWorkItemLink:
    """get_or_create for the report <-> work item row inside a caller's transaction."""
    link_row, _ = ReportWorkItemLink.objects.get_or_create(report=report, work_item=work_item)
    return link_row


def release_report_work_item(report: ActivityReport, work_item: WorkItem) -> bool:
    """
    Drop the report <-> work item row once no active entry bills the work item.

    Caller owns the transaction.

    Returns:
        True if a link row was deleted
    """
    still_billed = entries_for_report(report.pk).filter(
        work_item_links__work_item=work_item,
    ).exists()
    if still_billed:
        return False
    deleted, _ = ReportWorkItemLink.objects.filter(report=report, work_item=work_item).delete()
    return deleted > 0


def entries_for_report(report_id, *, include_deleted: bool = False):
    """
    Entries reached through ReportEntryLink rows.

    Args:
        report_id: ActivityReport id
        include_deleted: Also return soft-deleted entries

    Returns:
        QuerySet of ActivityEntry (empty for an invalid id)
    """
    queryset = ActivityEntry.objects.with_deleted() if include_deleted else ActivityEntry.objects.all()
    report_pk = _parse_uuid(report_id)
    if report_pk is None:
        return queryset.none()
    return queryset.filter(report_links__report_id=report_pk)


def reports_for_work_item(work_item_id):
    """Active reports linked to a work item."""
    work_item_pk = _parse_uuid(work_item_id)
    if work_item_pk is None:
        return ActivityReport.objects.none()
    return ActivityReport.objects.filter(work_item_links__work_item_id=work_item_pk).distinct()


def work_items_for_report(report_id):
    """Active work items linked to a report."""
    report_pk = _parse_uuid(report_id)
    if report_pk is None:
        return WorkItem.objects.none()
    return WorkItem.objects.filter(report_links__report_id=report_pk).distinct()


def debug_info(report_id, work_item_id) -> dict:
    """
    Diagnostic snapshot of a report / work item pair.

    Never raises, including for malformed ids.
    """
    info = {
        "report_id": str(report_id) if report_id is not None else None,
        "work_item_id": str(work_item_id) if work_item_id is not None else None,
        "report_exists": False,
        "work_item_exists": False,
        "already_linked": False,
        "report_status": None,
        "work_item_name": None,
    }
    report_pk = _parse_uuid(report_id)
    work_item_pk = _parse_uuid(work_item_id)
    try:
        if report_pk is not None:
            report = ActivityReport.objects.filter(pk=report_pk).first()
            if report is not None:
                info["report_exists"] = True
                info["report_status"] = report.status
        if work_item_pk is not None:
            work_item = WorkItem.objects.filter(pk=work_item_pk).first()
            if work_item is not None:
                info["work_item_exists"] = True
                info["work_item_name"] = work_item.name
        if report_pk is not None and work_item_pk is not None:
            info["already_linked"] = ReportWorkItemLink.objects.filter(
                report_id=report_pk,
                work_item_id=work_item_pk,
            ).exists()
    except DatabaseError as e:
        info["error"] = e.__class__.__name__
    return info
