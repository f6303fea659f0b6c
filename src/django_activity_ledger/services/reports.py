"""Report lifecycle service.

State machine: draft --submit--> submitted --lock--> locked. Nothing skips a
state and nothing returns to draft.

Provides:
- create_report: Create a draft report for the actor
- submit_report: Recompute totals and move draft -> submitted
- lock_report: Append the audit snapshot and move submitted -> locked
- update_report: Patch fields, optionally submitting a draft
- destroy_report: Soft-delete a draft report with its entries
- build_snapshot: Canonical snapshot recorded by the audit ledger
"""

import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from django_activity_ledger import conf
from django_activity_ledger.audit import AuditLedgerAppender
from django_activity_ledger.exceptions import ActivityLedgerConfigError, RollbackWithResult
from django_activity_ledger.models import ActivityReport, ReportStatus
from django_activity_ledger.money import format_quantity
from django_activity_ledger.permissions import authorize, authorize_creation, forbidden_message
from django_activity_ledger.results import (
    ServiceResult,
    conflict,
    forbidden,
    internal_error,
    invalid_payload,
    invalid_transition,
    not_found,
)
from django_activity_ledger.serializers import serialize_report
from django_activity_ledger.services import aggregation, linker
from django_activity_ledger.validation import Violation, validate_report_params

logger = logging.getLogger(__name__)

REPORT_UPDATE_FIELDS = ("month", "year", "currency", "description")


def _lock_report(report_id) -> ActivityReport:
    report = ActivityReport.objects.select_for_update().filter(pk=report_id).first()
    if report is None:
        raise RollbackWithResult(not_found("report_not_found", "Report not found"))
    return report


def _authorization_failure(actor, report):
    if report is None:
        return not_found("report_not_found", "Report not found")
    authorization = authorize(actor, report)
    if not authorization.allowed:
        return forbidden(forbidden_message(authorization), authorization.reason)
    return None


def _period_conflict():
    return conflict(
        "duplicate_report",
        "A report already exists for this period",
    )


def _period_taken(owner_id, month, year, *, exclude_pk=None) -> bool:
    reports = ActivityReport.objects.filter(owner_id=owner_id, month=month, year=year)
    if exclude_pk is not None:
        reports = reports.exclude(pk=exclude_pk)
    return reports.exists()


def _submit(report: ActivityReport) -> None:
    """draft -> submitted on a row-locked report. Raises RollbackWithResult."""
    if not linker.entries_for_report(report.pk).exists():
        raise RollbackWithResult(
            invalid_payload(
                [Violation("entries", "required", "A report needs at least one entry to be submitted")],
                code="no_entries",
            )
        )
    aggregation.recalculate(report)
    report.status = ReportStatus.SUBMITTED
    report.submitted_at = timezone.now()
    report.save(update_fields=["status", "submitted_at", "updated_at"])


def create_report(actor, params) -> ServiceResult:
    """
    Create a draft report owned by actor.

    Args:
        actor: The acting user (needs an eligible role)
        params: month, year, currency (defaults to the configured currency),
            description

    Returns:
        ServiceResult with {"report": ...}
    """
    authorization = authorize_creation(actor)
    if not authorization.allowed:
        return forbidden(forbidden_message(authorization), authorization.reason)

    validation = validate_report_params(params)
    if not validation.is_valid:
        return invalid_payload(validation.violations)
    cleaned = validation.cleaned

    try:
        with transaction.atomic():
            if _period_taken(actor.pk, cleaned["month"], cleaned["year"]):
                raise RollbackWithResult(_period_conflict())
            report = ActivityReport.objects.create(
                owner=actor,
                month=cleaned["month"],
                year=cleaned["year"],
                currency=cleaned["currency"],
                description=cleaned.get("description", ""),
                status=ReportStatus.DRAFT,
            )
    except RollbackWithResult as rollback:
        return rollback.result
    except IntegrityError:
        return _period_conflict()
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to create report for actor %s", actor.pk)
        return internal_error("report_create_failed", "Could not create report")

    logger.info("Created report %s for actor %s", report.pk, actor.pk)
    return ServiceResult.ok({"report": serialize_report(report)})


def submit_report(actor, report: ActivityReport) -> ServiceResult:
    """
    Submit a draft report.

    Requires at least one active entry. Totals are recomputed before the
    status changes.
    """
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            if not locked.is_draft:
                raise RollbackWithResult(
                    conflict("report_not_draft", f"Only draft reports can be submitted (status: {locked.status})")
                )
            _submit(locked)
    except RollbackWithResult as rollback:
        return rollback.result
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to submit report %s by actor %s", report.pk, actor.pk)
        return internal_error("report_submit_failed", "Could not submit report")

    logger.info("Submitted report %s", locked.pk)
    return ServiceResult.ok({"report": serialize_report(locked)})


def build_snapshot(report: ActivityReport, locked_at) -> dict:
    """
    Canonical snapshot of a report as it is locked.

    Entries are ordered by (date, id) and work item ids are sorted, so the
    same report state always yields the same snapshot.
    """
    totals = aggregation.compute_totals(report)
    lines = sorted(aggregation.entry_lines(report), key=lambda line: (line.date, str(line.entry_id)))
    work_item_ids = sorted(str(pk) for pk in linker.work_items_for_report(report.pk).values_list("pk", flat=True))
    return {
        "report_id": str(report.pk),
        "owner_id": str(report.owner_id),
        "month": report.month,
        "year": report.year,
        "currency": report.currency,
        "description": report.description,
        "status": ReportStatus.LOCKED.value,
        "totals": {
            "total_days": format_quantity(totals.total_days),
            "total_amount_cents": totals.total_amount_cents,
        },
        "work_item_ids": work_item_ids,
        "entries": [
            {
                "id": str(line.entry_id),
                "date": line.date.isoformat(),
                "quantity": format_quantity(line.quantity),
                "unit_price_cents": line.unit_price_cents,
                "line_total_cents": line.line_total_cents,
                "description": line.description,
                "work_item_id": str(line.work_item_id) if line.work_item_id is not None else None,
            }
            for line in lines
        ],
        "locked_at": locked_at.isoformat(),
    }


def lock_report(actor, report: ActivityReport, *, appender: Optional[AuditLedgerAppender] = None) -> ServiceResult:
    """
    Lock a submitted report.

    The snapshot is appended to the audit ledger first; the status changes
    only if the append succeeds. A failed append leaves the report submitted.

    Args:
        actor: The acting user (must own the report)
        report: The ActivityReport to lock
        appender: Audit ledger backend (defaults to ACTIVITY_LEDGER_AUDIT_APPENDER)

    Returns:
        ServiceResult with {"report": ..., "commit_id": ..., "digest": ...}
    """
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    appender = appender or conf.get_audit_appender()

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            if not locked.is_submitted:
                logger.warning(
                    "Rejected lock of report %s in status %s", locked.pk, locked.status
                )
                raise RollbackWithResult(
                    conflict("report_not_submitted", f"Only submitted reports can be locked (status: {locked.status})")
                )

            locked_at = timezone.now()
            snapshot = build_snapshot(locked, locked_at)
            try:
                appended = appender.append(snapshot)
            except Exception:
                logger.exception("Audit appender raised for report %s", locked.pk)
                appended = None
            if appended is None or not appended.success:
                logger.warning("Audit append failed for report %s, lock aborted", locked.pk)
                raise RollbackWithResult(
                    internal_error("audit_append_failed", "Could not record the audit snapshot")
                )

            locked.status = ReportStatus.LOCKED
            locked.locked_at = locked_at
            locked.save(update_fields=["status", "locked_at", "updated_at"])
    except RollbackWithResult as rollback:
        return rollback.result
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to lock report %s by actor %s", report.pk, actor.pk)
        return internal_error("report_lock_failed", "Could not lock report")

    logger.info("Locked report %s (commit %s)", locked.pk, appended.commit_id)
    return ServiceResult.ok({
        "report": serialize_report(locked),
        "commit_id": appended.commit_id,
        "digest": appended.digest,
    })


def _check_status_change(report: ActivityReport, target) -> bool:
    """
    Decide what a "status" key in an update patch means.

    Returns:
        True if the patch submits a draft, False if a draft keeps its status

    Raises:
        RollbackWithResult: For an unknown or disallowed status, or a
            repeated submit of an already submitted report
    """
    if target not in ReportStatus.values:
        raise RollbackWithResult(
            invalid_transition("unknown_status", f"Unknown report status: {target!r}")
        )
    if target == report.status:
        if report.is_draft:
            return False
        raise RollbackWithResult(
            conflict("report_not_draft", f"Report is already {report.status}")
        )
    if report.is_submitted:
        raise RollbackWithResult(
            invalid_transition(
                "status_change_not_allowed",
                "The status of a submitted report can only change by locking it",
            )
        )
    if not report.can_transition_to(target):
        raise RollbackWithResult(
            invalid_transition(
                "invalid_transition",
                f"Cannot move report from {report.status} to {target}",
            )
        )
    return True


def update_report(actor, report: ActivityReport, patch) -> ServiceResult:
    """
    Patch a report.

    Locked reports reject every patch. A draft report may be submitted by
    passing status="submitted"; the field changes and the submit share one
    transaction.
    """
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            if locked.is_locked:
                raise RollbackWithResult(conflict("report_locked", "Locked reports cannot be modified"))

            validation = validate_report_params(patch, partial=True)
            if not validation.is_valid:
                raise RollbackWithResult(invalid_payload(validation.violations))
            cleaned = validation.cleaned

            submitting = False
            if "status" in patch:
                submitting = _check_status_change(locked, patch["status"])
            if not submitting and not cleaned:
                raise RollbackWithResult(invalid_payload([
                    Violation("payload", "empty_payload", "Update payload must change at least one known field"),
                ]))

            month = cleaned.get("month", locked.month)
            year = cleaned.get("year", locked.year)
            if (month, year) != (locked.month, locked.year) and _period_taken(
                locked.owner_id, month, year, exclude_pk=locked.pk
            ):
                raise RollbackWithResult(_period_conflict())

            changed = [name for name in REPORT_UPDATE_FIELDS if name in cleaned]
            for name in changed:
                setattr(locked, name, cleaned[name])
            if changed:
                locked.save(update_fields=changed + ["updated_at"])

            if submitting:
                _submit(locked)
    except RollbackWithResult as rollback:
        return rollback.result
    except IntegrityError:
        return _period_conflict()
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to update report %s by actor %s", report.pk, actor.pk)
        return internal_error("report_update_failed", "Could not update report")

    logger.info("Updated report %s", locked.pk)
    return ServiceResult.ok({"report": serialize_report(locked)})


def destroy_report(actor, report: ActivityReport) -> ServiceResult:
    """Soft-delete a draft report and its active entries."""
    failure = _authorization_failure(actor, report)
    if failure:
        return failure

    try:
        with transaction.atomic():
            locked = _lock_report(report.pk)
            if not locked.is_draft:
                raise RollbackWithResult(
                    conflict("report_not_draft", f"Only draft reports can be deleted (status: {locked.status})")
                )
            deleted_at = timezone.now()
            for entry in linker.entries_for_report(locked.pk):
                entry.soft_delete(at=deleted_at)
            locked.soft_delete(at=deleted_at)
    except RollbackWithResult as rollback:
        return rollback.result
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to destroy report %s by actor %s", report.pk, actor.pk)
        return internal_error("report_destroy_failed", "Could not delete report")

    logger.info("Deleted report %s", locked.pk)
    return ServiceResult.ok({"report": serialize_report(locked)})
