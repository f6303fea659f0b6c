"""Export engine.

Renders a submitted or locked report as CSV. The whole document is built in
memory and returned only once every row rendered, so a failure never yields
a truncated file.
"""

import csv
import io
import logging

from django_activity_ledger.exceptions import ActivityLedgerConfigError
from django_activity_ledger.models import ActivityReport, ReportStatus
from django_activity_ledger.money import format_major, format_quantity
from django_activity_ledger.permissions import authorize, forbidden_message
from django_activity_ledger.results import (
    ServiceResult,
    conflict,
    forbidden,
    internal_error,
    invalid_payload,
    not_found,
)
from django_activity_ledger.services import aggregation
from django_activity_ledger.validation import Violation

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv",)
EXPORTABLE_STATUSES = (ReportStatus.SUBMITTED, ReportStatus.LOCKED)
UTF8_BOM = "\ufeff"
CSV_CONTENT_TYPE = "text/csv; charset=utf-8"


def export_filename(report, export_format: str = "csv") -> str:
    return f"activity_report_{report.year}_{report.month:02d}.{export_format}"


def csv_header(currency: str) -> list[str]:
    currency = currency.lower()
    return [
        "date",
        "work_item",
        "quantity",
        f"unit_price_{currency}",
        f"line_total_{currency}",
        "description",
    ]


def _best_effort_totals(report) -> aggregation.Totals:
    """Live totals; fall back to the stored columns if the recompute fails."""
    try:
        return aggregation.compute_totals(report)
    except Exception:
        logger.warning(
            "Totals recompute failed for report %s, exporting stored totals",
            report.pk,
            exc_info=True,
        )
        return aggregation.Totals(
            total_days=report.total_days,
            total_amount_cents=report.total_amount_cents,
        )


def render_csv(report, totals: aggregation.Totals, lines) -> str:
    """
    Render the CSV document.

    Args:
        report: The ActivityReport (for the currency)
        totals: Totals for the TOTAL row
        lines: EntryLine rows, already chronological; empty for totals-only

    Returns:
        The CSV text, prefixed with a UTF-8 byte order mark
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(csv_header(report.currency))
    for line in lines:
        writer.writerow([
            line.date.isoformat(),
            line.work_item_label,
            format_quantity(line.quantity),
            format_major(line.unit_price_cents),
            format_major(line.line_total_cents),
            line.description,
        ])
    writer.writerow([
        "TOTAL",
        "",
        format_quantity(totals.total_days),
        "",
        format_major(totals.total_amount_cents),
        "",
    ])
    return UTF8_BOM + buffer.getvalue()


def export_report(actor, report, *, include_entries: bool = True, export_format: str = "csv") -> ServiceResult:
    """
    Export a submitted or locked report.

    Args:
        actor: The acting user (must own the report)
        report: The ActivityReport to export
        include_entries: False renders the header and TOTAL row only
        export_format: Output format; only "csv" is supported

    Returns:
        ServiceResult with {"filename", "content_type", "content"}
    """
    if report is not None:
        report = ActivityReport.objects.filter(pk=report.pk).first()
    if report is None:
        return not_found("report_not_found", "Report not found")

    authorization = authorize(actor, report)
    if not authorization.allowed:
        return forbidden(forbidden_message(authorization), authorization.reason)

    export_format = (export_format or "").lower()
    if export_format not in SUPPORTED_FORMATS:
        return invalid_payload(
            [Violation("format", "allowed", f"format must be one of: {', '.join(SUPPORTED_FORMATS)}")],
            code="unsupported_format",
        )

    if report.status not in EXPORTABLE_STATUSES:
        return conflict(
            "report_not_exportable",
            f"Only submitted or locked reports can be exported (status: {report.status})",
        )

    totals = _best_effort_totals(report)
    try:
        lines = aggregation.entry_lines(report) if include_entries else []
        content = render_csv(report, totals, lines)
    except ActivityLedgerConfigError:
        raise
    except Exception:
        logger.exception("Failed to export report %s by actor %s", report.pk, actor.pk)
        return internal_error("export_failed", "Could not export report")

    logger.info("Exported report %s (%s)", report.pk, export_format)
    return ServiceResult.ok({
        "filename": export_filename(report, export_format),
        "content_type": CSV_CONTENT_TYPE,
        "content": content,
    })
