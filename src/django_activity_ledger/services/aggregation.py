"""Aggregation engine.

Totals are derived from the active entries reached through ReportEntryLink
rows. Nothing here runs implicitly: the entry and report services call
recalculate() after their writes, inside their own transaction.
"""

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal

from django_activity_ledger import conf
from django_activity_ledger.models import ActivityReport, EntryWorkItemLink
from django_activity_ledger.money import line_total_cents, sum_cents
from django_activity_ledger.services.linker import entries_for_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Totals:
    total_days: Decimal
    total_amount_cents: int

    @classmethod
    def empty(cls) -> "Totals":
        return cls(total_days=Decimal("0.00"), total_amount_cents=0)


@dataclass(frozen=True)
class EntryLine:
    """Read projection of one active entry with its work item label."""

    entry_id: object
    date: datetime.date
    work_item_id: object
    work_item_label: str
    quantity: Decimal
    unit_price_cents: int
    line_total_cents: int
    description: str


def _active_entries(report: ActivityReport):
    return entries_for_report(report.pk).order_by("date", "created_at", "id")


def compute_totals(report: ActivityReport) -> Totals:
    """
    Sum quantity and line totals over the report's active entries.

    Line totals are recomputed from quantity and unit price rather than read
    from the stored column, so a stale row cannot skew the sum.
    """
    days = Decimal("0.00")
    amounts = []
    for entry in _active_entries(report):
        days += entry.quantity
        amounts.append(line_total_cents(entry.quantity, entry.unit_price_cents))
    return Totals(
        total_days=days.quantize(Decimal("0.01")),
        total_amount_cents=sum_cents(amounts),
    )


def recalculate(report: ActivityReport) -> Totals:
    """
    Compute totals and persist them on the report.

    Args:
        report: The ActivityReport (normally row-locked by the caller)

    Returns:
        The persisted Totals
    """
    totals = compute_totals(report)
    report.total_days = totals.total_days
    report.total_amount_cents = totals.total_amount_cents
    report.save(update_fields=["total_days", "total_amount_cents", "updated_at"])
    logger.debug(
        "Recalculated report %s: %s days, %s cents",
        report.pk, totals.total_days, totals.total_amount_cents,
    )
    return totals


def work_item_label(work_item) -> str:
    """Display label for a work item; placeholder when missing or deleted."""
    if work_item is None or work_item.is_deleted or not work_item.name:
        return conf.get_unassigned_label()
    return work_item.name


def entry_lines(report: ActivityReport) -> list[EntryLine]:
    """
    Chronological projection of the report's active entries.

    An entry whose work item link is missing, orphaned or points at a deleted
    work item gets the configured placeholder label.
    """
    entries = list(_active_entries(report))
    links = (
        EntryWorkItemLink.objects
        .filter(entry_id__in=[entry.pk for entry in entries])
        .select_related("work_item")
    )
    work_items = {link_row.entry_id: link_row.work_item for link_row in links}

    lines = []
    for entry in entries:
        work_item = work_items.get(entry.pk)
        lines.append(
            EntryLine(
                entry_id=entry.pk,
                date=entry.date,
                work_item_id=work_item.pk if work_item is not None else None,
                work_item_label=work_item_label(work_item),
                quantity=entry.quantity,
                unit_price_cents=entry.unit_price_cents,
                line_total_cents=line_total_cents(entry.quantity, entry.unit_price_cents),
                description=entry.description,
            )
        )
    return lines
