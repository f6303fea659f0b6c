"""Plain-dict representations of ledger rows.

Amounts stay in integer cents and quantities are rendered as strings so the
output is JSON-safe without float conversion.
"""

from django_activity_ledger.money import format_quantity


def _iso(value):
    return value.isoformat() if value is not None else None


def serialize_entry(entry, work_item=None) -> dict:
    return {
        "id": str(entry.pk),
        "date": _iso(entry.date),
        "quantity": format_quantity(entry.quantity),
        "unit_price_cents": entry.unit_price_cents,
        "line_total_cents": entry.line_total_cents,
        "description": entry.description,
        "work_item_id": str(work_item.pk) if work_item is not None else None,
        "created_at": _iso(entry.created_at),
        "updated_at": _iso(entry.updated_at),
        "deleted_at": _iso(entry.deleted_at),
    }


def serialize_entry_line(line) -> dict:
    """Serialize an aggregation EntryLine."""
    return {
        "id": str(line.entry_id),
        "date": _iso(line.date),
        "work_item_id": str(line.work_item_id) if line.work_item_id is not None else None,
        "work_item": line.work_item_label,
        "quantity": format_quantity(line.quantity),
        "unit_price_cents": line.unit_price_cents,
        "line_total_cents": line.line_total_cents,
        "description": line.description,
    }


def serialize_report(report, *, lines=None, work_items=None) -> dict:
    """
    Serialize a report.

    Args:
        report: ActivityReport
        lines: Optional EntryLine list to embed as "entries"
        work_items: Optional WorkItem iterable to embed as "work_items"
    """
    data = {
        "id": str(report.pk),
        "owner_id": str(report.owner_id),
        "month": report.month,
        "year": report.year,
        "currency": report.currency,
        "status": report.status,
        "description": report.description,
        "total_days": format_quantity(report.total_days),
        "total_amount_cents": report.total_amount_cents,
        "submitted_at": _iso(report.submitted_at),
        "locked_at": _iso(report.locked_at),
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }
    if lines is not None:
        data["entries"] = [serialize_entry_line(line) for line in lines]
    if work_items is not None:
        data["work_items"] = [
            {"id": str(work_item.pk), "name": work_item.name} for work_item in work_items
        ]
    return data
