"""django-activity-ledger services.

Re-exports all services for convenient importing.
"""

from .aggregation import (
    EntryLine,
    Totals,
    compute_totals,
    entry_lines,
    recalculate,
)
from .entries import (
    create_entry,
    destroy_entry,
    update_entry,
)
from .export import export_report
from .linker import (
    debug_info,
    entries_for_report,
    link,
    reports_for_work_item,
    unlink,
    work_items_for_report,
)
from .reports import (
    build_snapshot,
    create_report,
    destroy_report,
    lock_report,
    submit_report,
    update_report,
)

__all__ = [
    # Aggregation
    "Totals",
    "EntryLine",
    "compute_totals",
    "recalculate",
    "entry_lines",
    # Entries
    "create_entry",
    "update_entry",
    "destroy_entry",
    # Export
    "export_report",
    # Linker
    "link",
    "unlink",
    "entries_for_report",
    "reports_for_work_item",
    "work_items_for_report",
    "debug_info",
    # Reports
    "create_report",
    "submit_report",
    "lock_report",
    "update_report",
    "destroy_report",
    "build_snapshot",
]
