"""Django Activity Ledger - monthly activity reports with audited locking."""

__version__ = "0.1.0"

__all__ = [
    "ActivityReport",
    "ActivityEntry",
    "ReportEntryLink",
    "EntryWorkItemLink",
    "ReportWorkItemLink",
    "WorkItem",
    "LedgerCommit",
    "ReportStatus",
]


def __getattr__(name):
    """Lazy import models to avoid AppRegistryNotReady errors."""
    if name in __all__:
        from django_activity_ledger import models
        return getattr(models, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
