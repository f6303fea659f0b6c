"""Custom exceptions for django-activity-ledger.

Services never let these escape: they are raised inside a transaction to
force a rollback and converted back into a ServiceResult at the boundary.
Configuration errors are the exception and propagate to the caller.
"""


class ActivityLedgerError(Exception):
    """Base exception for activity ledger errors."""
    pass


class ActivityLedgerConfigError(ActivityLedgerError):
    """Raised when an ACTIVITY_LEDGER_* setting is missing or invalid."""
    pass


class RollbackWithResult(ActivityLedgerError):
    """Abort the current atomic block and hand a failure result to the caller."""

    def __init__(self, result):
        self.result = result
        super().__init__(result.error.message if result.error else "rollback")
