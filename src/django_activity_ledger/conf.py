"""Configuration for django-activity-ledger.

All settings are optional and read lazily so tests can use override_settings.
"""

from django.conf import settings
from django.utils.module_loading import import_string

from django_activity_ledger.exceptions import ActivityLedgerConfigError


DEFAULT_CURRENCIES = ("EUR", "USD", "GBP", "CHF", "CAD")
DEFAULT_CURRENCY = "EUR"
DEFAULT_MIN_YEAR = 2000
DEFAULT_MAX_YEAR = 2100
DEFAULT_ELIGIBLE_ROLES = ("independent",)
DEFAULT_ACCESS_PROVIDER = "django_activity_ledger.permissions.MembershipAccessProvider"
DEFAULT_AUDIT_APPENDER = "django_activity_ledger.audit.DatabaseLedgerAppender"
DEFAULT_PAGE_SIZE = 20
DEFAULT_MAX_PAGE_SIZE = 100
DEFAULT_UNASSIGNED_LABEL = "Unassigned work item"


def get_currencies() -> tuple[str, ...]:
    """Return the currency allow-list (ISO 4217 codes, upper-case)."""
    currencies = getattr(settings, "ACTIVITY_LEDGER_CURRENCIES", DEFAULT_CURRENCIES)
    if not currencies:
        raise ActivityLedgerConfigError(
            "ACTIVITY_LEDGER_CURRENCIES must contain at least one currency code"
        )
    return tuple(code.upper() for code in currencies)


def get_default_currency() -> str:
    """Currency used when a report is created without one."""
    currency = getattr(settings, "ACTIVITY_LEDGER_DEFAULT_CURRENCY", DEFAULT_CURRENCY)
    if currency.upper() not in get_currencies():
        raise ActivityLedgerConfigError(
            f"ACTIVITY_LEDGER_DEFAULT_CURRENCY {currency!r} is not in "
            "ACTIVITY_LEDGER_CURRENCIES"
        )
    return currency.upper()


def get_year_range() -> tuple[int, int]:
    """Return the inclusive (min, max) year accepted for a report period."""
    min_year = getattr(settings, "ACTIVITY_LEDGER_MIN_YEAR", DEFAULT_MIN_YEAR)
    max_year = getattr(settings, "ACTIVITY_LEDGER_MAX_YEAR", DEFAULT_MAX_YEAR)
    if min_year > max_year:
        raise ActivityLedgerConfigError(
            "ACTIVITY_LEDGER_MIN_YEAR must not be greater than ACTIVITY_LEDGER_MAX_YEAR"
        )
    return min_year, max_year


def get_eligible_roles() -> tuple[str, ...]:
    """Roles that allow a user to own activity reports."""
    return tuple(getattr(settings, "ACTIVITY_LEDGER_ELIGIBLE_ROLES", DEFAULT_ELIGIBLE_ROLES))


def get_page_size() -> int:
    return getattr(settings, "ACTIVITY_LEDGER_PAGE_SIZE", DEFAULT_PAGE_SIZE)


def get_max_page_size() -> int:
    return getattr(settings, "ACTIVITY_LEDGER_MAX_PAGE_SIZE", DEFAULT_MAX_PAGE_SIZE)


def get_unassigned_label() -> str:
    """Label exported for entries whose work item cannot be resolved."""
    return getattr(settings, "ACTIVITY_LEDGER_UNASSIGNED_LABEL", DEFAULT_UNASSIGNED_LABEL)


def _load(setting_name: str, default_path: str):
    path = getattr(settings, setting_name, None) or default_path
    try:
        factory = import_string(path)
    except ImportError as e:
        raise ActivityLedgerConfigError(
            f"{setting_name} could not be imported from {path!r}: {e}"
        ) from e
    return factory()


def get_access_provider():
    """Instantiate the configured AccessContextProvider."""
    return _load("ACTIVITY_LEDGER_ACCESS_PROVIDER", DEFAULT_ACCESS_PROVIDER)


def get_audit_appender():
    """Instantiate the configured AuditLedgerAppender."""
    return _load("ACTIVITY_LEDGER_AUDIT_APPENDER", DEFAULT_AUDIT_APPENDER)
