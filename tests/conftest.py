"""Pytest configuration for django-activity-ledger tests."""

import datetime
from decimal import Decimal

import pytest

from django_activity_ledger.models import (
    ActivityReport,
    BusinessContext,
    ContextMembership,
    WorkItem,
    WorkItemContext,
)
from django_activity_ledger.services import create_entry


ENTRY_DATE = datetime.date(2024, 1, 15)


@pytest.fixture
def context(db):
    """Business context the owner works under."""
    return BusinessContext.objects.create(name="Acme Consulting")


@pytest.fixture
def user(db, django_user_model, context):
    """Create an independent contractor who owns reports."""
    user = django_user_model.objects.create_user(
        username="testuser",
        password="testpass123",
    )
    ContextMembership.objects.create(
        user=user,
        context=context,
        role=ContextMembership.Role.INDEPENDENT,
    )
    return user


@pytest.fixture
def other_user(db, django_user_model):
    """Another independent contractor in a separate context."""
    other = django_user_model.objects.create_user(
        username="otheruser",
        password="testpass123",
    )
    ContextMembership.objects.create(
        user=other,
        context=BusinessContext.objects.create(name="Other Org"),
        role=ContextMembership.Role.INDEPENDENT,
    )
    return other


@pytest.fixture
def client_user(db, django_user_model, context):
    """A user holding only the client role."""
    client = django_user_model.objects.create_user(
        username="clientuser",
        password="testpass123",
    )
    ContextMembership.objects.create(
        user=client,
        context=context,
        role=ContextMembership.Role.CLIENT,
    )
    return client


def _work_item(name, context=None):
    work_item = WorkItem.objects.create(name=name)
    if context is not None:
        WorkItemContext.objects.create(work_item=work_item, context=context)
    return work_item


@pytest.fixture
def work_item_a(db, context):
    return _work_item("Mission A", context)


@pytest.fixture
def work_item_b(db, context):
    return _work_item("Mission B", context)


@pytest.fixture
def foreign_work_item(db):
    """Work item under no context the owner belongs to."""
    return _work_item("Foreign Mission", BusinessContext.objects.create(name="Elsewhere"))


@pytest.fixture
def report(db, user):
    """Draft report for January 2024."""
    return ActivityReport.objects.create(owner=user, month=1, year=2024, currency="EUR")


@pytest.fixture
def make_entry(user):
    """Create an entry through the entry service and return the row."""
    from django_activity_ledger.models import ActivityEntry

    def _make(report, work_item, *, date=ENTRY_DATE, quantity="1", unit_price_cents=50000, description=""):
        result = create_entry(user, report, {
            "date": date,
            "quantity": quantity,
            "unit_price_cents": unit_price_cents,
            "work_item_id": work_item.pk,
            "description": description,
        })
        assert result.success, result.error
        return ActivityEntry.objects.get(pk=result.data["entry"]["id"])

    return _make


@pytest.fixture
def submitted_report(report, work_item_a, make_entry):
    """January 2024 report with one entry, submitted."""
    from django_activity_ledger.services import submit_report

    make_entry(report, work_item_a, quantity=Decimal("1.00"), unit_price_cents=50000)
    result = submit_report(report.owner, report)
    assert result.success, result.error
    report.refresh_from_db()
    return report
