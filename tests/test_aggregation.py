"""Tests for the aggregation engine."""
import datetime
from decimal import Decimal

import pytest
from django.test import override_settings

from django_activity_ledger.models import ActivityEntry, EntryWorkItemLink, ReportEntryLink
from django_activity_ledger.services.aggregation import (
    Totals,
    compute_totals,
    entry_lines,
    recalculate,
)


@pytest.mark.django_db
class TestComputeTotals:

    def test_empty_report_is_zero(self, report):
        totals = compute_totals(report)

        assert totals == Totals(total_days=Decimal("0.00"), total_amount_cents=0)

    def test_sums_active_linked_entries(self, report, work_item_a, work_item_b, make_entry):
        make_entry(report, work_item_a, quantity="0.5", unit_price_cents=60000)
        make_entry(report, work_item_b, quantity="0.5", unit_price_cents=70000)

        totals = compute_totals(report)

        assert totals.total_days == Decimal("1.00")
        assert totals.total_amount_cents == 65000

    def test_deleted_entries_are_ignored(self, report, work_item_a, work_item_b, make_entry):
        make_entry(report, work_item_a, quantity="1", unit_price_cents=10000)
        dropped = make_entry(report, work_item_b, quantity="2", unit_price_cents=10000)
        dropped.delete()

        assert compute_totals(report).total_amount_cents == 10000

    def test_unlinked_entries_are_ignored(self, report):
        ActivityEntry.objects.create(
            date=datetime.date(2024, 1, 3),
            quantity=Decimal("3"),
            unit_price_cents=100,
            line_total_cents=300,
        )

        assert compute_totals(report) == Totals.empty()

    def test_sum_uses_rounded_line_totals(self, report, work_item_a, work_item_b, make_entry):
        # 0.5 x 1001 = 500.5 -> 501 per line
        make_entry(report, work_item_a, quantity="0.5", unit_price_cents=1001)
        make_entry(report, work_item_b, quantity="0.5", unit_price_cents=1001)

        assert compute_totals(report).total_amount_cents == 1002


@pytest.mark.django_db
class TestRecalculate:

    def test_persists_totals(self, report, work_item_a):
        entry = ActivityEntry.objects.create(
            date=datetime.date(2024, 1, 3),
            quantity=Decimal("2"),
            unit_price_cents=45000,
            line_total_cents=90000,
        )
        ReportEntryLink.objects.create(report=report, entry=entry)
        EntryWorkItemLink.objects.create(entry=entry, work_item=work_item_a)

        totals = recalculate(report)
        report.refresh_from_db()

        assert totals.total_amount_cents == 90000
        assert report.total_days == Decimal("2.00")
        assert report.total_amount_cents == 90000

    def test_empty_report_resets_to_zero(self, report):
        report.total_days = Decimal("5")
        report.total_amount_cents = 12345
        report.save()

        recalculate(report)
        report.refresh_from_db()

        assert report.total_days == Decimal("0")
        assert report.total_amount_cents == 0


@pytest.mark.django_db
class TestEntryLines:

    def test_chronological_order(self, report, work_item_a, make_entry):
        make_entry(report, work_item_a, date=datetime.date(2024, 1, 20))
        make_entry(report, work_item_a, date=datetime.date(2024, 1, 5))

        lines = entry_lines(report)

        assert [line.date for line in lines] == [datetime.date(2024, 1, 5), datetime.date(2024, 1, 20)]
        assert all(line.work_item_label == "Mission A" for line in lines)

    def test_missing_work_item_link_gets_placeholder(self, report, work_item_a, make_entry):
        entry = make_entry(report, work_item_a)
        EntryWorkItemLink.objects.filter(entry=entry).delete()

        [line] = entry_lines(report)

        assert line.work_item_label == "Unassigned work item"
        assert line.work_item_id is None

    def test_deleted_work_item_gets_placeholder(self, report, work_item_a, make_entry):
        make_entry(report, work_item_a)
        work_item_a.delete()

        [line] = entry_lines(report)

        assert line.work_item_label == "Unassigned work item"

    @override_settings(ACTIVITY_LEDGER_UNASSIGNED_LABEL="(none)")
    def test_placeholder_is_configurable(self, report, work_item_a, make_entry):
        entry = make_entry(report, work_item_a)
        EntryWorkItemLink.objects.filter(entry=entry).delete()

        assert entry_lines(report)[0].work_item_label == "(none)"

    def test_orphaned_link_does_not_break_totals(self, report, work_item_a, make_entry):
        entry = make_entry(report, work_item_a, quantity="1", unit_price_cents=50000)
        EntryWorkItemLink.objects.filter(entry=entry).delete()

        assert compute_totals(report).total_amount_cents == 50000
