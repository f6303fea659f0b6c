"""Tests for the report lifecycle service."""
import datetime
from decimal import Decimal
from unittest import mock

import pytest
from django.utils import timezone
from freezegun import freeze_time

from django_activity_ledger.audit import AppendResult, AuditLedgerAppender
from django_activity_ledger.models import ActivityEntry, ActivityReport, LedgerCommit, ReportStatus
from django_activity_ledger.results import ErrorKind
from django_activity_ledger.services import (
    build_snapshot,
    create_entry,
    create_report,
    destroy_report,
    lock_report,
    submit_report,
    update_report,
)


class FailingAppender(AuditLedgerAppender):

    def append(self, snapshot):
        return AppendResult.fail("ledger offline")


class RaisingAppender(AuditLedgerAppender):

    def append(self, snapshot):
        raise ConnectionError("ledger offline")


class RecordingAppender(AuditLedgerAppender):

    def __init__(self):
        self.snapshots = []

    def append(self, snapshot):
        self.snapshots.append(snapshot)
        return AppendResult.ok("commit-1", "abc123")


@pytest.mark.django_db
class TestCreateReport:

    def test_creates_draft_with_zero_totals(self, user):
        result = create_report(user, {"month": 2, "year": 2024, "currency": "USD"})

        assert result.success
        report = ActivityReport.objects.get(pk=result.data["report"]["id"])
        assert report.owner == user
        assert report.status == ReportStatus.DRAFT
        assert report.currency == "USD"
        assert report.total_days == Decimal("0")
        assert report.total_amount_cents == 0

    def test_currency_defaults(self, user):
        result = create_report(user, {"month": 2, "year": 2024})
        assert result.data["report"]["currency"] == "EUR"

    def test_invalid_params(self, user):
        result = create_report(user, {"month": 13, "year": 2024})
        assert result.error_kind == ErrorKind.INVALID_PAYLOAD
        assert result.error.fields == ("month",)

    def test_duplicate_period_is_conflict(self, user, report):
        result = create_report(user, {"month": 1, "year": 2024})
        assert result.error_kind == ErrorKind.CONFLICT
        assert result.error.code == "duplicate_report"

    def test_deleted_report_frees_the_period(self, user, report):
        destroy_report(user, report)
        assert create_report(user, {"month": 1, "year": 2024}).success

    def test_other_users_may_share_a_period(self, other_user, report):
        assert create_report(other_user, {"month": 1, "year": 2024}).success

    def test_client_role_is_forbidden(self, client_user):
        result = create_report(client_user, {"month": 1, "year": 2024})
        assert result.error_kind == ErrorKind.FORBIDDEN

    def test_no_actor_is_forbidden(self):
        assert create_report(None, {"month": 1, "year": 2024}).error_kind == ErrorKind.FORBIDDEN


@pytest.mark.django_db
class TestSubmitReport:

    def test_scenario_a(self, user, work_item_a, work_item_b):
        """Two half days at different rates submit to 1 day / 650.00."""
        created = create_report(user, {"month": 1, "year": 2024, "currency": "EUR"})
        report = ActivityReport.objects.get(pk=created.data["report"]["id"])
        for work_item, price in ((work_item_a, 60000), (work_item_b, 70000)):
            assert create_entry(user, report, {
                "date": "2024-01-15",
                "quantity": "0.5",
                "unit_price_cents": price,
                "work_item_id": work_item.pk,
            }).success

        result = submit_report(user, report)

        assert result.success
        report.refresh_from_db()
        assert report.status == ReportStatus.SUBMITTED
        assert report.total_days == Decimal("1.00")
        assert report.total_amount_cents == 65000
        assert report.submitted_at is not None

    def test_submit_without_entries_is_invalid(self, user, report):
        result = submit_report(user, report)

        assert result.error_kind == ErrorKind.INVALID_PAYLOAD
        assert result.error.code == "no_entries"
        report.refresh_from_db()
        assert report.status == ReportStatus.DRAFT

    def test_resubmit_is_conflict(self, user, submitted_report):
        assert submit_report(user, submitted_report).error_kind == ErrorKind.CONFLICT

    def test_submit_uses_fresh_row_state(self, user, submitted_report):
        """A stale in-memory draft still sees the committed status."""
        stale = ActivityReport.objects.get(pk=submitted_report.pk)
        stale.status = ReportStatus.DRAFT

        assert submit_report(user, stale).error_kind == ErrorKind.CONFLICT

    def test_non_owner_is_forbidden(self, other_user, report):
        assert submit_report(other_user, report).error_kind == ErrorKind.FORBIDDEN


@pytest.mark.django_db
class TestLockReport:

    def test_lock_appends_commit(self, user, submitted_report):
        result = lock_report(user, submitted_report)

        assert result.success
        submitted_report.refresh_from_db()
        assert submitted_report.status == ReportStatus.LOCKED
        assert submitted_report.locked_at is not None
        commit = LedgerCommit.objects.get(report=submitted_report)
        assert result.data["digest"] == commit.digest
        assert commit.payload["report_id"] == str(submitted_report.pk)
        assert commit.payload["status"] == "locked"

    def test_draft_cannot_be_locked(self, user, report):
        result = lock_report(user, report)
        assert result.error_kind == ErrorKind.CONFLICT
        assert not LedgerCommit.objects.exists()

    def test_relock_is_conflict(self, user, submitted_report):
        lock_report(user, submitted_report)
        assert lock_report(user, submitted_report).error_kind == ErrorKind.CONFLICT
        assert LedgerCommit.objects.count() == 1

    @pytest.mark.parametrize("appender", [FailingAppender(), RaisingAppender()])
    def test_append_failure_leaves_report_submitted(self, user, submitted_report, appender):
        before = (submitted_report.total_days, submitted_report.total_amount_cents)

        result = lock_report(user, submitted_report, appender=appender)

        assert result.error_kind == ErrorKind.INTERNAL_ERROR
        assert result.error.code == "audit_append_failed"
        submitted_report.refresh_from_db()
        assert submitted_report.status == ReportStatus.SUBMITTED
        assert submitted_report.locked_at is None
        assert (submitted_report.total_days, submitted_report.total_amount_cents) == before

    def test_status_save_failure_rolls_back_commit(self, user, submitted_report):
        with mock.patch.object(ActivityReport, "save", side_effect=RuntimeError("disk full")):
            result = lock_report(user, submitted_report)

        assert result.error_kind == ErrorKind.INTERNAL_ERROR
        assert not LedgerCommit.objects.exists()
        submitted_report.refresh_from_db()
        assert submitted_report.status == ReportStatus.SUBMITTED

    @freeze_time("2024-02-01 09:30:00")
    def test_snapshot_contents(self, user, submitted_report):
        appender = RecordingAppender()

        lock_report(user, submitted_report, appender=appender)

        [snapshot] = appender.snapshots
        assert snapshot["locked_at"] == "2024-02-01T09:30:00+00:00"
        assert snapshot["totals"] == {"total_days": "1.00", "total_amount_cents": 50000}
        assert snapshot["owner_id"] == str(user.pk)
        assert len(snapshot["entries"]) == 1
        assert snapshot["entries"][0]["line_total_cents"] == 50000

    def test_snapshot_is_deterministic(self, user, report, work_item_a, work_item_b, make_entry):
        make_entry(report, work_item_b, date=datetime.date(2024, 1, 20))
        make_entry(report, work_item_a, date=datetime.date(2024, 1, 5))
        make_entry(report, work_item_a, date=datetime.date(2024, 1, 20))
        locked_at = timezone.now()

        first = build_snapshot(report, locked_at)
        second = build_snapshot(ActivityReport.objects.get(pk=report.pk), locked_at)

        assert first == second
        assert first["work_item_ids"] == sorted([str(work_item_a.pk), str(work_item_b.pk)])
        assert [e["date"] for e in first["entries"]] == ["2024-01-05", "2024-01-20", "2024-01-20"]


@pytest.mark.django_db
class TestUpdateReport:

    def test_update_draft_fields(self, user, report):
        result = update_report(user, report, {"description": "January work", "currency": "GBP"})

        assert result.success
        report.refresh_from_db()
        assert report.description == "January work"
        assert report.currency == "GBP"

    def test_locked_report_rejects_any_patch(self, user, submitted_report):
        """Scenario B."""
        lock_report(user, submitted_report)

        for patch in ({"description": "late edit"}, {}, {"status": "draft"}, {"month": 99}):
            result = update_report(user, submitted_report, patch)
            assert result.error_kind == ErrorKind.CONFLICT

        submitted_report.refresh_from_db()
        assert submitted_report.status == ReportStatus.LOCKED

    def test_empty_patch_is_invalid_payload(self, user, report):
        result = update_report(user, report, {})
        assert result.error_kind == ErrorKind.INVALID_PAYLOAD

    def test_invalid_field_is_invalid_payload(self, user, report):
        result = update_report(user, report, {"month": 0})
        assert result.error_kind == ErrorKind.INVALID_PAYLOAD

    def test_unknown_status_is_invalid_transition(self, user, report):
        result = update_report(user, report, {"status": "archived"})
        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        assert result.error.code == "unknown_status"

    def test_draft_cannot_skip_to_locked(self, user, report, work_item_a, make_entry):
        make_entry(report, work_item_a)

        result = update_report(user, report, {"status": "locked"})

        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        report.refresh_from_db()
        assert report.status == ReportStatus.DRAFT

    def test_submitted_cannot_return_to_draft(self, user, submitted_report):
        result = update_report(user, submitted_report, {"status": "draft"})

        assert result.error_kind == ErrorKind.INVALID_TRANSITION
        assert result.error.code == "status_change_not_allowed"

    def test_submitted_cannot_lock_through_update(self, user, submitted_report):
        result = update_report(user, submitted_report, {"status": "locked"})
        assert result.error.code == "status_change_not_allowed"

    def test_submitted_allows_non_status_fields(self, user, submitted_report):
        result = update_report(user, submitted_report, {"description": "Reviewed"})

        assert result.success
        submitted_report.refresh_from_db()
        assert submitted_report.description == "Reviewed"
        assert submitted_report.status == ReportStatus.SUBMITTED

    def test_draft_submit_through_update(self, user, report, work_item_a, make_entry):
        make_entry(report, work_item_a, quantity="2", unit_price_cents=40000)

        result = update_report(user, report, {"status": "submitted", "description": "Done"})

        assert result.success
        report.refresh_from_db()
        assert report.status == ReportStatus.SUBMITTED
        assert report.description == "Done"
        assert report.total_amount_cents == 80000

    def test_failed_submit_through_update_keeps_fields(self, user, report):
        result = update_report(user, report, {"status": "submitted", "description": "Done"})

        assert result.error_kind == ErrorKind.INVALID_PAYLOAD
        report.refresh_from_db()
        assert report.description == ""
        assert report.status == ReportStatus.DRAFT

    def test_resubmit_through_update_is_conflict(self, user, submitted_report):
        submitted_at = submitted_report.submitted_at

        result = update_report(user, submitted_report, {"status": "submitted"})

        assert result.error_kind == ErrorKind.CONFLICT
        assert result.error.code == "report_not_draft"
        submitted_report.refresh_from_db()
        assert submitted_report.submitted_at == submitted_at

    def test_resubmit_with_fields_changes_nothing(self, user, submitted_report):
        result = update_report(user, submitted_report, {"status": "submitted", "description": "again"})

        assert result.error_kind == ErrorKind.CONFLICT
        submitted_report.refresh_from_db()
        assert submitted_report.description == ""

    def test_draft_status_alone_is_invalid_payload(self, user, report):
        result = update_report(user, report, {"status": "draft"})

        assert result.error_kind == ErrorKind.INVALID_PAYLOAD
        assert result.error.fields == ("payload",)

    def test_draft_status_with_fields_keeps_draft(self, user, report):
        result = update_report(user, report, {"status": "draft", "description": "Still open"})

        assert result.success
        report.refresh_from_db()
        assert report.status == ReportStatus.DRAFT
        assert report.description == "Still open"

    def test_unknown_keys_only_is_invalid_payload(self, user, report):
        updated_at = report.updated_at

        result = update_report(user, report, {"descriptoin": "typo"})

        assert result.error_kind == ErrorKind.INVALID_PAYLOAD
        report.refresh_from_db()
        assert report.updated_at == updated_at

    def test_field_violations_are_reported_before_status(self, user, report):
        result = update_report(user, report, {"status": "bogus", "month": 13})

        assert result.error_kind == ErrorKind.INVALID_PAYLOAD
        assert result.error.fields == ("month",)

    def test_period_change_to_taken_period_is_conflict(self, user, report):
        create_report(user, {"month": 2, "year": 2024})
        result = update_report(user, report, {"month": 2})
        assert result.error_kind == ErrorKind.CONFLICT

    def test_non_owner_is_forbidden(self, other_user, report):
        assert update_report(other_user, report, {"description": "x"}).error_kind == ErrorKind.FORBIDDEN


@pytest.mark.django_db
class TestDestroyReport:

    def test_soft_deletes_report_and_entries(self, user, report, work_item_a, make_entry):
        entry = make_entry(report, work_item_a)

        result = destroy_report(user, report)

        assert result.success
        assert not ActivityReport.objects.filter(pk=report.pk).exists()
        assert ActivityReport.all_objects.filter(pk=report.pk).exists()
        assert ActivityEntry.all_objects.get(pk=entry.pk).is_deleted

    def test_submitted_report_is_conflict(self, user, submitted_report):
        assert destroy_report(user, submitted_report).error_kind == ErrorKind.CONFLICT


@pytest.mark.django_db
class TestStateMachine:

    def test_no_path_back_to_draft(self, user, submitted_report):
        lock_report(user, submitted_report)
        submitted_report.refresh_from_db()

        assert not submitted_report.can_transition_to(ReportStatus.DRAFT)
        assert not submitted_report.can_transition_to(ReportStatus.SUBMITTED)
        assert submit_report(user, submitted_report).error_kind == ErrorKind.CONFLICT
        assert update_report(user, submitted_report, {"status": "draft"}).error_kind == ErrorKind.CONFLICT
