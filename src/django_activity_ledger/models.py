"""Models for django-activity-ledger.

Relation-driven layout: reports, entries and work items never point at each
other directly. Every association is a row in an explicit join table:

- ReportEntryLink: report <-> entry (an entry belongs to at most one report)
- EntryWorkItemLink: entry <-> work item (an entry bills at most one work item)
- ReportWorkItemLink: report <-> work item (maintained by the linker service)

Aggregation walks these rows; there is no cached owner pointer on a leaf row.

BusinessContext, ContextMembership and WorkItemContext are the read model of
the default access provider. Nothing in this package writes them.
"""

import json
import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_activity_ledger.money import line_total_cents


class LedgerBaseModel(models.Model):
    """Base model with UUID PK and timestamps."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class SoftDeleteManager(models.Manager):
    """Manager that excludes soft-deleted objects by default.

    Use .with_deleted() to include soft-deleted objects.
    """

    def get_queryset(self):
        """Return only non-deleted objects."""
        return super().get_queryset().filter(deleted_at__isnull=True)

    def with_deleted(self):
        """Include soft-deleted objects in queryset."""
        return super().get_queryset()


class SoftDeleteModel(models.Model):
    """Abstract base model with soft delete functionality.

    Attributes:
        deleted_at: Timestamp when soft-deleted, None if active
        objects: Manager that excludes deleted records
        all_objects: Manager that includes all records
    """

    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True

    def delete(self, using=None, keep_parents=False):
        """Soft delete the object by setting deleted_at timestamp."""
        self.soft_delete()

    def soft_delete(self, at=None):
        self.deleted_at = at or timezone.now()
        self.save(update_fields=["deleted_at", "updated_at"])

    @property
    def is_deleted(self):
        """Check if object is soft-deleted."""
        return self.deleted_at is not None


# =============================================================================
# Access context (read model)
# =============================================================================


class BusinessContext(LedgerBaseModel):
    """An organization in which users hold roles (e.g. a contractor's company)."""

    name = models.CharField(max_length=255)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class ContextMembership(LedgerBaseModel):
    """A user's role inside a business context."""

    class Role(models.TextChoices):
        INDEPENDENT = "independent", "Independent"
        CLIENT = "client", "Client"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="ledger_memberships",
    )
    context = models.ForeignKey(
        BusinessContext,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(max_length=20, choices=Role.choices)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "context"],
                name="ledger_membership_unique_user_context",
            ),
        ]

    def __str__(self):
        return f"{self.user} @ {self.context} ({self.role})"


class WorkItem(LedgerBaseModel, SoftDeleteModel):
    """The engagement (mission) an activity entry is billed against."""

    name = models.CharField(max_length=255)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class WorkItemContext(models.Model):
    """Join row: the business contexts a work item is run under."""

    work_item = models.ForeignKey(
        WorkItem,
        on_delete=models.CASCADE,
        related_name="context_links",
    )
    context = models.ForeignKey(
        BusinessContext,
        on_delete=models.CASCADE,
        related_name="work_item_links",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["work_item", "context"],
                name="ledger_work_item_context_unique",
            ),
        ]


# =============================================================================
# Reports and entries
# =============================================================================


class ReportStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    SUBMITTED = "submitted", "Submitted"
    LOCKED = "locked", "Locked"


# The only legal forward moves. Nothing leads back to draft.
ALLOWED_TRANSITIONS = {
    ReportStatus.DRAFT: ReportStatus.SUBMITTED,
    ReportStatus.SUBMITTED: ReportStatus.LOCKED,
}


class ActivityReport(LedgerBaseModel, SoftDeleteModel):
    """
    Monthly activity report owned by one user.

    Key invariants:
    - total_days / total_amount_cents equal the sums over active linked
      entries; only the aggregation service writes them
    - status only moves draft -> submitted -> locked
    - at most one active report per (owner, month, year)
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="activity_reports",
    )
    month = models.PositiveSmallIntegerField()
    year = models.PositiveSmallIntegerField()
    currency = models.CharField(max_length=3)
    status = models.CharField(
        max_length=20,
        choices=ReportStatus.choices,
        default=ReportStatus.DRAFT,
        db_index=True,
    )
    description = models.TextField(blank=True, default="")

    total_days = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount_cents = models.BigIntegerField(default=0)

    submitted_at = models.DateTimeField(null=True, blank=True)
    locked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-year", "-month", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["owner", "month", "year"],
                condition=Q(deleted_at__isnull=True),
                name="activity_report_unique_active_period",
            ),
        ]
        indexes = [
            models.Index(fields=["owner", "year", "month"], name="ledger_report_owner_period"),
        ]

    def __str__(self):
        return f"ActivityReport({self.month:02d}/{self.year}, {self.status}, {self.pk})"

    @property
    def is_draft(self) -> bool:
        return self.status == ReportStatus.DRAFT

    @property
    def is_submitted(self) -> bool:
        return self.status == ReportStatus.SUBMITTED

    @property
    def is_locked(self) -> bool:
        return self.status == ReportStatus.LOCKED

    def can_transition_to(self, new_status: str) -> bool:
        return ALLOWED_TRANSITIONS.get(self.status) == new_status


class ActivityEntry(LedgerBaseModel, SoftDeleteModel):
    """
    A dated line billing a quantity of days at a unit price.

    line_total_cents is derived from quantity and unit_price_cents and is
    written by the entry service together with them.
    """

    date = models.DateField(db_index=True)
    quantity = models.DecimalField(max_digits=10, decimal_places=2)
    unit_price_cents = models.BigIntegerField()
    line_total_cents = models.BigIntegerField(default=0)
    description = models.CharField(max_length=500, blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="activity_entries",
    )

    class Meta:
        ordering = ["date", "created_at"]
        verbose_name_plural = "activity entries"

    def __str__(self):
        return f"{self.date} - {self.quantity} days @ {self.unit_price_cents}c"

    def compute_line_total(self) -> int:
        return line_total_cents(self.quantity, self.unit_price_cents)


class ReportEntryLink(models.Model):
    """Join row: entry belongs to report."""

    report = models.ForeignKey(
        ActivityReport,
        on_delete=models.CASCADE,
        related_name="entry_links",
    )
    entry = models.ForeignKey(
        ActivityEntry,
        on_delete=models.CASCADE,
        related_name="report_links",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["entry"], name="ledger_report_entry_unique_entry"),
        ]


class EntryWorkItemLink(models.Model):
    """Join row: entry is billed against work item."""

    entry = models.ForeignKey(
        ActivityEntry,
        on_delete=models.CASCADE,
        related_name="work_item_links",
    )
    work_item = models.ForeignKey(
        WorkItem,
        on_delete=models.CASCADE,
        related_name="entry_links",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["entry"], name="ledger_entry_work_item_unique_entry"),
        ]


class ReportWorkItemLink(models.Model):
    """Join row: work item appears in report. One row per pair."""

    report = models.ForeignKey(
        ActivityReport,
        on_delete=models.CASCADE,
        related_name="work_item_links",
    )
    work_item = models.ForeignKey(
        WorkItem,
        on_delete=models.CASCADE,
        related_name="report_links",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["report", "work_item"],
                name="ledger_report_work_item_unique",
            ),
        ]

    def __str__(self):
        return f"ReportWorkItemLink({self.report_id}, {self.work_item_id})"


# =============================================================================
# Audit ledger
# =============================================================================


class LedgerCommit(models.Model):
    """Immutable audit commit written when a report is locked.

    Commits form a hash chain: digest = sha256(previous_digest + payload).
    NOTE: Append-only. No soft delete, no updates.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    report = models.ForeignKey(
        ActivityReport,
        on_delete=models.PROTECT,
        related_name="ledger_commits",
    )
    sequence = models.PositiveBigIntegerField(unique=True)
    canonical_payload = models.TextField(
        help_text="Canonical JSON snapshot (sorted keys, no whitespace)",
    )
    digest = models.CharField(max_length=64, unique=True)
    previous_digest = models.CharField(max_length=64, blank=True, default="")
    committed_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["sequence"]
        constraints = [
            models.UniqueConstraint(fields=["report"], name="ledger_commit_unique_report"),
        ]

    def __str__(self):
        return f"LedgerCommit({self.sequence}, {self.digest[:12]})"

    @property
    def payload(self) -> dict:
        return json.loads(self.canonical_payload)

    def save(self, *args, **kwargs):
        # Append-only
        if LedgerCommit.objects.filter(pk=self.pk).exists():
            raise ValueError("Ledger commits are immutable and cannot be updated")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Ledger commits are immutable and cannot be deleted")
