"""Audit ledger appender.

Locking a report appends an immutable snapshot to an audit ledger. The
appender is pluggable through ACTIVITY_LEDGER_AUDIT_APPENDER; the default
writes hash-chained LedgerCommit rows in the same database.

Appending must be retry-safe: appending twice for the same report returns
the first commit instead of writing a second one.
"""

import datetime
import hashlib
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import DatabaseError, transaction

logger = logging.getLogger(__name__)


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    raise TypeError(f"Object of type {value.__class__.__name__} is not JSON serializable")


def canonical_json(snapshot: dict) -> str:
    """Serialize a snapshot deterministically (sorted keys, no whitespace)."""
    return json.dumps(snapshot, sort_keys=True, separators=(",", ":"), default=_json_default)


def chain_digest(previous_digest: str, canonical_payload: str) -> str:
    return hashlib.sha256((previous_digest + canonical_payload).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class AppendResult:
    """Result of an append.

    Attributes:
        success: True if the snapshot is durably recorded
        commit_id: Identifier of the ledger commit
        digest: Content digest of the commit
        error: Error description on failure
    """
    success: bool
    commit_id: Optional[str] = None
    digest: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, commit_id: str, digest: str) -> "AppendResult":
        return cls(success=True, commit_id=commit_id, digest=digest)

    @classmethod
    def fail(cls, error: str) -> "AppendResult":
        return cls(success=False, error=error)


class AuditLedgerAppender(ABC):
    """Interface for audit ledger backends."""

    @abstractmethod
    def append(self, snapshot: dict) -> AppendResult:
        """
        Record a locked report snapshot.

        Args:
            snapshot: Canonical report snapshot; must contain "report_id"

        Returns:
            AppendResult. A failed result aborts the lock.
        """


class DatabaseLedgerAppender(AuditLedgerAppender):
    """Append hash-chained LedgerCommit rows.

    digest = sha256(previous_digest + canonical_payload). The chain is
    serialized by locking the latest commit row.
    """

    def append(self, snapshot: dict) -> AppendResult:
        from django_activity_ledger.models import LedgerCommit

        report_id = snapshot.get("report_id")
        if not report_id:
            return AppendResult.fail("Snapshot has no report_id")

        try:
            payload = canonical_json(snapshot)
        except (TypeError, ValueError) as e:
            return AppendResult.fail(f"Snapshot is not serializable: {e}")

        try:
            with transaction.atomic():
                existing = LedgerCommit.objects.filter(report_id=report_id).first()
                if existing is not None:
                    logger.info("Ledger commit already present for report %s", report_id)
                    return AppendResult.ok(str(existing.pk), existing.digest)

                head = LedgerCommit.objects.select_for_update().order_by("-sequence").first()
                previous_digest = head.digest if head else ""
                commit = LedgerCommit.objects.create(
                    report_id=report_id,
                    sequence=(head.sequence + 1) if head else 1,
                    canonical_payload=payload,
                    digest=chain_digest(previous_digest, payload),
                    previous_digest=previous_digest,
                )
        except DatabaseError:
            logger.exception("Ledger append failed for report %s", report_id)
            return AppendResult.fail("Ledger append failed")

        logger.info("Appended ledger commit %s for report %s", commit.sequence, report_id)
        return AppendResult.ok(str(commit.pk), commit.digest)


def verify_chain() -> bool:
    """
    Recompute every digest in sequence order.

    Returns:
        True if no commit was altered and no link in the chain is broken
    """
    from django_activity_ledger.models import LedgerCommit

    previous_digest = ""
    for commit in LedgerCommit.objects.order_by("sequence").iterator():
        if commit.previous_digest != previous_digest:
            return False
        if chain_digest(previous_digest, commit.canonical_payload) != commit.digest:
            return False
        previous_digest = commit.digest
    return True
