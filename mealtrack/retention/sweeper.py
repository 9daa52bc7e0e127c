# -*- coding: utf-8 -*-
"""Retention — delete expired meal photos and clear their references.

Each candidate entry is handled on its own and yields a tagged :class:`RecordOutcome`;
nothing a single record does can abort the batch. Outcomes are folded into counts at the
end. The sweep holds no lock: it only selects entries that still carry a reference, so
running it twice (or concurrently) is harmless.

An entry's reference is cleared only after its object is confirmed gone. If the delete
fails the reference stays, and the next sweep retries that entry instead of leaving an
orphaned, unreferenced photo behind.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from ..docstore import DocumentStore, EntryRecord, utc_now
from ..objects.storage import ObjectNotFoundError, ObjectStore, extract_object_path
from .models import CleanupSummary, DryRunSummary
from .policy import AVERAGE_IMAGE_SIZE_BYTES, DEFAULT_POLICY, MAX_RETENTION_DAYS

logger = logging.getLogger(__name__)

SCHEDULED_RETENTION_DAYS = 90


class OutcomeStatus(str, Enum):
    deleted = "deleted"
    # The object was already gone; the dangling reference was cleared.
    object_missing = "object_missing"
    skipped_unparsable = "skipped_unparsable"
    storage_error = "storage_error"
    database_error = "database_error"

    @property
    def is_success(self) -> bool:
        return self in (OutcomeStatus.deleted, OutcomeStatus.object_missing)


@dataclass(frozen=True)
class RecordOutcome:
    entry_id: str
    status: OutcomeStatus
    object_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SweepReport:
    """Aggregated outcome of a sweep over one or more users."""

    cutoff: datetime
    users_scanned: int = 0
    candidates: int = 0
    deleted_count: int = 0
    error_count: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)

    def add_outcomes(self, outcomes: Iterable[RecordOutcome]) -> None:
        counts = Counter(o.status.value for o in outcomes)
        for status, count in counts.items():
            self.by_status[status] = self.by_status.get(status, 0) + count
            self.candidates += count
            if OutcomeStatus(status).is_success:
                self.deleted_count += count
            else:
                self.error_count += count

    @property
    def estimated_space_saved(self) -> int:
        return self.deleted_count * AVERAGE_IMAGE_SIZE_BYTES


def compute_cutoff(retention_days: int, now: Optional[datetime] = None) -> datetime:
    """``now`` minus the retention window, in UTC; naive datetimes are taken as UTC."""
    days = int(retention_days)
    if not 0 <= days <= MAX_RETENTION_DAYS:
        raise ValueError(f"retention_days must be between 0 and {MAX_RETENTION_DAYS}")
    now = now or utc_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc) - timedelta(days=days)


class RetentionSweeper:
    def __init__(
        self,
        documents: DocumentStore,
        objects: ObjectStore,
        *,
        batch_size: int = DEFAULT_POLICY.cleanup_batch_size,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.documents = documents
        self.objects = objects
        self.batch_size = batch_size

    async def find_candidates(self, user_id: str, cutoff: datetime) -> List[EntryRecord]:
        entries = await self.documents.find_image_entries(user_id, created_before=cutoff)
        return [e for e in entries if e.image_ref]

    async def sweep_user(
        self,
        user_id: str,
        *,
        retention_days: int = SCHEDULED_RETENTION_DAYS,
        dry_run: bool = True,
        now: Optional[datetime] = None,
    ) -> Union[DryRunSummary, CleanupSummary]:
        cutoff = compute_cutoff(retention_days, now)
        candidates = await self.find_candidates(user_id, cutoff)

        if dry_run:
            logger.info(
                "dry-run for user %s: %d images older than %s", user_id, len(candidates), cutoff.isoformat()
            )
            return DryRunSummary(
                files_found=len(candidates),
                estimated_space_saved=len(candidates) * AVERAGE_IMAGE_SIZE_BYTES,
                cutoff_date=cutoff.isoformat(),
            )

        report = SweepReport(cutoff=cutoff, users_scanned=1)
        report.add_outcomes(await self.process_entries(candidates, now=now))
        logger.info(
            "cleanup for user %s finished: deleted=%d errors=%d",
            user_id,
            report.deleted_count,
            report.error_count,
        )
        return CleanupSummary(
            deleted_count=report.deleted_count,
            error_count=report.error_count,
            estimated_space_saved=report.estimated_space_saved,
        )

    async def sweep_all(
        self,
        *,
        retention_days: int = SCHEDULED_RETENTION_DAYS,
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> SweepReport:
        """Apply one cutoff to every user. Failures are counted, never raised per user."""
        cutoff = compute_cutoff(retention_days, now)
        logger.info("Starting cleanup of images older than %s", cutoff.isoformat())

        report = SweepReport(cutoff=cutoff)
        for user_id in await self.documents.list_user_ids():
            report.users_scanned += 1
            try:
                candidates = await self.find_candidates(user_id, cutoff)
            except Exception:
                logger.exception("Error processing user %s", user_id)
                report.error_count += 1
                continue
            if dry_run:
                report.candidates += len(candidates)
                continue
            report.add_outcomes(await self.process_entries(candidates, now=now))

        logger.info(
            "Cleanup completed. Users: %d, candidates: %d, deleted: %d, errors: %d",
            report.users_scanned,
            report.candidates,
            report.deleted_count,
            report.error_count,
        )
        return report

    async def process_entries(
        self, entries: List[EntryRecord], *, now: Optional[datetime] = None
    ) -> List[RecordOutcome]:
        outcomes: List[RecordOutcome] = []
        for start in range(0, len(entries), self.batch_size):
            batch = entries[start : start + self.batch_size]
            outcomes.extend(await asyncio.gather(*(self.process_entry(e, now=now) for e in batch)))
        return outcomes

    async def process_entry(self, entry: EntryRecord, *, now: Optional[datetime] = None) -> RecordOutcome:
        object_path = extract_object_path(entry.image_ref)
        if not object_path:
            logger.warning("Skipping entry %s: unparsable image reference %r", entry.entry_id, entry.image_ref)
            return RecordOutcome(entry.entry_id, OutcomeStatus.skipped_unparsable)

        status = OutcomeStatus.deleted
        try:
            await self.objects.delete(object_path)
        except ObjectNotFoundError:
            status = OutcomeStatus.object_missing
        except Exception as exc:
            logger.error("Error deleting image %s for entry %s: %s", object_path, entry.entry_id, exc)
            return RecordOutcome(entry.entry_id, OutcomeStatus.storage_error, object_path, str(exc))

        try:
            await self.documents.clear_entry_image(entry.user_id, entry.entry_id, now or utc_now())
        except Exception as exc:
            logger.error("Error clearing image reference for entry %s: %s", entry.entry_id, exc)
            return RecordOutcome(entry.entry_id, OutcomeStatus.database_error, object_path, str(exc))

        logger.info("Deleted image: %s", object_path)
        return RecordOutcome(entry.entry_id, status, object_path)
