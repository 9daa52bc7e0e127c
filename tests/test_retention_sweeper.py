# -*- coding: utf-8 -*-

from __future__ import annotations

import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, patch

from mealtrack.auth.storage import create_user
from mealtrack.docstore import EntryRecord, SqliteDocumentStore
from mealtrack.objects.storage import LocalObjectStore, ObjectStoreError
from mealtrack.retention.models import CleanupSummary, DryRunSummary
from mealtrack.retention.policy import AVERAGE_IMAGE_SIZE_BYTES, MAX_RETENTION_DAYS
from mealtrack.retention.sweeper import OutcomeStatus, RetentionSweeper, compute_cutoff

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class SweeperTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="mealtrack-sweep-"))
        self.db_path = self._tmp / "mealtrack.db"
        self.documents = SqliteDocumentStore(self.db_path)
        self.objects = LocalObjectStore(self._tmp / "objects", bucket="bkt", base_url="http://test/objects")
        self.sweeper = RetentionSweeper(self.documents, self.objects)
        self.user_id = self.make_user("owner@example.com")

    async def asyncTearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    def make_user(self, email: str) -> str:
        return create_user(email=email, password_hash="x", db_path=self.db_path)["id"]

    async def add_entry(
        self,
        entry_id: str,
        age_days: float,
        *,
        user_id: Optional[str] = None,
        with_object: bool = True,
        image_ref: Optional[str] = None,
    ) -> EntryRecord:
        owner = user_id or self.user_id
        path = f"users/{owner}/entries/{entry_id}.jpg"
        if with_object:
            ref = await self.objects.put(path, b"jpeg-bytes", content_type="image/jpeg")
        else:
            ref = self.objects.image_ref(path)
        entry = EntryRecord(
            entry_id=entry_id,
            user_id=owner,
            created_at=NOW - timedelta(days=age_days),
            image_ref=image_ref if image_ref is not None else ref,
            meal_type="lunch",
        )
        await self.documents.insert_entry(entry)
        return entry

    async def image_ref_of(self, entry_id: str, user_id: Optional[str] = None) -> Optional[str]:
        entry = await self.documents.get_entry(user_id or self.user_id, entry_id)
        assert entry is not None
        return entry.image_ref


class TestDryRun(SweeperTestCase):
    async def test_reports_without_mutating(self) -> None:
        for i in range(3):
            await self.add_entry(f"old-{i}", 100 + i)
        for i in range(2):
            await self.add_entry(f"new-{i}", 10 + i)

        with patch.object(self.objects, "delete", AsyncMock()) as delete, patch.object(
            self.documents, "clear_entry_image", AsyncMock()
        ) as clear:
            summary = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=True, now=NOW)

        self.assertIsInstance(summary, DryRunSummary)
        assert isinstance(summary, DryRunSummary)
        self.assertEqual(summary.action, "dry-run")
        self.assertEqual(summary.files_found, 3)
        self.assertEqual(summary.estimated_space_saved, 3 * AVERAGE_IMAGE_SIZE_BYTES)
        self.assertEqual(summary.cutoff_date, (NOW - timedelta(days=90)).isoformat())
        delete.assert_not_called()
        clear.assert_not_called()
        self.assertTrue(await self.objects.exists(f"users/{self.user_id}/entries/old-0.jpg"))

    async def test_defaults_to_dry_run(self) -> None:
        await self.add_entry("old", 120)
        summary = await self.sweeper.sweep_user(self.user_id, now=NOW)
        self.assertEqual(summary.action, "dry-run")
        self.assertIsNotNone(await self.image_ref_of("old"))

    async def test_cutoff_is_strict(self) -> None:
        await self.add_entry("exactly-90", 90)
        summary = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=True, now=NOW)
        self.assertEqual(summary.files_found, 0)


class TestCleanup(SweeperTestCase):
    async def test_malformed_reference_counts_as_error(self) -> None:
        await self.add_entry("good", 120)
        await self.add_entry("bad", 120, with_object=False, image_ref="https://example.com/photo.jpg")

        summary = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)

        self.assertIsInstance(summary, CleanupSummary)
        assert isinstance(summary, CleanupSummary)
        self.assertEqual(summary.action, "cleanup-completed")
        self.assertEqual(summary.deleted_count, 1)
        self.assertEqual(summary.error_count, 1)
        self.assertEqual(summary.deleted_count + summary.error_count, 2)
        self.assertEqual(summary.estimated_space_saved, AVERAGE_IMAGE_SIZE_BYTES)

        self.assertFalse(await self.objects.exists(f"users/{self.user_id}/entries/good.jpg"))
        self.assertIsNone(await self.image_ref_of("good"))
        self.assertEqual(await self.image_ref_of("bad"), "https://example.com/photo.jpg")

        good = await self.documents.get_entry(self.user_id, "good")
        assert good is not None
        self.assertEqual(good.image_deleted_at, NOW)

    async def test_rerun_is_a_no_op(self) -> None:
        for i in range(3):
            await self.add_entry(f"old-{i}", 200)
        first = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)
        self.assertEqual(first.deleted_count, 3)

        self.assertEqual(await self.sweeper.find_candidates(self.user_id, NOW - timedelta(days=90)), [])
        second = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)
        self.assertEqual((second.deleted_count, second.error_count), (0, 0))

    async def test_storage_failure_keeps_reference(self) -> None:
        for name in ("a", "b", "c"):
            await self.add_entry(name, 150)
        failing_path = f"users/{self.user_id}/entries/b.jpg"
        real_delete = self.objects.delete

        async def flaky_delete(object_path: str) -> None:
            if object_path == failing_path:
                raise ObjectStoreError("backend unavailable")
            await real_delete(object_path)

        with patch.object(self.objects, "delete", side_effect=flaky_delete):
            summary = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)

        self.assertEqual((summary.deleted_count, summary.error_count), (2, 1))
        self.assertIsNone(await self.image_ref_of("a"))
        self.assertIsNone(await self.image_ref_of("c"))
        self.assertIsNotNone(await self.image_ref_of("b"))
        self.assertTrue(await self.objects.exists(failing_path))

        # The next run picks the failed record up again.
        retry = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)
        self.assertEqual((retry.deleted_count, retry.error_count), (1, 0))
        self.assertIsNone(await self.image_ref_of("b"))

    async def test_database_failure_is_isolated(self) -> None:
        await self.add_entry("a", 150)
        await self.add_entry("b", 150)
        real_clear = self.documents.clear_entry_image

        async def flaky_clear(user_id: str, entry_id: str, deleted_at: datetime) -> bool:
            if entry_id == "a":
                raise RuntimeError("write failed")
            return await real_clear(user_id, entry_id, deleted_at)

        with patch.object(self.documents, "clear_entry_image", side_effect=flaky_clear):
            outcomes = await self.sweeper.process_entries(
                await self.sweeper.find_candidates(self.user_id, NOW - timedelta(days=90)), now=NOW
            )

        statuses = {o.entry_id: o.status for o in outcomes}
        self.assertEqual(statuses, {"a": OutcomeStatus.database_error, "b": OutcomeStatus.deleted})
        self.assertIsNotNone(await self.image_ref_of("a"))
        self.assertIsNone(await self.image_ref_of("b"))

    async def test_missing_object_still_clears_reference(self) -> None:
        await self.add_entry("gone", 150, with_object=False)
        outcome = await self.sweeper.process_entry(
            (await self.sweeper.find_candidates(self.user_id, NOW))[0], now=NOW
        )
        self.assertEqual(outcome.status, OutcomeStatus.object_missing)
        self.assertIsNone(await self.image_ref_of("gone"))

        summary = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)
        self.assertEqual(summary.deleted_count, 0)

    async def test_batches_cover_every_candidate(self) -> None:
        sweeper = RetentionSweeper(self.documents, self.objects, batch_size=2)
        for i in range(5):
            await self.add_entry(f"old-{i}", 100)
        summary = await sweeper.sweep_user(self.user_id, retention_days=90, dry_run=False, now=NOW)
        self.assertEqual(summary.deleted_count, 5)

    def test_batch_size_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            RetentionSweeper(self.documents, self.objects, batch_size=0)


class TestCutoff(SweeperTestCase):
    def test_rejects_windows_out_of_range(self) -> None:
        self.assertEqual(compute_cutoff(MAX_RETENTION_DAYS, NOW), NOW - timedelta(days=MAX_RETENTION_DAYS))
        for days in (-1, MAX_RETENTION_DAYS + 1, 1_000_000):
            with self.subTest(days=days):
                with self.assertRaises(ValueError):
                    compute_cutoff(days, NOW)

    async def test_oversized_window_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            await self.sweeper.sweep_user(self.user_id, retention_days=1_000_000, dry_run=True, now=NOW)

    async def test_naive_now_is_treated_as_utc(self) -> None:
        await self.add_entry("old", 120)
        naive_now = NOW.replace(tzinfo=None)
        self.assertEqual(compute_cutoff(90, naive_now), NOW - timedelta(days=90))

        summary = await self.sweeper.sweep_user(self.user_id, retention_days=90, dry_run=True, now=naive_now)
        self.assertEqual(summary.files_found, 1)

        report = await self.sweeper.sweep_all(now=naive_now)
        self.assertEqual(report.deleted_count, 1)


class TestScheduledSweep(SweeperTestCase):
    async def test_sweeps_every_user_with_one_cutoff(self) -> None:
        other = self.make_user("other@example.com")
        await self.add_entry("mine-old", 91)
        await self.add_entry("mine-new", 89)
        await self.add_entry("theirs-old", 400, user_id=other)
        await self.add_entry("theirs-bad", 400, user_id=other, with_object=False, image_ref="garbage")

        report = await self.sweeper.sweep_all(now=NOW)

        self.assertEqual(report.cutoff, NOW - timedelta(days=90))
        self.assertEqual(report.users_scanned, 2)
        self.assertEqual(report.candidates, 3)
        self.assertEqual((report.deleted_count, report.error_count), (2, 1))
        self.assertEqual(report.by_status, {"deleted": 2, "skipped_unparsable": 1})
        self.assertIsNone(await self.image_ref_of("mine-old"))
        self.assertIsNotNone(await self.image_ref_of("mine-new"))
        self.assertIsNone(await self.image_ref_of("theirs-old", other))

    async def test_dry_run_counts_only(self) -> None:
        await self.add_entry("old", 120)
        report = await self.sweeper.sweep_all(dry_run=True, now=NOW)
        self.assertEqual((report.candidates, report.deleted_count), (1, 0))
        self.assertIsNotNone(await self.image_ref_of("old"))

    async def test_failing_user_does_not_stop_the_sweep(self) -> None:
        other = self.make_user("other@example.com")
        await self.add_entry("mine", 120)
        await self.add_entry("theirs", 120, user_id=other)
        real_find = self.documents.find_image_entries

        async def flaky_find(user_id: str, *, created_before=None):
            if user_id == self.user_id:
                raise RuntimeError("query failed")
            return await real_find(user_id, created_before=created_before)

        with patch.object(self.documents, "find_image_entries", side_effect=flaky_find):
            report = await self.sweeper.sweep_all(now=NOW)

        self.assertEqual((report.deleted_count, report.error_count), (1, 1))
        self.assertIsNone(await self.image_ref_of("theirs", other))
        self.assertIsNotNone(await self.image_ref_of("mine"))


if __name__ == "__main__":
    unittest.main()
