# -*- coding: utf-8 -*-

import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from mealtrack.auth.storage import create_user
from mealtrack.docstore import EntryRecord, SqliteDocumentStore
from mealtrack.retention.analyzer import StorageUsageAnalyzer, compute_usage_stats, generate_recommendations
from mealtrack.retention.models import FilesByAge, StorageUsageStats
from mealtrack.retention.policy import AVERAGE_IMAGE_SIZE_BYTES

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _entry(entry_id, age_days, *, image_ref="http://x/v0/b/b/o/p.jpg?alt=media"):
    created_at = None if age_days is None else NOW - timedelta(days=age_days)
    return EntryRecord(entry_id=entry_id, user_id="u1", created_at=created_at, image_ref=image_ref)


class TestUsageStats(unittest.TestCase):
    def test_buckets_by_age(self):
        entries = [
            _entry("a", 1),
            _entry("b", 30),
            _entry("c", 31),
            _entry("d", 90),
            _entry("e", 200),
            _entry("f", 365),
            _entry("g", 400),
            _entry("h", 800),
        ]
        stats = compute_usage_stats(entries, NOW)

        self.assertEqual(stats.total_files, 8)
        self.assertEqual(stats.total_size_bytes, 8 * AVERAGE_IMAGE_SIZE_BYTES)
        self.assertEqual(stats.files_by_age, FilesByAge(last_30_days=2, last_90_days=2, last_365_days=2, older=2))
        self.assertEqual(stats.oldest_file_date, NOW - timedelta(days=800))
        self.assertEqual(stats.newest_file_date, NOW - timedelta(days=1))

    def test_bucket_sum_matches_total(self):
        entries = [_entry(str(i), i * 17) for i in range(40)]
        stats = compute_usage_stats(entries, NOW)
        buckets = stats.files_by_age
        self.assertEqual(
            buckets.last_30_days + buckets.last_90_days + buckets.last_365_days + buckets.older,
            stats.total_files,
        )

    def test_skips_entries_without_image_or_timestamp(self):
        entries = [_entry("a", 5), _entry("b", 5, image_ref=None), _entry("c", None)]
        stats = compute_usage_stats(entries, NOW)
        self.assertEqual(stats.total_files, 1)

    def test_empty(self):
        stats = compute_usage_stats([], NOW)
        self.assertEqual(stats.total_files, 0)
        self.assertIsNone(stats.oldest_file_date)
        self.assertIsNone(stats.newest_file_date)
        self.assertEqual(generate_recommendations(stats), [])

    def test_wire_names(self):
        payload = compute_usage_stats([_entry("a", 3)], NOW).model_dump(mode="json", by_alias=True)
        self.assertEqual(
            set(payload), {"totalFiles", "totalSizeBytes", "oldestFileDate", "newestFileDate", "filesByAge"}
        )
        self.assertEqual(payload["filesByAge"], {"last30Days": 1, "last90Days": 0, "last365Days": 0, "older": 0})


class TestRecommendations(unittest.TestCase):
    def _stats(self, total=0, **buckets):
        return StorageUsageStats(
            total_files=total,
            total_size_bytes=total * AVERAGE_IMAGE_SIZE_BYTES,
            files_by_age=FilesByAge(**buckets),
        )

    def test_old_images(self):
        recs = generate_recommendations(self._stats(total=4, older=4))
        self.assertEqual(
            recs, ["You have 4 images older than 1 year. Consider deleting them to save storage costs."]
        )

    def test_many_images_from_past_year(self):
        recs = generate_recommendations(self._stats(total=101, last_365_days=101))
        self.assertEqual(len(recs), 1)
        self.assertIn("many images from the past year", recs[0])

        self.assertEqual(generate_recommendations(self._stats(total=100, last_365_days=100)), [])

    def test_cost_and_volume(self):
        recs = generate_recommendations(self._stats(total=500000, last_30_days=500000))
        self.assertIn(
            "Your estimated storage cost is $6.20/month. Consider implementing automatic cleanup.", recs
        )
        self.assertIn(
            "Consider reducing image quality or size to minimize storage costs while maintaining usability.",
            recs,
        )

    def test_volume_threshold_is_exclusive(self):
        self.assertEqual(generate_recommendations(self._stats(total=1000, last_30_days=1000)), [])


class TestStorageUsageAnalyzer(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = Path(tempfile.mkdtemp(prefix="mealtrack-usage-"))
        self.documents = SqliteDocumentStore(self._tmp / "mealtrack.db")
        self.user_id = create_user(email="u@example.com", password_hash="x", db_path=self._tmp / "mealtrack.db")["id"]

    async def asyncTearDown(self):
        shutil.rmtree(self._tmp, ignore_errors=True)

    async def test_counts_only_entries_with_photos(self):
        for entry in (_entry("a", 10), _entry("b", 500), _entry("c", 10, image_ref=None)):
            entry.user_id = self.user_id
            await self.documents.insert_entry(entry)

        stats, recs = await StorageUsageAnalyzer(self.documents).analyze(self.user_id, now=NOW)

        self.assertEqual(stats.total_files, 2)
        self.assertEqual((stats.files_by_age.last_30_days, stats.files_by_age.older), (1, 1))
        self.assertEqual(len(recs), 1)

    async def test_unknown_user_has_no_usage(self):
        stats, recs = await StorageUsageAnalyzer(self.documents).analyze("nobody", now=NOW)
        self.assertEqual(stats.total_files, 0)
        self.assertEqual(recs, [])


if __name__ == "__main__":
    unittest.main()
