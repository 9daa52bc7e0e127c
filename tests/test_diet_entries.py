# -*- coding: utf-8 -*-

from __future__ import annotations

import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, patch

from mealtrack.auth.storage import create_user
from mealtrack.diet.storage import create_entry, photo_object_path
from mealtrack.docstore import SqliteDocumentStore
from mealtrack.objects.storage import LocalObjectStore, ObjectStoreError, extract_object_path

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class TestCreateEntry(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = Path(tempfile.mkdtemp(prefix="mealtrack-entries-"))
        db_path = self._tmp / "mealtrack.db"
        self.documents = SqliteDocumentStore(db_path)
        self.objects = LocalObjectStore(self._tmp / "objects", bucket="bkt", base_url="http://test/objects")
        self.user_id = create_user(email="meals@example.com", password_hash="x", db_path=db_path)["id"]

    async def asyncTearDown(self) -> None:
        shutil.rmtree(self._tmp, ignore_errors=True)

    def _photo_files(self):
        return [p for p in (self._tmp / "objects").rglob("*") if p.is_file()]

    async def test_photo_entry_is_stored_and_referenced(self) -> None:
        entry = await create_entry(
            self.documents,
            self.objects,
            user_id=self.user_id,
            meal_type="breakfast",
            description="porridge",
            items=[{"name": "oats", "calories_kcal": 150}],
            image_bytes=b"png-bytes",
            image_mime="image/png",
            now=NOW,
        )

        path = extract_object_path(entry.image_ref)
        self.assertEqual(path, photo_object_path(self.user_id, entry.entry_id, "image/png"))
        self.assertTrue(path.endswith(".png"))
        self.assertTrue(await self.objects.exists(path))
        stored = await self.documents.get_entry(self.user_id, entry.entry_id)
        self.assertEqual(stored.image_ref, entry.image_ref)
        self.assertEqual(stored.nutrition["totals"]["calories_kcal"], 150.0)

    async def test_failed_insert_removes_uploaded_photo(self) -> None:
        with patch.object(self.documents, "insert_entry", AsyncMock(side_effect=RuntimeError("disk full"))):
            with self.assertRaises(RuntimeError):
                await create_entry(
                    self.documents,
                    self.objects,
                    user_id=self.user_id,
                    meal_type="lunch",
                    description=None,
                    items=[],
                    image_bytes=b"jpeg-bytes",
                    image_mime="image/jpeg",
                    now=NOW,
                )

        self.assertEqual(self._photo_files(), [])
        self.assertEqual(await self.documents.list_entries(self.user_id), [])

    async def test_cleanup_failure_keeps_original_error(self) -> None:
        with patch.object(self.documents, "insert_entry", AsyncMock(side_effect=RuntimeError("disk full"))), patch.object(
            self.objects, "delete", AsyncMock(side_effect=ObjectStoreError("unavailable"))
        ):
            with self.assertLogs("mealtrack.diet.storage", level="ERROR"):
                with self.assertRaises(RuntimeError):
                    await create_entry(
                        self.documents,
                        self.objects,
                        user_id=self.user_id,
                        meal_type="dinner",
                        description=None,
                        items=[],
                        image_bytes=b"jpeg-bytes",
                        now=NOW,
                    )


if __name__ == "__main__":
    unittest.main()
