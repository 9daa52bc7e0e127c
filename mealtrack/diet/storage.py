# -*- coding: utf-8 -*-
"""Diet — meal entries and their photos."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..docstore import DocumentStore, EntryRecord, utc_now
from ..objects.storage import ObjectStore, ObjectStoreError
from .models import DietEntry, FoodItem, NutritionTotals

logger = logging.getLogger(__name__)

_MIME_SUFFIX = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/heic": ".heic",
    "image/webp": ".webp",
}


def compute_totals(items: List[Dict[str, Any]]) -> NutritionTotals:
    calories = 0.0
    protein = 0.0
    carbs = 0.0
    fat = 0.0
    for item in items:
        calories += float(item.get("calories_kcal") or 0.0)
        protein += float(item.get("protein_g") or 0.0)
        carbs += float(item.get("carbs_g") or 0.0)
        fat += float(item.get("fat_g") or 0.0)
    return NutritionTotals(
        calories_kcal=round(calories, 1),
        protein_g=round(protein, 1),
        carbs_g=round(carbs, 1),
        fat_g=round(fat, 1),
    )


def photo_object_path(user_id: str, entry_id: str, image_mime: str) -> str:
    return f"users/{user_id}/entries/{entry_id}{_MIME_SUFFIX.get(image_mime, '.bin')}"


async def create_entry(
    documents: DocumentStore,
    objects: ObjectStore,
    *,
    user_id: str,
    meal_type: str,
    description: Optional[str],
    items: List[Dict[str, Any]],
    image_bytes: Optional[bytes] = None,
    image_mime: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EntryRecord:
    entry_id = str(uuid4())
    object_path: Optional[str] = None
    image_ref: Optional[str] = None
    if image_bytes is not None:
        mime = image_mime or "image/jpeg"
        object_path = photo_object_path(user_id, entry_id, mime)
        image_ref = await objects.put(object_path, image_bytes, content_type=mime)

    entry = EntryRecord(
        entry_id=entry_id,
        user_id=user_id,
        created_at=now or utc_now(),
        image_ref=image_ref,
        meal_type=meal_type,
        description=description,
        nutrition={"items": items, "totals": compute_totals(items).model_dump()},
    )
    try:
        await documents.insert_entry(entry)
    except Exception:
        if object_path is not None:
            await _discard_photo(objects, object_path)
        raise
    logger.info("created entry %s for user %s (photo=%s)", entry_id, user_id, bool(image_ref))
    return entry


async def _discard_photo(objects: ObjectStore, object_path: str) -> None:
    # An unreferenced photo is invisible to the retention sweep.
    try:
        await objects.delete(object_path)
    except ObjectStoreError as exc:
        logger.error("failed to remove orphaned photo %s: %s", object_path, exc)


def to_diet_entry(record: EntryRecord) -> DietEntry:
    items = [FoodItem.model_validate(i) for i in record.nutrition.get("items") or [] if isinstance(i, dict)]
    totals = record.nutrition.get("totals")
    return DietEntry(
        entry_id=record.entry_id,
        created_at=record.created_at,
        meal_type=record.meal_type,
        description=record.description,
        items=items,
        totals=NutritionTotals.model_validate(totals) if isinstance(totals, dict) else compute_totals([]),
        image_ref=record.image_ref,
        image_deleted_at=record.image_deleted_at,
    )
