# -*- coding: utf-8 -*-
"""Retention — per-user storage usage statistics and recommendations."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from ..docstore import DocumentStore, EntryRecord, utc_now
from .models import FilesByAge, StorageUsageStats
from .policy import AVERAGE_IMAGE_SIZE_BYTES, estimate_monthly_cost

# Recommendation thresholds.
_MANY_RECENT_IMAGES = 100
_MONTHLY_COST_ALERT_USD = 5.0
_MANY_IMAGES = 1000


def compute_usage_stats(entries: Iterable[EntryRecord], now: datetime) -> StorageUsageStats:
    """Bucket image-bearing entries by age relative to ``now``.

    Entries without an image reference or without a creation timestamp are not counted.
    """
    thirty_days_ago = now - timedelta(days=30)
    ninety_days_ago = now - timedelta(days=90)
    one_year_ago = now - timedelta(days=365)

    buckets = FilesByAge()
    total = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None

    for entry in entries:
        created_at = entry.created_at
        if not entry.image_ref or created_at is None:
            continue
        total += 1
        if oldest is None or created_at < oldest:
            oldest = created_at
        if newest is None or created_at > newest:
            newest = created_at

        if created_at >= thirty_days_ago:
            buckets.last_30_days += 1
        elif created_at >= ninety_days_ago:
            buckets.last_90_days += 1
        elif created_at >= one_year_ago:
            buckets.last_365_days += 1
        else:
            buckets.older += 1

    return StorageUsageStats(
        total_files=total,
        total_size_bytes=total * AVERAGE_IMAGE_SIZE_BYTES,
        oldest_file_date=oldest,
        newest_file_date=newest,
        files_by_age=buckets,
    )


def generate_recommendations(stats: StorageUsageStats) -> List[str]:
    recommendations: List[str] = []

    if stats.files_by_age.older > 0:
        recommendations.append(
            f"You have {stats.files_by_age.older} images older than 1 year. "
            "Consider deleting them to save storage costs."
        )

    if stats.files_by_age.last_365_days > _MANY_RECENT_IMAGES:
        recommendations.append(
            "You have many images from the past year. Consider setting up automatic cleanup to manage costs."
        )

    monthly_cost = estimate_monthly_cost(stats.total_size_bytes)
    if monthly_cost > _MONTHLY_COST_ALERT_USD:
        recommendations.append(
            f"Your estimated storage cost is ${monthly_cost:.2f}/month. Consider implementing automatic cleanup."
        )

    if stats.total_files > _MANY_IMAGES:
        recommendations.append(
            "Consider reducing image quality or size to minimize storage costs while maintaining usability."
        )

    return recommendations


class StorageUsageAnalyzer:
    def __init__(self, documents: DocumentStore) -> None:
        self.documents = documents

    async def analyze(
        self, user_id: str, *, now: Optional[datetime] = None
    ) -> Tuple[StorageUsageStats, List[str]]:
        entries = await self.documents.find_image_entries(user_id)
        stats = compute_usage_stats(entries, now or utc_now())
        return stats, generate_recommendations(stats)
