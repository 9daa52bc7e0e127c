# -*- coding: utf-8 -*-
"""Retention — per-tier image retention policies and the shared cost model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

# Per-object sizes are not cheaply queryable, so usage and savings are estimated from
# a fixed average photo size.
AVERAGE_IMAGE_SIZE_BYTES = 500 * 1024
STORAGE_PRICE_PER_GIB_MONTH = 0.026
ESTIMATED_IMAGES_PER_DAY = 5
_BYTES_PER_GIB = 1024 * 1024 * 1024

DEFAULT_TIER = "default"
# Upper bound for any retention window (100 years).
MAX_RETENTION_DAYS = 36500


@dataclass(frozen=True)
class RetentionPolicy:
    retention_days: int
    max_file_size_bytes: int
    image_quality: float
    max_image_width: int
    cleanup_batch_size: int
    enable_automatic_cleanup: bool
    cleanup_schedule: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "retentionDays": self.retention_days,
            "maxFileSizeBytes": self.max_file_size_bytes,
            "imageQuality": self.image_quality,
            "maxImageWidth": self.max_image_width,
            "cleanupBatchSize": self.cleanup_batch_size,
            "enableAutomaticCleanup": self.enable_automatic_cleanup,
            "cleanupSchedule": self.cleanup_schedule,
        }


DEFAULT_POLICY = RetentionPolicy(
    retention_days=90,
    max_file_size_bytes=10 * 1024 * 1024,
    image_quality=0.9,
    max_image_width=1920,
    cleanup_batch_size=100,
    enable_automatic_cleanup=True,
    cleanup_schedule="0 2 * * *",  # daily, 02:00 UTC
)

_POLICIES: Dict[str, RetentionPolicy] = {
    DEFAULT_TIER: DEFAULT_POLICY,
    "cost_optimized": replace(
        DEFAULT_POLICY,
        retention_days=30,
        image_quality=0.8,
        max_image_width=1280,
    ),
    "premium": replace(
        DEFAULT_POLICY,
        retention_days=365,
        max_file_size_bytes=20 * 1024 * 1024,
        image_quality=0.95,
    ),
    "development": replace(
        DEFAULT_POLICY,
        retention_days=7,
        enable_automatic_cleanup=False,
    ),
}


def normalize_tier(tier: Optional[str]) -> str:
    """Canonical tier name; anything unrecognized falls back to the default tier."""
    key = (tier or "").strip().lower()
    return key if key in _POLICIES else DEFAULT_TIER


def resolve_policy(tier: Optional[str] = None) -> RetentionPolicy:
    return _POLICIES[normalize_tier(tier)]


def tier_names() -> List[str]:
    return list(_POLICIES)


def estimate_monthly_cost(total_bytes: float) -> float:
    return (total_bytes / _BYTES_PER_GIB) * STORAGE_PRICE_PER_GIB_MONTH


def estimate_retained_bytes(retention_days: int) -> int:
    """Steady-state bytes held when photos are uploaded at the assumed daily rate."""
    return ESTIMATED_IMAGES_PER_DAY * int(retention_days) * AVERAGE_IMAGE_SIZE_BYTES
