# -*- coding: utf-8 -*-
"""Retention — per-user storage tier preferences."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple

from pydantic import ValidationError

from ..docstore import DocumentStore, utc_now
from .models import UserStoragePreference
from .policy import estimate_monthly_cost, estimate_retained_bytes, normalize_tier, resolve_policy

logger = logging.getLogger(__name__)

_PREFERENCES_FIELD = "storage_preferences"


def resolve_preference(
    tier: Optional[str] = None,
    custom_retention_days: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> UserStoragePreference:
    policy = resolve_policy(tier)
    retention_days = policy.retention_days
    if custom_retention_days is not None and custom_retention_days > 0:
        retention_days = int(custom_retention_days)
    return UserStoragePreference(
        storage_tier=normalize_tier(tier),
        retention_days=retention_days,
        image_quality=policy.image_quality,
        max_image_width=policy.max_image_width,
        updated_at=now or utc_now(),
    )


def projected_monthly_cost(retention_days: int) -> float:
    return estimate_monthly_cost(estimate_retained_bytes(retention_days))


class TierPreferenceManager:
    def __init__(self, documents: DocumentStore) -> None:
        self.documents = documents

    async def set_preferences(
        self,
        user_id: str,
        tier: Optional[str] = None,
        custom_retention_days: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Tuple[UserStoragePreference, float]:
        preference = resolve_preference(tier, custom_retention_days, now=now)
        await self.documents.update_user_fields(
            user_id, {_PREFERENCES_FIELD: preference.model_dump(mode="json")}
        )
        logger.info(
            "storage preferences for user %s: tier=%s retention_days=%d",
            user_id,
            preference.storage_tier,
            preference.retention_days,
        )
        return preference, projected_monthly_cost(preference.retention_days)

    async def get_preferences(self, user_id: str) -> Optional[UserStoragePreference]:
        doc = await self.documents.get_user_fields(user_id)
        raw = (doc or {}).get(_PREFERENCES_FIELD)
        if not raw:
            return None
        try:
            return UserStoragePreference.model_validate(raw)
        except ValidationError:
            logger.warning("ignoring malformed storage preferences for user %s", user_id)
            return None
