# -*- coding: utf-8 -*-
"""Quota — daily AI-analysis allowance per user.

Days are UTC calendar days, so every user's allowance resets at the same instant
regardless of their local timezone. Counters are keyed by (user, day) and are never
deleted; yesterday's counter simply stops being read.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from ..docstore import DocumentStore, UsageCounter, utc_now
from .models import QuotaStatus

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 10


def date_key_utc(now: datetime) -> str:
    """``YYYY-MM-DD`` of the UTC day containing ``now``; naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%d")


class QuotaLedger:
    def __init__(self, documents: DocumentStore, *, daily_limit: int = DEFAULT_DAILY_LIMIT) -> None:
        if daily_limit < 0:
            raise ValueError("daily_limit must be >= 0")
        self.documents = documents
        self.daily_limit = daily_limit

    async def check_and_increment(self, user_id: str, *, now: Optional[datetime] = None) -> bool:
        """Consume one analysis slot for today. Returns False when none is left.

        Store failures deny the request rather than raise.
        """
        now = now or utc_now()
        date_key = date_key_utc(now)

        def admit(current: Optional[UsageCounter]) -> Optional[UsageCounter]:
            used = current.count if current else 0
            if used >= self.daily_limit:
                return None
            return UsageCounter(
                user_id=user_id,
                date_key=date_key,
                count=used + 1,
                created_at=current.created_at if current else now,
                updated_at=now,
            )

        try:
            written = await self.documents.update_usage_counter(user_id, date_key, admit)
        except Exception:
            logger.exception("usage check failed for user %s on %s; denying", user_id, date_key)
            return False

        if written is None:
            logger.info("daily analysis limit reached for user %s on %s", user_id, date_key)
            return False
        logger.debug("user %s used %d/%d analyses on %s", user_id, written.count, self.daily_limit, date_key)
        return True

    async def remaining(self, user_id: str, *, now: Optional[datetime] = None) -> QuotaStatus:
        date_key = date_key_utc(now or utc_now())
        counter = await self.documents.get_usage_counter(user_id, date_key)
        used = counter.count if counter else 0
        return QuotaStatus(
            remaining=max(0, self.daily_limit - used),
            total=self.daily_limit,
            used=used,
            date_key=date_key,
        )
