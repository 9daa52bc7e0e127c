# -*- coding: utf-8 -*-
"""Quota — API endpoints + the analysis gate used by the diet endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..auth.security import get_current_user
from ..services import get_quota_ledger
from .ledger import QuotaLedger
from .models import QuotaStatus

router = APIRouter(prefix="/api/usage", tags=["Usage"])

LIMIT_REACHED_DETAIL = "Daily API limit reached. Please use manual entry for additional meals today."


async def consume_analysis_quota(user_id: str, ledger: QuotaLedger) -> None:
    """Spend one analysis slot or fail with 429. Call exactly once, before the model call."""
    if not await ledger.check_and_increment(user_id):
        raise HTTPException(status_code=429, detail=LIMIT_REACHED_DETAIL)


@router.get("/remaining", response_model=QuotaStatus, summary="Remaining AI analyses for today (UTC)")
async def get_remaining_requests(
    user: dict = Depends(get_current_user),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    try:
        return await ledger.remaining(user["id"])
    except Exception as exc:
        raise HTTPException(status_code=500, detail="Failed to get remaining requests") from exc
