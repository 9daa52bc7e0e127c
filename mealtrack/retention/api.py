# -*- coding: utf-8 -*-
"""Retention — storage usage, on-demand cleanup and tier preference endpoints."""

from __future__ import annotations

import logging
from typing import Union

from fastapi import APIRouter, Depends, HTTPException

from ..auth.security import get_current_user
from ..services import get_preference_manager, get_sweeper, get_usage_analyzer
from .analyzer import StorageUsageAnalyzer
from .models import (
    CleanupRequest,
    CleanupSummary,
    DryRunSummary,
    StoragePreferencesRequest,
    StoragePreferencesResponse,
    StoragePreferencesView,
    StorageUsageResponse,
    TiersResponse,
)
from .policy import resolve_policy, tier_names
from .preferences import TierPreferenceManager
from .sweeper import RetentionSweeper

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/storage", tags=["Storage"])


@router.get("/usage", response_model=StorageUsageResponse, summary="Photo storage usage + recommendations")
async def get_storage_usage(
    user: dict = Depends(get_current_user),
    analyzer: StorageUsageAnalyzer = Depends(get_usage_analyzer),
):
    try:
        stats, recommendations = await analyzer.analyze(user["id"])
    except Exception as exc:
        logger.exception("Error getting storage usage for user %s", user["id"])
        raise HTTPException(status_code=500, detail="Failed to get storage usage") from exc
    return StorageUsageResponse(usage=stats, recommendations=recommendations)


@router.post(
    "/cleanup",
    response_model=Union[DryRunSummary, CleanupSummary],
    summary="Delete (or preview deleting) photos older than the retention window",
)
async def cleanup_user_images(
    request: CleanupRequest | None = None,
    user: dict = Depends(get_current_user),
    sweeper: RetentionSweeper = Depends(get_sweeper),
):
    # An omitted retentionDays means the fixed 90-day default, not the stored tier preference.
    request = request or CleanupRequest()
    try:
        return await sweeper.sweep_user(
            user["id"],
            retention_days=request.retention_days,
            dry_run=request.dry_run,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error cleaning up images for user %s", user["id"])
        raise HTTPException(status_code=500, detail="Failed to cleanup images") from exc


@router.post("/preferences", response_model=StoragePreferencesResponse, summary="Set storage tier preferences")
async def set_storage_preferences(
    request: StoragePreferencesRequest,
    user: dict = Depends(get_current_user),
    manager: TierPreferenceManager = Depends(get_preference_manager),
):
    try:
        preferences, cost = await manager.set_preferences(
            user["id"],
            tier=request.tier,
            custom_retention_days=request.custom_retention_days,
        )
    except Exception as exc:
        logger.exception("Error setting storage preferences for user %s", user["id"])
        raise HTTPException(status_code=500, detail="Failed to set preferences") from exc
    return StoragePreferencesResponse(preferences=preferences, estimated_monthly_cost=cost)


@router.get("/preferences", response_model=StoragePreferencesView, summary="Current storage tier preferences")
async def get_storage_preferences(
    user: dict = Depends(get_current_user),
    manager: TierPreferenceManager = Depends(get_preference_manager),
):
    return StoragePreferencesView(preferences=await manager.get_preferences(user["id"]))


@router.get("/tiers", response_model=TiersResponse, summary="Available storage tiers")
def list_tiers():
    return TiersResponse(tiers={name: resolve_policy(name).to_dict() for name in tier_names()})
