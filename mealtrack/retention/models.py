# -*- coding: utf-8 -*-
"""Retention — Pydantic models (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .policy import MAX_RETENTION_DAYS


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FilesByAge(_WireModel):
    last_30_days: int = Field(0, ge=0, alias="last30Days")
    last_90_days: int = Field(0, ge=0, alias="last90Days")
    last_365_days: int = Field(0, ge=0, alias="last365Days")
    older: int = Field(0, ge=0)


class StorageUsageStats(_WireModel):
    total_files: int = Field(0, ge=0, alias="totalFiles")
    total_size_bytes: int = Field(0, ge=0, alias="totalSizeBytes")
    oldest_file_date: Optional[datetime] = Field(None, alias="oldestFileDate")
    newest_file_date: Optional[datetime] = Field(None, alias="newestFileDate")
    files_by_age: FilesByAge = Field(default_factory=FilesByAge, alias="filesByAge")


class StorageUsageResponse(_WireModel):
    usage: StorageUsageStats
    recommendations: List[str] = []


class CleanupRequest(_WireModel):
    retention_days: int = Field(90, ge=0, le=MAX_RETENTION_DAYS, alias="retentionDays")
    dry_run: bool = Field(True, alias="dryRun")


class DryRunSummary(_WireModel):
    action: Literal["dry-run"] = "dry-run"
    files_found: int = Field(..., ge=0, alias="filesFound")
    estimated_space_saved: int = Field(..., ge=0, alias="estimatedSpaceSaved")
    cutoff_date: str = Field(..., alias="cutoffDate", description="ISO8601 timestamp")


class CleanupSummary(_WireModel):
    action: Literal["cleanup-completed"] = "cleanup-completed"
    deleted_count: int = Field(..., ge=0, alias="deletedCount")
    error_count: int = Field(..., ge=0, alias="errorCount")
    estimated_space_saved: int = Field(..., ge=0, alias="estimatedSpaceSaved")


class StoragePreferencesRequest(_WireModel):
    tier: Optional[str] = Field(None, max_length=64, description="default | cost_optimized | premium | development")
    custom_retention_days: Optional[int] = Field(None, le=MAX_RETENTION_DAYS, alias="customRetentionDays")


class UserStoragePreference(_WireModel):
    storage_tier: str = Field(..., alias="storageTier")
    retention_days: int = Field(..., ge=0, alias="retentionDays")
    image_quality: float = Field(..., ge=0, le=1, alias="imageQuality")
    max_image_width: int = Field(..., ge=1, alias="maxImageWidth")
    updated_at: datetime = Field(..., alias="updatedAt")


class StoragePreferencesResponse(_WireModel):
    success: bool = True
    preferences: UserStoragePreference
    estimated_monthly_cost: float = Field(..., ge=0, alias="estimatedMonthlyCost")


class StoragePreferencesView(_WireModel):
    preferences: Optional[UserStoragePreference] = None


class TiersResponse(_WireModel):
    tiers: Dict[str, Dict[str, object]]
