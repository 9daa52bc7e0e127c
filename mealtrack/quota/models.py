# -*- coding: utf-8 -*-
"""Quota — Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class QuotaStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    remaining: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    used: int = Field(..., ge=0)
    date_key: str = Field(..., alias="dateKey", description="UTC day, YYYY-MM-DD")
