# -*- coding: utf-8 -*-
"""Diet — Pydantic models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class NutritionTotals(BaseModel):
    calories_kcal: float = Field(0.0, ge=0)
    protein_g: float = Field(0.0, ge=0)
    carbs_g: float = Field(0.0, ge=0)
    fat_g: float = Field(0.0, ge=0)


class FoodItem(BaseModel):
    name: str = Field(..., min_length=1, description="Food name, e.g. 'rice', 'apple'")
    portion: Optional[str] = Field(None, description="Human-readable portion, e.g. '1 bowl'")
    grams: Optional[float] = Field(None, ge=0, description="Estimated grams for the portion")
    calories_kcal: Optional[float] = Field(None, ge=0)
    protein_g: Optional[float] = Field(None, ge=0)
    carbs_g: Optional[float] = Field(None, ge=0)
    fat_g: Optional[float] = Field(None, ge=0)
    confidence: Optional[float] = Field(None, ge=0, le=1)


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


class DietAnalyzeRequest(BaseModel):
    image_mime: str = Field(..., pattern=r"^image/(jpeg|jpg|png|heic|webp)$")
    image_base64: str = Field(..., min_length=16, description="Raw base64 without data-url prefix")
    description: Optional[str] = Field(None, max_length=2000, description="Optional hint from the user")


class DietAnalyzeTextRequest(BaseModel):
    description: str = Field(..., min_length=1, max_length=2000)


class NutritionEstimate(BaseModel):
    items: List[FoodItem] = []
    totals: NutritionTotals = NutritionTotals()
    warnings: List[str] = []

    @field_validator("warnings", mode="before")
    @classmethod
    def _coerce_warnings(cls, value: object) -> List[str]:
        """Models answer with either a string or a list here; accept both."""
        if value is None:
            return []
        if isinstance(value, str):
            v = value.strip()
            return [v] if v else []
        if isinstance(value, list):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        s = str(value).strip()
        return [s] if s else []


class DietAnalyzeResponse(NutritionEstimate):
    request_id: str
    model: str


class DietCreateEntryRequest(BaseModel):
    meal_type: MealType
    description: Optional[str] = Field(None, max_length=2000)
    items: List[FoodItem] = Field(default_factory=list)
    image_mime: Optional[str] = Field(None, pattern=r"^image/(jpeg|jpg|png|heic|webp)$")
    image_base64: Optional[str] = Field(None, min_length=16, description="Optional meal photo")


class DietEntry(BaseModel):
    entry_id: str
    created_at: Optional[datetime] = None
    meal_type: Optional[str] = None
    description: Optional[str] = None
    items: List[FoodItem] = []
    totals: NutritionTotals = NutritionTotals()
    image_ref: Optional[str] = None
    image_deleted_at: Optional[datetime] = None


class DietEntriesResponse(BaseModel):
    count: int
    entries: List[DietEntry]
