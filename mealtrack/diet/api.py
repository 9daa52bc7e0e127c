# -*- coding: utf-8 -*-
"""Diet — API endpoints (meal entries + quota-metered nutrition analysis)."""

from __future__ import annotations

import base64
import binascii
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth.security import get_current_user
from ..config import settings
from ..docstore import DocumentStore
from ..objects.storage import ObjectStore, ObjectStoreError
from ..quota.api import consume_analysis_quota
from ..quota.ledger import QuotaLedger
from ..retention.policy import resolve_policy
from ..services import get_document_store, get_object_store, get_quota_ledger
from . import vision
from .models import (
    DietAnalyzeRequest,
    DietAnalyzeResponse,
    DietAnalyzeTextRequest,
    DietCreateEntryRequest,
    DietEntriesResponse,
    DietEntry,
    NutritionEstimate,
)
from .storage import create_entry, to_diet_entry

router = APIRouter(prefix="/api/diet", tags=["Diet"])


def _decode_image_or_400(image_base64: str, max_bytes: int) -> bytes:
    try:
        data = base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid base64 image: {exc}") from exc
    if len(data) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Image too large: {len(data)} bytes > {max_bytes}")
    return data


def _max_image_bytes() -> int:
    return resolve_policy(settings.storage_tier).max_file_size_bytes


def _analysis_response(estimate: NutritionEstimate, model_name: str) -> DietAnalyzeResponse:
    return DietAnalyzeResponse(
        request_id=str(uuid4()),
        items=estimate.items,
        totals=estimate.totals,
        warnings=estimate.warnings,
        model=model_name,
    )


def _vision_http_error(exc: vision.VisionError) -> HTTPException:
    if exc.upstream:
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=f"Vision config/output error: {exc}")


@router.post("/analyze", response_model=DietAnalyzeResponse, summary="Estimate nutrition from a meal photo")
async def analyze_meal(
    request: DietAnalyzeRequest,
    user: dict = Depends(get_current_user),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    image_bytes = _decode_image_or_400(request.image_base64, _max_image_bytes())
    await consume_analysis_quota(user["id"], ledger)
    try:
        estimate, model_name = await vision.estimate_from_photo(
            image_bytes=image_bytes,
            image_mime=request.image_mime,
            description=request.description,
        )
    except vision.VisionError as exc:
        raise _vision_http_error(exc) from exc
    return _analysis_response(estimate, model_name)


@router.post("/analyze-text", response_model=DietAnalyzeResponse, summary="Estimate nutrition from a description")
async def analyze_natural_language_meal(
    request: DietAnalyzeTextRequest,
    user: dict = Depends(get_current_user),
    ledger: QuotaLedger = Depends(get_quota_ledger),
):
    description = request.description.strip()
    if not description:
        raise HTTPException(status_code=400, detail="Description must not be blank")
    await consume_analysis_quota(user["id"], ledger)
    try:
        estimate, model_name = await vision.estimate_from_text(description=description)
    except vision.VisionError as exc:
        raise _vision_http_error(exc) from exc
    return _analysis_response(estimate, model_name)


@router.post("/entries", response_model=DietEntry, summary="Log a meal (optionally with a photo)")
async def log_entry(
    request: DietCreateEntryRequest,
    user: dict = Depends(get_current_user),
    documents: DocumentStore = Depends(get_document_store),
    objects: ObjectStore = Depends(get_object_store),
):
    image_bytes = None
    if request.image_base64:
        image_bytes = _decode_image_or_400(request.image_base64, _max_image_bytes())
    try:
        record = await create_entry(
            documents,
            objects,
            user_id=user["id"],
            meal_type=request.meal_type.value,
            description=request.description,
            items=[i.model_dump() for i in request.items],
            image_bytes=image_bytes,
            image_mime=request.image_mime,
        )
    except ObjectStoreError as exc:
        raise HTTPException(status_code=502, detail=f"Failed to store photo: {exc}") from exc
    return to_diet_entry(record)


@router.get("/entries", response_model=DietEntriesResponse, summary="List logged meals")
async def list_entries(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: dict = Depends(get_current_user),
    documents: DocumentStore = Depends(get_document_store),
):
    records = await documents.list_entries(user["id"], limit=limit, offset=offset)
    entries = [to_diet_entry(r) for r in records]
    return DietEntriesResponse(count=len(entries), entries=entries)
