# -*- coding: utf-8 -*-
"""Diet — nutrition estimation via an OpenAI-compatible vision/chat model."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..config import settings
from .models import NutritionEstimate, NutritionTotals
from .storage import compute_totals

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}
_BACKOFF_BASE_SEC = 1.0

SYSTEM_PROMPT = (
    "You are a nutrition assistant. Return STRICT JSON only. "
    "Do NOT wrap in markdown or code fences. "
    "Estimate food type and nutrition for the portion described or shown. "
    "If unsure, use low confidence and add warnings; do NOT fabricate precise numbers."
)

OUTPUT_SCHEMA = (
    "Output JSON schema (STRICT):\n"
    '{"items": [{"name": "string", "portion": "string|null", "grams": number|null, '
    '"calories_kcal": number|null, "protein_g": number|null, "carbs_g": number|null, '
    '"fat_g": number|null, "confidence": number|null}], '
    '"totals": {"calories_kcal": number, "protein_g": number, "carbs_g": number, "fat_g": number} | null, '
    '"warnings": ["string"]}\n'
)


class VisionError(Exception):
    """Raised when the model is misconfigured, unreachable or returns unusable output.

    ``upstream`` is True when the model call itself failed (as opposed to configuration
    or output problems).
    """

    def __init__(self, message: str, *, upstream: bool = False) -> None:
        super().__init__(message)
        self.upstream = upstream


def _data_url(mime: str, image_bytes: bytes) -> str:
    b64 = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime};base64,{b64}"


def parse_model_output(content: str) -> NutritionEstimate:
    cleaned = content.strip()
    cleaned = re.sub(r"^```(?:json)?\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"\s*```$", "", cleaned)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise VisionError("Model output does not contain a JSON object")
    try:
        parsed = json.loads(cleaned[start : end + 1])
    except ValueError as exc:
        raise VisionError(f"Failed to parse model JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise VisionError("Model output is not a JSON object")

    try:
        estimate = NutritionEstimate.model_validate(
            {
                "items": [i for i in parsed.get("items") or [] if isinstance(i, dict)],
                "totals": parsed.get("totals") or NutritionTotals(),
                "warnings": parsed.get("warnings"),
            }
        )
    except ValidationError as exc:
        raise VisionError(f"Model output does not match the schema: {exc}") from exc

    if not parsed.get("totals") and estimate.items:
        estimate.totals = compute_totals([i.model_dump() for i in estimate.items])
    return estimate


async def _post_with_retry(payload: Dict[str, Any]) -> Dict[str, Any]:
    url = f"{settings.vision_base_url.rstrip('/')}/chat/completions"
    headers = {"Authorization": f"Bearer {settings.vision_api_key}"}
    attempts = max(1, settings.vision_max_retries)
    last_error: Exception | None = None

    async with httpx.AsyncClient(timeout=settings.vision_timeout, follow_redirects=True) as client:
        for attempt in range(1, attempts + 1):
            try:
                resp = await client.post(url, json=payload, headers=headers)
                if resp.status_code in _RETRYABLE_STATUS and attempt < attempts:
                    raise httpx.HTTPStatusError(
                        f"retryable status {resp.status_code}", request=resp.request, response=resp
                    )
                resp.raise_for_status()
                try:
                    return resp.json()
                except ValueError as exc:
                    raise VisionError("Vision model returned a non-JSON body", upstream=True) from exc
            except (httpx.TransportError, httpx.HTTPStatusError) as exc:
                last_error = exc
                status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
                if status is not None and status not in _RETRYABLE_STATUS:
                    break
                if attempt < attempts:
                    delay = _BACKOFF_BASE_SEC * (2 ** (attempt - 1))
                    logger.warning("vision call attempt %d failed (%s); retrying in %.1fs", attempt, exc, delay)
                    await asyncio.sleep(delay)

    raise VisionError(f"Vision model call failed: {last_error}", upstream=True)


async def _estimate(user_content: List[Dict[str, Any]]) -> Tuple[NutritionEstimate, str]:
    if not settings.vision_api_key:
        raise VisionError("VISION_API_KEY is not configured")
    payload = {
        "model": settings.vision_model,
        "temperature": 0.2,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ],
    }
    data = await _post_with_retry(payload)
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise VisionError("Vision model response has no message content") from exc
    if not isinstance(content, str):
        raise VisionError("Vision model response content is not text")
    return parse_model_output(content), str(data.get("model") or settings.vision_model)


async def estimate_from_photo(
    *, image_bytes: bytes, image_mime: str, description: Optional[str] = None
) -> Tuple[NutritionEstimate, str]:
    prompt = "Identify all foods in the photo and estimate the nutrition of the portion shown.\n"
    if description:
        prompt += f"User note: {description}\n"
    return await _estimate(
        [
            {"type": "text", "text": prompt + OUTPUT_SCHEMA},
            {"type": "image_url", "image_url": {"url": _data_url(image_mime, image_bytes)}},
        ]
    )


async def estimate_from_text(*, description: str) -> Tuple[NutritionEstimate, str]:
    prompt = f"Meal description: {description}\nEstimate the nutrition of the meal described.\n"
    return await _estimate([{"type": "text", "text": prompt + OUTPUT_SCHEMA}])
