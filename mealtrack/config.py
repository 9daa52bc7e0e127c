from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List


class Settings:
    """Centralized configuration for the meal-logging backend."""

    def __init__(self) -> None:
        base_dir = Path(__file__).resolve().parent
        repo_root = base_dir.parent
        data_root_default = repo_root / "data"

        self.data_root: Path = Path(
            os.environ.get("MEALTRACK_DATA_ROOT") or data_root_default
        ).expanduser()
        self.app_db_path: Path = Path(
            os.environ.get("MEALTRACK_DB_PATH") or (self.data_root / "mealtrack.db")
        ).expanduser()

        # ---- Object store (meal photos) ----
        self.objects_root: Path = Path(
            os.environ.get("MEALTRACK_OBJECTS_ROOT") or (self.data_root / "objects")
        ).expanduser()
        self.bucket: str = os.environ.get("MEALTRACK_BUCKET") or "mealtrack-images"
        self.objects_base_url: str = (
            os.environ.get("MEALTRACK_OBJECTS_BASE_URL") or "http://127.0.0.1:8000/objects"
        )

        # In production you MUST set MEALTRACK_JWT_SECRET. The dev fallback keeps local
        # demos easy but is not safe for public deployments.
        self.jwt_secret: str = os.environ.get("MEALTRACK_JWT_SECRET") or "dev-secret-change-me"
        self.token_ttl_days: int = int(os.environ.get("MEALTRACK_TOKEN_TTL_DAYS") or "7")
        self.cookie_secure: bool = (os.environ.get("MEALTRACK_COOKIE_SECURE") or "").strip() in {"1", "true", "True"}

        # ---- Storage lifecycle / quota ----
        self.daily_analysis_limit: int = int(os.environ.get("MEALTRACK_DAILY_ANALYSIS_LIMIT") or "10")
        self.storage_tier: str = os.environ.get("MEALTRACK_STORAGE_TIER") or "default"

        # ---- Vision model (OpenAI-compatible chat completions) ----
        self.vision_api_key: str | None = os.environ.get("VISION_API_KEY")
        self.vision_base_url: str = os.environ.get(
            "VISION_BASE_URL", "https://api.openai.com/v1"
        )
        self.vision_model: str = os.environ.get("VISION_MODEL", "gpt-4o-mini")
        self.vision_timeout: float = float(os.environ.get("VISION_TIMEOUT", "45"))
        self.vision_max_retries: int = int(os.environ.get("VISION_MAX_RETRIES", "3"))

        self.log_level: str = (os.environ.get("MEALTRACK_LOG_LEVEL") or "INFO").upper()

        cors = os.environ.get("MEALTRACK_CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [
                origin.strip() for origin in cors.split(",") if origin.strip()
            ]


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


settings = Settings()
