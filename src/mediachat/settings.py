"""
Application settings loaded from the environment.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ENV_PREFIX = "MEDIACHAT_"


class Settings(BaseModel):
    llm_model: str = "gemini-2.5-flash"
    vision_model: str = "gemini-2.5-flash"
    transcription_model: str = "gemini-2.5-flash"
    google_api_key: str | None = None

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    object_store_backend: Literal["memory", "filesystem"] = "memory"
    object_store_path: str = "./data/objects"
    max_upload_bytes: int = 10 * 1024 * 1024

    max_steps: int = 10
    prune_keep_last: int = 2
    approval_timeout_s: float = 300.0
    caption_cache_size: int = 256
    tool_sources: list[str] = Field(default_factory=list)

    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict[str, Any]:
    data: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if field.annotation in (list[str],):
            # Accept a JSON list or a comma separated string.
            if raw.strip().startswith("["):
                data[name] = json.loads(raw)
            else:
                data[name] = [item.strip() for item in raw.split(",") if item.strip()]
        else:
            data[name] = raw
    if "google_api_key" not in data and os.environ.get("GOOGLE_API_KEY"):
        data["google_api_key"] = os.environ["GOOGLE_API_KEY"]
    return data


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings (cached)."""
    load_dotenv()
    return Settings.model_validate(_load_from_env())
