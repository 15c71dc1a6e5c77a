"""
google-genai client construction (API key or Vertex AI service account).
"""

from __future__ import annotations

import json
import os
from functools import lru_cache

from google import genai
from google.oauth2 import service_account

from ..settings import Settings, get_settings

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
DEFAULT_LOCATION = "us-central1"


def load_service_account_info(value: str) -> dict:
    """Read service account info from a file path or an inline JSON string."""
    if os.path.exists(value):
        with open(value, encoding="utf-8") as handle:
            return json.load(handle)
    if value.strip().startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(
                "GOOGLE_APPLICATION_CREDENTIALS is not a valid JSON string."
            ) from exc
    if value.endswith(".json"):
        raise FileNotFoundError(f"GOOGLE_APPLICATION_CREDENTIALS file not found: {value}")
    raise ValueError("GOOGLE_APPLICATION_CREDENTIALS must be a file path or JSON string.")


def build_genai_client(settings: Settings) -> genai.Client:
    if settings.google_api_key:
        return genai.Client(api_key=settings.google_api_key)

    value = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
    if not value:
        raise ValueError(
            "Set MEDIACHAT_GOOGLE_API_KEY or GOOGLE_APPLICATION_CREDENTIALS."
        )
    info = load_service_account_info(value)
    project = os.environ.get("GOOGLE_CLOUD_PROJECT") or info.get("project_id")
    if not project:
        raise ValueError("project_id not found in service account info.")
    location = (
        os.environ.get("GOOGLE_CLOUD_LOCATION")
        or os.environ.get("GCP_REGION")
        or DEFAULT_LOCATION
    )
    credentials = service_account.Credentials.from_service_account_info(
        info, scopes=[CLOUD_PLATFORM_SCOPE]
    )
    return genai.Client(
        vertexai=True, project=project, location=location, credentials=credentials
    )


@lru_cache
def get_genai_client() -> genai.Client:
    return build_genai_client(get_settings())
