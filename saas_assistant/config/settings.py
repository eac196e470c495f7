"""Runtime settings for the SaaS assistant.

Values are read from the process environment (optionally populated from a
``.env`` file by ``load_dotenv`` in ``main.py``). Settings are built once and
cached; tests call ``get_settings.cache_clear()`` after patching the env.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel


DEFAULT_DESCOPE_BASE_URL = "https://api.descope.com"
DEFAULT_CRM_API_URL = "https://www.10x-crm.app"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    """Environment-derived configuration."""

    descope_management_key: Optional[str] = None
    descope_project_id: Optional[str] = None
    descope_base_url: str = DEFAULT_DESCOPE_BASE_URL

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    posthog_key: Optional[str] = None
    segment_write_key: Optional[str] = None

    crm_api_url: str = DEFAULT_CRM_API_URL

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    default_timezone: str = "UTC"
    http_timeout_seconds: float = 15.0
    spec_cache_ttl_seconds: float = 24 * 60 * 60

    @property
    def has_descope_credentials(self) -> bool:
        return bool(self.descope_management_key and self.descope_project_id)

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def analytics_sinks(self) -> List[str]:
        sinks: List[str] = []
        if self.posthog_key:
            sinks.append("posthog")
        if self.segment_write_key:
            sinks.append("segment")
        return sinks


def load_settings() -> Settings:
    """Build a fresh ``Settings`` from the current environment."""

    return Settings(
        descope_management_key=os.getenv("DESCOPE_MANAGEMENT_KEY"),
        descope_project_id=os.getenv("NEXT_PUBLIC_DESCOPE_PROJECT_ID"),
        descope_base_url=(os.getenv("DESCOPE_BASE_URL") or DEFAULT_DESCOPE_BASE_URL).rstrip("/"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
        posthog_key=os.getenv("NEXT_PUBLIC_POSTHOG_KEY"),
        # The misspelled key is what older deployments shipped with.
        segment_write_key=os.getenv("NEXT_PUBLIC_SEGMENT_WRITE_KEY") or os.getenv("NEXT_PUBLIC_SEGEMENT_WRITE_KEY"),
        crm_api_url=(os.getenv("CRM_API_URL") or DEFAULT_CRM_API_URL).rstrip("/"),
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
        default_timezone=os.getenv("DEFAULT_TIMEZONE") or "UTC",
        http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 15.0),
        spec_cache_ttl_seconds=_env_float("SPEC_CACHE_TTL_SECONDS", 24 * 60 * 60),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""

    return load_settings()
