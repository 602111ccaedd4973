from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer if set") from None


def _env_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclass(slots=True)
class Settings:
    """Runtime configuration for the happenings aggregator."""

    provider_cache_ttl_minutes: int = 30
    geocode_cache_ttl_minutes: int = 60
    max_concurrent_requests: int = 3
    request_timeout_ms: int = 10000
    provider_max_retries: int = 3
    result_limit: int = 200
    eventbrite_api_key: Optional[str] = None
    meetup_api_key: Optional[str] = None
    opentripmap_api_key: Optional[str] = None
    google_places_api_key: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    environment: str = "development"

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        # Load .env file if present
        load_dotenv()

        return cls(
            provider_cache_ttl_minutes=_env_int("PROVIDER_CACHE_TTL_MINUTES", 30),
            geocode_cache_ttl_minutes=_env_int("GEOCODE_CACHE_TTL_MINUTES", 60),
            max_concurrent_requests=max(1, _env_int("MAX_CONCURRENT_REQUESTS", 3)),
            request_timeout_ms=_env_int("REQUEST_TIMEOUT_MS", 10000),
            provider_max_retries=max(1, _env_int("PROVIDER_MAX_RETRIES", 3)),
            result_limit=_env_int("SEARCH_RESULT_LIMIT", 200),
            eventbrite_api_key=_env_str("EVENTBRITE_API_KEY"),
            meetup_api_key=_env_str("MEETUP_API_KEY"),
            opentripmap_api_key=_env_str("OPENTRIPMAP_API_KEY"),
            google_places_api_key=_env_str("GOOGLE_PLACES_API_KEY"),
            allowed_origins=_split_csv(os.getenv("HAPPENINGS_ALLOWED_ORIGINS")) or ["*"],
            environment=os.getenv("HAPPENINGS_ENV", "development"),
        )
