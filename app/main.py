from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from app.config import Settings
from app.errors import GeocodingNotFoundError
from app.geocoding import Geocoder
from app.orchestrator import search_happenings
from app.providers.base import ProviderClient
from app.providers.registry import build_providers, enabled_provider_names
from app.schemas import GeocodeParams

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

settings = Settings.from_env()
provider_client = ProviderClient.from_settings(settings)
providers = build_providers(settings, provider_client)
geocoder = Geocoder.from_settings(settings)
logger.info("Enabled providers: %s", ", ".join(enabled_provider_names(providers)) or "none (using placeholder data)")

app = FastAPI(title="Happenings Aggregator API")

# Browser frontends call the API directly; scope with HAPPENINGS_ALLOWED_ORIGINS.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _validation_detail(message: str, exc: ValidationError) -> Dict[str, Any]:
    return {"error": message, "details": exc.errors(include_url=False, include_context=False)}


@app.get("/api/search")
async def api_search(
    city: str = "",
    start: str = "",
    end: str = "",
    cats: Optional[str] = None,
    sort: Optional[str] = Query(None, description="recommended | soonest | closest | price"),
) -> Dict[str, Any]:
    """Aggregated, de-duplicated and ranked happenings for a city and window."""
    payload: Dict[str, Any] = {"city": city, "start": start, "end": end}
    categories = [c.strip() for c in (cats or "").split(",") if c.strip()]
    if categories:
        payload["categories"] = categories
    if sort:
        payload["sort_by"] = sort

    try:
        return await search_happenings(
            payload,
            providers=providers,
            geocoder=geocoder,
            limit=settings.result_limit,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=_validation_detail("Invalid parameters", exc)) from exc
    except GeocodingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Search API error")
        raise HTTPException(status_code=500, detail="Internal server error") from exc


@app.get("/api/geocode")
async def api_geocode(city: str = "") -> Dict[str, Any]:
    try:
        params = GeocodeParams(city=city)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=_validation_detail("Invalid city parameter", exc)) from exc

    try:
        result = await geocoder.resolve(params.city)
    except GeocodingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Geocode API error")
        raise HTTPException(status_code=500, detail="Failed to geocode city") from exc
    return result.model_dump()


@app.get("/api/health")
async def api_health() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "providers": enabled_provider_names(providers),
        "environment": settings.environment,
    }
