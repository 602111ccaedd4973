# app/orchestrator.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from app.geocoding import Geocoder
from app.pipeline.date_filter import filter_by_date_range
from app.pipeline.dedupe import dedupe
from app.pipeline.normalize import normalize
from app.pipeline.rank import rank
from app.providers.base import Provider, ProviderQuery
from app.providers.placeholder import placeholder_items
from app.schemas import RawItem, ScoredItem, SearchParams, SearchResponse

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

DEFAULT_RESULT_LIMIT = 200


@dataclass
class ProviderOutcome:
    name: str
    count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_provider_items(
    providers: Sequence[Provider],
    query: ProviderQuery,
) -> Tuple[List[RawItem], List[ProviderOutcome]]:
    """Fan out to every provider and wait for all of them.

    A failing provider contributes nothing; the union keeps registration order.
    """
    results = await asyncio.gather(
        *[provider.fetch_items(query) for provider in providers],
        return_exceptions=True,
    )

    items: List[RawItem] = []
    outcomes: List[ProviderOutcome] = []
    for provider, result in zip(providers, results):
        if isinstance(result, BaseException):
            logger.error(
                "Provider %s failed: %s",
                provider.name,
                result,
                exc_info=(type(result), result, result.__traceback__),
            )
            outcomes.append(ProviderOutcome(provider.name, error=str(result) or type(result).__name__))
            continue
        logger.info("Provider %s: %d items", provider.name, len(result))
        items.extend(result)
        outcomes.append(ProviderOutcome(provider.name, count=len(result)))
    return items, outcomes


def run_pipeline(
    raw_items: Sequence[RawItem],
    params: SearchParams,
    *,
    tz: str,
    center: Optional[Tuple[float, float]] = None,
    now: Optional[datetime] = None,
) -> List[ScoredItem]:
    """normalize -> date filter -> dedupe -> rank, all synchronous."""
    normalized = normalize(raw_items, tz, params.categories, now=now)
    in_window = filter_by_date_range(normalized, params.start, params.end)
    unique = dedupe(in_window)
    logger.info(
        "Pipeline: %d raw, %d normalized, %d in window, %d unique",
        len(raw_items),
        len(normalized),
        len(in_window),
        len(unique),
    )
    return rank(unique, params.sort_by, center, now=now)


async def search_happenings(
    params: SearchParams | Mapping[str, Any],
    *,
    providers: Sequence[Provider],
    geocoder: Geocoder,
    limit: int = DEFAULT_RESULT_LIMIT,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Resolve the city, aggregate every provider and return the ranked payload.

    Raises ``pydantic.ValidationError`` for bad parameters and
    ``GeocodingNotFoundError`` when the city cannot be resolved. Provider
    failures never surface here.
    """
    if not isinstance(params, SearchParams):
        params = SearchParams.model_validate(params)

    logger.info(
        "Search start: city=%s, window=%s..%s, categories=%s, sort=%s",
        params.city,
        params.start_iso,
        params.end_iso,
        params.categories,
        params.sort_by,
    )
    location = await geocoder.resolve(params.city)
    logger.info("Geocoded %s -> %s (%s)", params.city, location.display_name, location.timezone)

    query = ProviderQuery(
        city=params.city,
        start_iso=params.start_iso,
        end_iso=params.end_iso,
        bbox=location.bbox,
    )
    raw_items, outcomes = await gather_provider_items(providers, query)
    failed = [o.name for o in outcomes if not o.ok]
    if failed:
        logger.warning("Providers failed for this search: %s", ", ".join(failed))

    if not raw_items:
        logger.info("No items from providers, using placeholder data")
        raw_items = placeholder_items(params.city, params.start_iso)

    center = (location.lat, location.lng)
    ranked = run_pipeline(raw_items, params, tz=location.timezone, center=center, now=now)
    items = ranked[: max(0, limit)]

    response = SearchResponse(
        city=location.city,
        country=location.country,
        display_name=location.display_name,
        timezone=location.timezone,
        center=center,
        bbox=location.bbox,
        start_iso=params.start_iso,
        end_iso=params.end_iso,
        count=len(ranked),
        providers=[provider.name for provider in providers],
        items=items,
    )
    return response.model_dump()
