from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from app.providers.base import ProviderClient, ProviderQuery, build_raw_item
from app.schemas import RawItem

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class EventbriteProvider:
    """Fetches public events from the Eventbrite search API."""

    name = "Eventbrite"
    SEARCH_URL = "https://www.eventbriteapi.com/v3/events/search/"
    SEARCH_RADIUS = "20km"

    def __init__(self, client: ProviderClient, api_key: Optional[str]) -> None:
        self._client = client
        self._api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def fetch_items(self, query: ProviderQuery) -> List[RawItem]:
        if not self.enabled:
            logger.info("[%s] Provider disabled (no API key)", self.name)
            return []
        cache_key = f"eventbrite:{query.city}:{query.start_iso}:{query.end_iso}"
        return await self._client.fetch_with_cache(self.name, cache_key, lambda: self._search(query))

    async def _search(self, query: ProviderQuery) -> List[RawItem]:
        params: Dict[str, str] = {
            "location.address": query.city,
            "start_date.range_start": query.start_iso,
            "start_date.range_end": query.end_iso,
            "expand": "venue,category",
            "page_size": "50",
            "token": self._api_key or "",
        }
        center = query.center
        if center is not None:
            params["location.within"] = self.SEARCH_RADIUS
            params["location.latitude"] = str(center[0])
            params["location.longitude"] = str(center[1])

        async with self._client.http_client() as http:
            response = await self._client.request(http, self.SEARCH_URL, label=self.name, params=params)
            response.raise_for_status()
            payload = response.json()

        items: List[RawItem] = []
        for event in payload.get("events") or []:
            item = self._to_item(event, query)
            if item is not None:
                items.append(item)
        logger.info("[%s] Found %d items", self.name, len(items))
        return items

    def _to_item(self, event: Mapping[str, Any], query: ProviderQuery) -> Optional[RawItem]:
        category_name = ((event.get("category") or {}).get("name") or "").lower()
        categories = ["event"]
        if "conference" in category_name or "seminar" in category_name:
            categories.append("seminar")
        elif "tour" in category_name:
            categories.append("tour")

        title = (event.get("name") or {}).get("text") or "Untitled Event"
        venue = event.get("venue") or {}
        venue_name = venue.get("name")
        address = venue.get("address") or {}
        start = event.get("start") or {}
        end = event.get("end") or {}
        locale = event.get("locale") or ""

        lowered_venue = (venue_name or "").lower()
        is_indoor = not event.get("online_event") and any(
            word in lowered_venue for word in ("center", "hall", "theatre")
        )
        lowered_title = title.lower()
        is_family_friendly = (
            "family" in category_name
            or "kids" in category_name
            or "family" in lowered_title
            or "children" in lowered_title
        )

        return build_raw_item(
            self.name,
            external_id=str(event.get("id")),
            source="eventbrite",
            title=title,
            description=(event.get("description") or {}).get("text"),
            category=categories,
            start_time=start.get("utc"),
            end_time=end.get("utc"),
            timezone=start.get("timezone"),
            venue_name=venue_name,
            address=address.get("localized_address_display"),
            city=address.get("city") or query.city,
            lat=_to_float(venue.get("latitude")),
            lng=_to_float(venue.get("longitude")),
            price_min=0.0 if event.get("is_free") else None,
            currency=event.get("currency"),
            url=event.get("url") or "",
            image_url=(event.get("logo") or {}).get("url"),
            tags=[category_name] if category_name else [],
            is_family_friendly=is_family_friendly,
            is_indoor=is_indoor,
            language=locale.split("_")[0] if locale else "en",
            popularity=_capacity_popularity(event.get("capacity"), event.get("capacity_remaining")),
        )


def _to_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _capacity_popularity(capacity: Any, remaining: Any) -> Optional[float]:
    if not isinstance(capacity, (int, float)) or capacity <= 0:
        return None
    taken = capacity - (remaining or 0)
    return max(0.0, min(1.0, taken / capacity))
