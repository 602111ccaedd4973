from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
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


class MeetupProvider:
    """Fetches upcoming meetups near the searched city."""

    name = "Meetup"
    SEARCH_URL = "https://api.meetup.com/find/upcoming_events"
    RADIUS_MILES = "25"

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
        cache_key = f"meetup:{query.city}:{query.start_iso}:{query.end_iso}"
        return await self._client.fetch_with_cache(self.name, cache_key, lambda: self._search(query))

    async def _search(self, query: ProviderQuery) -> List[RawItem]:
        params: Dict[str, str] = {
            "key": self._api_key or "",
            "sign": "true",
            "photo-host": "public",
            "radius": self.RADIUS_MILES,
            "status": "upcoming",
            "page": "100",
        }
        center = query.center
        if center is not None:
            params["lat"] = str(center[0])
            params["lon"] = str(center[1])
        else:
            params["text"] = query.city

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
        group = event.get("group") or {}
        group_category = ((group.get("category") or {}).get("shortname") or "").lower()
        categories = ["event"]
        if "tech" in group_category or "career" in group_category:
            categories.append("seminar")
        elif "tour" in group_category or "outdoor" in group_category:
            categories.append("tour")

        venue = event.get("venue") or {}
        fee = event.get("fee") or {}
        start_ms = event.get("time")
        duration_ms = event.get("duration")
        rsvps = event.get("yes_rsvp_count")
        rsvp_limit = event.get("rsvp_limit")

        end_time = None
        if isinstance(start_ms, (int, float)) and isinstance(duration_ms, (int, float)):
            end_time = _from_epoch_ms(start_ms + duration_ms)

        popularity = None
        if rsvp_limit and isinstance(rsvps, (int, float)):
            popularity = min(1.0, rsvps / rsvp_limit)

        venue_name = venue.get("name")
        return build_raw_item(
            self.name,
            external_id=str(event.get("id")),
            source="meetup",
            title=event.get("name") or "Meetup Event",
            description=event.get("description"),
            category=categories,
            start_time=_from_epoch_ms(start_ms),
            end_time=end_time,
            timezone=event.get("timezone"),
            venue_name=venue_name or group.get("name"),
            address=venue.get("address_1"),
            city=venue.get("city") or query.city,
            lat=venue.get("lat"),
            lng=venue.get("lon"),
            price_min=fee.get("amount") or 0.0,
            price_max=fee.get("amount"),
            currency=fee.get("currency") or "USD",
            url=event.get("link") or "",
            image_url=(event.get("featured_photo") or {}).get("photo_link"),
            tags=[tag for tag in (group_category, group.get("name")) if tag],
            is_family_friendly="singles" not in group_category and "nightlife" not in group_category,
            is_indoor=None if "online" in (venue_name or "").lower() else True,
            language="en",
            attendee_count=rsvps,
            popularity=popularity,
        )


def _from_epoch_ms(value: Any) -> Optional[str]:
    if not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
