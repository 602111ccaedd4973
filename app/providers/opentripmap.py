from __future__ import annotations

import logging
import math
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from app.errors import ProviderError
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

_KINDS: Tuple[str, ...] = (
    "cultural",
    "architecture",
    "entertainment",
    "amusements",
    "interesting_places",
)

MAX_RADIUS_KM = 50.0
KM_PER_DEGREE = 111.0
DETAIL_MIN_RATE = 5


class OpenTripMapProvider:
    """Fetches rated points of interest (untimed attractions) around the city."""

    name = "OpenTripMap"
    BASE_URL = "https://api.opentripmap.com/0.1/en/places"

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
        if query.bbox is None:
            logger.info("[%s] No bounding box provided, skipping", self.name)
            return []
        bbox_key = ",".join(str(v) for v in query.bbox)
        cache_key = f"opentripmap:{query.city}:{bbox_key}"
        return await self._client.fetch_with_cache(self.name, cache_key, lambda: self._search(query, query.bbox))

    async def _search(self, query: ProviderQuery, bbox: Tuple[float, float, float, float]) -> List[RawItem]:
        west, south, east, north = bbox
        center_lat, center_lng = (south + north) / 2, (west + east) / 2
        radius_m = search_radius_km(bbox) * 1000

        items: List[RawItem] = []
        async with self._client.http_client() as http:
            for kind in _KINDS:
                params = {
                    "radius": str(radius_m),
                    "lon": str(center_lng),
                    "lat": str(center_lat),
                    "kinds": kind,
                    "rate": "3",
                    "format": "json",
                    "limit": "100",
                    "apikey": self._api_key or "",
                }
                response = await self._client.request(
                    http, f"{self.BASE_URL}/radius", label=self.name, params=params
                )
                if response.is_error:
                    logger.warning("[%s] API error for %s: HTTP %d", self.name, kind, response.status_code)
                    continue

                for place in response.json() or []:
                    if not place.get("name"):
                        continue
                    detail = await self._detail(http, place)
                    item = self._to_item(place, detail, query)
                    if item is not None:
                        items.append(item)

        unique = _unique_by_location(items)
        logger.info("[%s] Found %d unique attractions", self.name, len(unique))
        return unique

    async def _detail(self, http: httpx.AsyncClient, place: Mapping[str, Any]) -> Dict[str, Any]:
        xid = place.get("xid")
        if not xid or (place.get("rate") or 0) < DETAIL_MIN_RATE:
            return {}
        try:
            response = await self._client.request(
                http, f"{self.BASE_URL}/xid/{xid}", label=self.name, params={"apikey": self._api_key or ""}
            )
            if response.is_success:
                return response.json()
        except (httpx.HTTPError, ProviderError, ValueError):
            logger.debug("[%s] Detail lookup failed for %s", self.name, xid, exc_info=True)
        return {}

    def _to_item(
        self,
        place: Mapping[str, Any],
        detail: Mapping[str, Any],
        query: ProviderQuery,
    ) -> Optional[RawItem]:
        kinds = place.get("kinds") or ""
        categories = ["attraction"]
        if "museums" in kinds or "galleries" in kinds:
            categories.append("exhibition")
        elif "urban_environment" in kinds or "historic" in kinds:
            categories.append("tour")

        point = place.get("point") or {}
        lat = point.get("lat")
        lng = point.get("lon")
        address = detail.get("address") or {}
        city = address.get("city") or query.city
        if address.get("house_number"):
            address_line = f"{address['house_number']} {address.get('road', '')}, {city}"
        else:
            address_line = address.get("road")

        rate = place.get("rate")
        return build_raw_item(
            self.name,
            external_id=str(place.get("xid") or f"{lng},{lat}"),
            source="opentripmap",
            title=place["name"],
            description=(detail.get("wikipedia_extracts") or {}).get("text") or (detail.get("info") or {}).get("descr"),
            category=categories,
            venue_name=place["name"],
            address=address_line,
            city=city,
            lat=lat,
            lng=lng,
            url=detail.get("otm")
            or detail.get("wikipedia")
            or f"https://www.openstreetmap.org/?mlat={lat}&mlon={lng}",
            image_url=(detail.get("preview") or {}).get("source"),
            tags=[k for k in kinds.split(",") if k],
            is_family_friendly="nightclubs" not in kinds and "adult" not in kinds,
            is_indoor="museums" in kinds or "theatres" in kinds,
            popularity=min(1.0, rate / 10) if isinstance(rate, (int, float)) and rate else None,
        )


def search_radius_km(bbox: Tuple[float, float, float, float]) -> float:
    """Half the larger bbox side, capped at ``MAX_RADIUS_KM``."""
    west, south, east, north = bbox
    center_lat = (south + north) / 2
    height_km = abs(north - south) * KM_PER_DEGREE
    width_km = abs(east - west) * KM_PER_DEGREE * math.cos(math.radians(center_lat))
    return min(MAX_RADIUS_KM, max(height_km, width_km) / 2)


def _unique_by_location(items: List[RawItem]) -> List[RawItem]:
    # the same place shows up under several kinds
    unique: Dict[str, RawItem] = {}
    for item in items:
        key = f"{item.lat:.4f},{item.lng:.4f}" if item.has_coordinates else item.external_id
        current = unique.get(key)
        if current is None or (item.description and not current.description):
            unique[key] = item
    return list(unique.values())
