"""City geocoding with an in-process TTL cache."""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from app.config import Settings
from app.errors import GeocodingError, GeocodingNotFoundError
from app.schemas import BoundingBox, GeocodingResult
from app.tools.cache import TTLCache

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
GOOGLE_TIMEZONE_URL = "https://maps.googleapis.com/maps/api/timezone/json"
USER_AGENT = "happenings-aggregator/1.0"

# roughly 20km at the equator
DEFAULT_BBOX_DELTA = 0.18


def estimate_timezone(lng: float) -> str:
    """Whole-hour zone from longitude, as an IANA ``Etc/GMT`` name.

    ``Etc/GMT`` names use POSIX signs: UTC+2 is ``Etc/GMT-2``.
    """
    offset = max(-12, min(14, round(lng / 15)))
    if offset == 0:
        return "UTC"
    return f"Etc/GMT{'-' if offset > 0 else '+'}{abs(offset)}"


def _valid_timezone(name: Any) -> Optional[str]:
    if not isinstance(name, str) or not name:
        return None
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return name


class Geocoder:
    """Resolves a free-text city name to coordinates, bbox and timezone."""

    def __init__(
        self,
        cache: TTLCache[GeocodingResult],
        *,
        google_api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cache = cache
        self._google_api_key = google_api_key
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "Geocoder":
        return cls(
            TTLCache(settings.geocode_cache_ttl_minutes * 60),
            google_api_key=settings.google_places_api_key,
            timeout=settings.request_timeout_seconds,
        )

    async def resolve(self, city: str) -> GeocodingResult:
        cache_key = city.strip().lower()
        cached = self.cache.get_fresh(cache_key)
        if cached is not None:
            return cached

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as http:
            try:
                result = await self._nominatim(http, city)
            except GeocodingError:
                if not self._google_api_key:
                    raise
                logger.warning("Nominatim lookup failed for %s; trying Google", city, exc_info=True)
                result = await self._google(http, city)

        self.cache.set(cache_key, result)
        return result

    async def _nominatim(self, http: httpx.AsyncClient, city: str) -> GeocodingResult:
        params = {
            "q": city,
            "format": "json",
            "limit": "1",
            "accept-language": "en",
            "addressdetails": "1",
            "extratags": "1",
        }
        try:
            response = await http.get(NOMINATIM_URL, params=params, headers={"User-Agent": USER_AGENT})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GeocodingError(f"Nominatim API error: {exc}") from exc

        if not data:
            raise GeocodingNotFoundError(city)

        place = data[0]
        try:
            lat = float(place["lat"])
            lng = float(place["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(f"Nominatim returned no coordinates for {city}") from exc

        raw_bbox = place.get("boundingbox") or []
        bbox: BoundingBox
        if len(raw_bbox) == 4:
            # nominatim order is south, north, west, east
            bbox = (float(raw_bbox[2]), float(raw_bbox[0]), float(raw_bbox[3]), float(raw_bbox[1]))
        else:
            bbox = (
                lng - DEFAULT_BBOX_DELTA,
                lat - DEFAULT_BBOX_DELTA,
                lng + DEFAULT_BBOX_DELTA,
                lat + DEFAULT_BBOX_DELTA,
            )

        address = place.get("address") or {}
        display_name = place.get("display_name") or city
        return GeocodingResult(
            lat=lat,
            lng=lng,
            bbox=bbox,
            timezone=_valid_timezone((place.get("extratags") or {}).get("timezone")) or estimate_timezone(lng),
            display_name=display_name,
            city=address.get("city")
            or address.get("town")
            or address.get("municipality")
            or display_name.split(",")[0],
            country=address.get("country") or "",
        )

    async def _google(self, http: httpx.AsyncClient, city: str) -> GeocodingResult:
        try:
            response = await http.get(GOOGLE_GEOCODE_URL, params={"address": city, "key": self._google_api_key})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise GeocodingError(f"Google Geocoding API error: {exc}") from exc

        results: List[Dict[str, Any]] = data.get("results") or []
        if not results:
            raise GeocodingNotFoundError(city)

        place = results[0]
        geometry = place.get("geometry") or {}
        location = geometry.get("location") or {}
        viewport = geometry.get("viewport") or {}
        southwest = viewport.get("southwest") or location
        northeast = viewport.get("northeast") or location
        try:
            lat = float(location["lat"])
            lng = float(location["lng"])
            bbox: BoundingBox = (
                float(southwest["lng"]),
                float(southwest["lat"]),
                float(northeast["lng"]),
                float(northeast["lat"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError(f"Google returned no coordinates for {city}") from exc

        components = place.get("address_components") or []
        city_name = _component(components, ("locality", "administrative_area_level_1")) or city
        country = _component(components, ("country",)) or ""

        return GeocodingResult(
            lat=lat,
            lng=lng,
            bbox=bbox,
            timezone=await self._google_timezone(http, lat, lng),
            display_name=place.get("formatted_address") or city_name,
            city=city_name,
            country=country,
        )

    async def _google_timezone(self, http: httpx.AsyncClient, lat: float, lng: float) -> str:
        params = {
            "location": f"{lat},{lng}",
            "timestamp": str(int(time.time())),
            "key": self._google_api_key,
        }
        try:
            response = await http.get(GOOGLE_TIMEZONE_URL, params=params)
            response.raise_for_status()
            zone = response.json().get("timeZoneId")
        except (httpx.HTTPError, ValueError):
            logger.warning("Google timezone lookup failed; estimating from longitude", exc_info=True)
            zone = None
        return _valid_timezone(zone) or estimate_timezone(lng)


def _component(components: List[Mapping[str, Any]], types: tuple[str, ...]) -> Optional[str]:
    for component in components:
        if any(t in (component.get("types") or []) for t in types):
            return component.get("long_name")
    return None
