import re
from datetime import datetime, timedelta, timezone
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Category = Literal["event", "exhibition", "attraction", "seminar", "tour"]
SortStrategy = Literal["recommended", "soonest", "closest", "price"]

MAX_RANGE_DAYS = 60
_ISO_DATE_PREFIX = re.compile(r"\d{4}-\d{2}-\d{2}")

# west, south, east, north
BoundingBox = Tuple[float, float, float, float]


# ------- Provider records -------
class RawItem(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    external_id: str
    source: str
    title: str
    description: Optional[str] = None
    category: List[Category] = Field(..., min_length=1)
    start_time: Optional[str] = None      # ISO, provider local
    end_time: Optional[str] = None        # ISO, provider local
    timezone: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    price_min: Optional[float] = Field(None, ge=0)
    price_max: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    url: str
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_family_friendly: Optional[bool] = None
    is_indoor: Optional[bool] = None
    language: Optional[str] = None
    last_updated: Optional[str] = None
    popularity: Optional[float] = Field(None, ge=0, le=1)
    attendee_count: Optional[int] = Field(None, ge=0)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class NormalizedItem(RawItem):
    id: str
    normalized_title: str
    last_updated: str


class ScoredItem(NormalizedItem):
    score: float = 0.0


# ------- Geocoding -------
class GeocodingResult(BaseModel):
    lat: float
    lng: float
    bbox: BoundingBox
    timezone: str
    display_name: str
    city: str
    country: str = ""


# ------- Request models -------
class GeocodeParams(BaseModel):
    city: str = Field(..., min_length=1, max_length=100)


class SearchParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    city: str = Field(..., min_length=1, max_length=100)
    start: datetime
    end: datetime
    categories: Optional[List[Category]] = None
    sort_by: SortStrategy = "recommended"

    @field_validator("start", "end", mode="before")
    @classmethod
    def _require_iso_string(cls, value: Any) -> Any:
        # numbers would otherwise be read as unix timestamps
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not _ISO_DATE_PREFIX.match(value.strip()):
            raise ValueError("must be an ISO-8601 datetime string")
        return value.strip()

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "SearchParams":
        if self.end <= self.start:
            raise ValueError("End date must be after start date")
        if self.end - self.start > timedelta(days=MAX_RANGE_DAYS):
            raise ValueError(f"Date range cannot exceed {MAX_RANGE_DAYS} days")
        return self

    @property
    def start_iso(self) -> str:
        return _iso_utc(self.start)

    @property
    def end_iso(self) -> str:
        return _iso_utc(self.end)


def _iso_utc(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# ------- Response models -------
class SearchResponse(BaseModel):
    city: str
    country: str
    display_name: str
    timezone: str
    center: Tuple[float, float]
    bbox: BoundingBox
    start_iso: str
    end_iso: str
    count: int
    providers: List[str] = Field(default_factory=list)
    items: List[ScoredItem] = Field(default_factory=list)
