"""Built-in sample happenings used when no provider returns anything."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

from app.pipeline.normalize import parse_timestamp
from app.schemas import RawItem

SOURCE = "mock"


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def placeholder_items(city: str, start_iso: str) -> List[RawItem]:
    """Five representative items anchored on the search window start."""
    start = parse_timestamp(start_iso) or datetime.now(timezone.utc)

    return [
        RawItem(
            external_id="mock-1",
            source=SOURCE,
            title=f"{city} City Museum",
            description="Explore the rich history and culture of the city through interactive exhibitions.",
            category=["attraction", "exhibition"],
            venue_name="City Museum",
            city=city,
            price_min=15,
            price_max=25,
            currency="USD",
            url="https://example.com/museum",
            tags=["museum", "history", "culture"],
            is_family_friendly=True,
            is_indoor=True,
            popularity=0.8,
        ),
        RawItem(
            external_id="mock-2",
            source=SOURCE,
            title=f"{city} Food Festival",
            description="Annual food festival featuring local cuisine and international dishes.",
            category=["event"],
            start_time=_iso(start),
            end_time=_iso(start + timedelta(hours=8)),
            venue_name="City Park",
            city=city,
            price_min=0,
            price_max=0,
            currency="USD",
            url="https://example.com/food-festival",
            tags=["food", "festival", "outdoor"],
            is_family_friendly=True,
            is_indoor=False,
            popularity=0.9,
        ),
        RawItem(
            external_id="mock-3",
            source=SOURCE,
            title=f"{city} Walking Tour",
            description="Guided walking tour through historic downtown.",
            category=["tour"],
            start_time=_iso(start + timedelta(hours=24)),
            end_time=_iso(start + timedelta(hours=26)),
            venue_name="Tourist Information Center",
            city=city,
            price_min=20,
            price_max=20,
            currency="USD",
            url="https://example.com/walking-tour",
            tags=["tour", "walking", "history"],
            is_family_friendly=True,
            is_indoor=False,
            popularity=0.7,
        ),
        RawItem(
            external_id="mock-4",
            source=SOURCE,
            title=f"Tech Conference {start.year}",
            description="Annual technology conference with keynote speakers and workshops.",
            category=["seminar", "event"],
            start_time=_iso(start + timedelta(hours=48)),
            end_time=_iso(start + timedelta(hours=56)),
            venue_name="Convention Center",
            city=city,
            price_min=150,
            price_max=300,
            currency="USD",
            url="https://example.com/tech-conf",
            tags=["technology", "conference", "networking"],
            is_family_friendly=False,
            is_indoor=True,
            popularity=0.85,
        ),
        RawItem(
            external_id="mock-5",
            source=SOURCE,
            title="Modern Art Exhibition",
            description="Contemporary art exhibition featuring local and international artists.",
            category=["exhibition"],
            venue_name="Art Gallery",
            city=city,
            price_min=12,
            price_max=12,
            currency="USD",
            url="https://example.com/art-exhibition",
            tags=["art", "exhibition", "gallery"],
            is_family_friendly=True,
            is_indoor=True,
            popularity=0.6,
        ),
    ]
