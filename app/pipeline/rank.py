"""Scoring strategies for aggregated happenings."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from app.pipeline.normalize import parse_timestamp
from app.schemas import NormalizedItem, ScoredItem
from app.tools.geo import haversine_meters

_CATEGORY_WEIGHTS: Dict[str, float] = {
    "event": 1.0,
    "exhibition": 1.2,
    "attraction": 1.1,
    "seminar": 1.3,
    "tour": 1.2,
}

# (days until start, bonus)
_URGENCY_BANDS: Tuple[Tuple[float, float], ...] = (
    (1.0, 5.0),
    (3.0, 3.0),
    (7.0, 1.0),
)


def rank(
    items: Iterable[NormalizedItem],
    sort_by: str = "recommended",
    center: Optional[Tuple[float, float]] = None,
    *,
    now: Optional[datetime] = None,
) -> List[ScoredItem]:
    """Score every item and return them sorted by descending score.

    ``center`` is ``(lat, lng)``. ``closest`` without a center falls back to
    the recommended blend. Python's sort is stable, so ties keep input order.
    """
    now = now or datetime.now(timezone.utc)

    scored: List[ScoredItem] = []
    for item in items:
        if sort_by == "soonest":
            score = _soonest_score(item, now)
        elif sort_by == "closest" and center is not None:
            score = _closest_score(item, center)
        elif sort_by == "price":
            score = _price_score(item)
        else:
            score = recommended_score(item, center, now)
        scored.append(ScoredItem.model_validate({**item.model_dump(), "score": score}))

    scored.sort(key=lambda s: s.score, reverse=True)
    return scored


def _soonest_score(item: NormalizedItem, now: datetime) -> float:
    start = parse_timestamp(item.start_time)
    if start is None:
        return 0.0
    seconds_until = max(0.0, (start - now).total_seconds())
    return 1.0 / (1.0 + seconds_until)


def _closest_score(item: NormalizedItem, center: Tuple[float, float]) -> float:
    if not item.has_coordinates:
        return 0.0
    distance = haversine_meters(center[0], center[1], item.lat, item.lng)
    return 1.0 / (1.0 + distance)


def _price_score(item: NormalizedItem) -> float:
    if item.price_min is None:
        return 1.0
    return 1.0 / (1.0 + item.price_min)


def recommended_score(
    item: NormalizedItem,
    center: Optional[Tuple[float, float]],
    now: datetime,
) -> float:
    score = 0.0

    # popularity (0-30) and crowd size (0-10)
    if item.popularity:
        score += item.popularity * 30
    if item.attendee_count:
        score += min(10.0, math.log10(item.attendee_count + 1) * 2)

    # recency (0-20)
    updated = parse_timestamp(item.last_updated)
    if updated is not None:
        hours_since = (now - updated).total_seconds() / 3600
        score += max(0.0, 20 - hours_since / 24)

    # proximity (0-20), one point per km
    if center is not None and item.has_coordinates:
        distance_km = haversine_meters(center[0], center[1], item.lat, item.lng) / 1000
        score += max(0.0, 20 - distance_km)

    # completeness (0-15)
    for present in (
        item.description,
        item.image_url,
        item.venue_name,
        item.address,
        item.price_min is not None,
    ):
        if present:
            score += 3

    # category boost (0-10)
    boost = sum(_CATEGORY_WEIGHTS.get(cat, 1.0) for cat in item.category)
    score += min(10.0, boost * 2)

    # urgency (0-5)
    start = parse_timestamp(item.start_time)
    if start is not None:
        days_until = (start - now).total_seconds() / 86400
        for limit, bonus in _URGENCY_BANDS:
            if days_until < limit:
                score += bonus
                break

    return score
