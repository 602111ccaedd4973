"""Fuzzy duplicate merging for normalised items."""
from __future__ import annotations

from typing import Iterable, List

from app.pipeline.normalize import parse_timestamp
from app.schemas import NormalizedItem
from app.tools.geo import haversine_meters
from app.tools.similarity import string_similarity

STRICT_TITLE_THRESHOLD = 0.90
LOOSE_TITLE_THRESHOLD = 0.80
TIME_WINDOW_SECONDS = 30 * 60
LOCATION_RADIUS_M = 200.0


def _time_proximate(a: NormalizedItem, b: NormalizedItem) -> bool:
    start_a = parse_timestamp(a.start_time)
    start_b = parse_timestamp(b.start_time)
    if start_a is None or start_b is None:
        return False
    return abs((start_a - start_b).total_seconds()) < TIME_WINDOW_SECONDS


def _location_proximate(a: NormalizedItem, b: NormalizedItem) -> bool:
    if not (a.has_coordinates and b.has_coordinates):
        return False
    return haversine_meters(a.lat, a.lng, b.lat, b.lng) < LOCATION_RADIUS_M


def is_duplicate(a: NormalizedItem, b: NormalizedItem) -> bool:
    if not _time_proximate(a, b):
        return False
    similarity = string_similarity(a.normalized_title, b.normalized_title)
    if similarity > STRICT_TITLE_THRESHOLD:
        return True
    return similarity > LOOSE_TITLE_THRESHOLD and _location_proximate(a, b)


def _is_richer(incoming: NormalizedItem, kept: NormalizedItem) -> bool:
    if not kept.description and incoming.description:
        return True
    if not kept.image_url and incoming.image_url:
        return True
    if incoming.popularity and (not kept.popularity or incoming.popularity > kept.popularity):
        return True
    return False


def dedupe(items: Iterable[NormalizedItem]) -> List[NormalizedItem]:
    """Merge near-duplicates, keeping first-seen order of representatives.

    Pairwise scan against every kept representative; fine for the few hundred
    items a single search returns.
    """
    unique: List[NormalizedItem] = []

    for item in items:
        for idx, existing in enumerate(unique):
            if not is_duplicate(item, existing):
                continue
            if _is_richer(item, existing):
                unique[idx] = item.model_copy(update={"id": existing.id})
            break
        else:
            unique.append(item)

    return unique
