from __future__ import annotations

from datetime import datetime
from typing import Iterable, List

from app.pipeline.normalize import parse_timestamp
from app.schemas import NormalizedItem


def _as_datetime(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = parse_timestamp(value.isoformat())
    else:
        parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid window timestamp: {value!r}")
    return parsed


def filter_by_date_range(
    items: Iterable[NormalizedItem],
    start: str | datetime,
    end: str | datetime,
) -> List[NormalizedItem]:
    """Keep items overlapping the inclusive [start, end] window.

    Untimed attractions are always kept. Anything else without a usable start
    time is dropped.
    """
    window_start = _as_datetime(start)
    window_end = _as_datetime(end)

    kept: List[NormalizedItem] = []
    for item in items:
        if not item.start_time:
            if "attraction" in item.category:
                kept.append(item)
            continue

        item_start = parse_timestamp(item.start_time)
        if item_start is None:
            continue
        item_end = parse_timestamp(item.end_time) or item_start

        if item_start <= window_end and item_end >= window_start:
            kept.append(item)
    return kept
