"""Provider record normalisation."""
from __future__ import annotations

import hashlib
import logging
import os
import re
from datetime import datetime, timezone, tzinfo
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.schemas import NormalizedItem, RawItem

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

ID_LENGTH = 16


def make_item_id(source: str, external_id: str) -> str:
    """Truncated SHA-256 of ``source:external_id``; collisions are tolerated."""
    digest = hashlib.sha256(f"{source}:{external_id}".encode("utf-8")).hexdigest()
    return digest[:ID_LENGTH]


def normalize_title(title: str) -> str:
    text = (title or "").lower().strip()
    text = re.sub(r"[^\w\s]", "", text)
    return re.sub(r"\s+", " ", text)


def parse_timestamp(value: Optional[str], default_tz: tzinfo = timezone.utc) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime.

    Strings without an offset are read in ``default_tz``. Returns ``None``
    for anything unparseable.
    """
    if not value:
        return None
    text = str(value).strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed


def convert_timezone(value: str, source_tz: str, target_tz: str) -> str:
    """Re-express ``value`` (read in ``source_tz``) in ``target_tz``.

    Any failure leaves the original string untouched.
    """
    try:
        source = ZoneInfo(source_tz)
        target = ZoneInfo(target_tz)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown timezone pair %s -> %s; keeping %s", source_tz, target_tz, value)
        return value

    parsed = parse_timestamp(value, default_tz=source)
    if parsed is None:
        logger.debug("Unparseable timestamp %r; keeping original", value)
        return value
    return parsed.astimezone(target).isoformat()


def normalize(
    items: Iterable[RawItem],
    tz: str,
    categories: Optional[Sequence[str]] = None,
    *,
    now: Optional[datetime] = None,
) -> List[NormalizedItem]:
    """Canonicalise provider records for the target display timezone."""
    wanted = set(categories or ())
    stamp = (now or datetime.now(timezone.utc)).isoformat()

    normalized: List[NormalizedItem] = []
    for item in items:
        if wanted and not any(cat in wanted for cat in item.category):
            continue

        start_time = item.start_time
        end_time = item.end_time
        if item.timezone and item.timezone != tz:
            if start_time:
                start_time = convert_timezone(start_time, item.timezone, tz)
            if end_time:
                end_time = convert_timezone(end_time, item.timezone, tz)

        data = item.model_dump()
        data.update(
            id=make_item_id(item.source, item.external_id),
            normalized_title=normalize_title(item.title),
            start_time=start_time,
            end_time=end_time,
            timezone=tz,
            last_updated=item.last_updated or stamp,
        )
        normalized.append(NormalizedItem.model_validate(data))

    return normalized
