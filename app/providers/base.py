from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from app.config import Settings
from app.schemas import BoundingBox, RawItem
from app.tools.cache import TTLCache
from app.tools.http import RetryPolicy, Sleeper, request_with_retry

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

USER_AGENT = "happenings-aggregator/1.0"


@dataclass(frozen=True)
class ProviderQuery:
    city: str
    start_iso: str
    end_iso: str
    bbox: Optional[BoundingBox] = None

    @property
    def center(self) -> Optional[tuple[float, float]]:
        """``(lat, lng)`` at the middle of the bounding box, if there is one."""
        if self.bbox is None:
            return None
        west, south, east, north = self.bbox
        return (south + north) / 2, (west + east) / 2


@runtime_checkable
class Provider(Protocol):
    name: str

    @property
    def enabled(self) -> bool: ...

    async def fetch_items(self, query: ProviderQuery) -> List[RawItem]: ...


ProviderList = List[Provider]


class ProviderClient:
    """Caching, rate limiting and retry helpers shared by every adapter.

    One instance is built per process and handed to each adapter, so all
    adapters share the same response cache and concurrency budget.
    """

    def __init__(
        self,
        cache: TTLCache[List[RawItem]],
        limiter: asyncio.Semaphore,
        *,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.limiter = limiter
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ProviderClient":
        return cls(
            TTLCache(settings.provider_cache_ttl_minutes * 60),
            asyncio.Semaphore(settings.max_concurrent_requests),
            timeout=settings.request_timeout_seconds,
            retry_policy=RetryPolicy(max_attempts=settings.provider_max_retries),
            transport=transport,
        )

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )

    async def request(self, http: httpx.AsyncClient, url: str, *, label: str, **kwargs: Any) -> httpx.Response:
        return await request_with_retry(
            http,
            url,
            policy=self.retry_policy,
            label=label,
            sleep=self._sleep,
            **kwargs,
        )

    async def fetch_with_cache(
        self,
        label: str,
        cache_key: str,
        fetcher: Callable[[], Awaitable[List[RawItem]]],
    ) -> List[RawItem]:
        """Serve a fresh cache hit, otherwise fetch under the shared limiter.

        On failure a stale entry is served if one exists; without any entry
        the error propagates to the caller.
        """
        cached = self.cache.get_fresh(cache_key)
        if cached is not None:
            logger.info("[%s] Cache hit for %s", label, cache_key)
            return cached

        stale = self.cache.get_entry(cache_key)
        logger.info("[%s] Fetching data for %s", label, cache_key)
        try:
            async with self.limiter:
                items = await fetcher()
        except Exception:
            logger.error("[%s] Error fetching data for %s", label, cache_key, exc_info=True)
            if stale is not None:
                logger.info("[%s] Using stale cache due to error", label)
                return stale.value
            raise

        self.cache.set(cache_key, items)
        return items


def build_raw_item(label: str, **fields: Any) -> Optional[RawItem]:
    """Validate one provider record, skipping it (with a warning) if malformed."""
    try:
        return RawItem(**fields)
    except ValidationError as exc:
        logger.warning(
            "[%s] Skipping malformed record %s: %d validation error(s)",
            label,
            fields.get("external_id"),
            exc.error_count(),
        )
        return None
