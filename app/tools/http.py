from __future__ import annotations

import asyncio
import logging
import os
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from app.errors import ProviderRateLimitedError

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("HAPPENINGS_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

Sleeper = Callable[[float], Awaitable[Any]]


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    # 429: exponential backoff with jitter
    rate_limit_base_ms: int = 1000
    rate_limit_cap_ms: int = 10000
    rate_limit_jitter_ms: int = 1000
    # 5xx / transport: exponential backoff, no jitter
    error_base_ms: int = 500
    error_cap_ms: int = 5000

    def rate_limit_delay(self, attempt: int) -> float:
        delay_ms = min(self.rate_limit_base_ms * (2 ** attempt), self.rate_limit_cap_ms)
        return (delay_ms + random.uniform(0, self.rate_limit_jitter_ms)) / 1000.0

    def error_delay(self, attempt: int) -> float:
        return min(self.error_base_ms * (2 ** attempt), self.error_cap_ms) / 1000.0


async def request_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    policy: Optional[RetryPolicy] = None,
    label: str = "http",
    sleep: Sleeper = asyncio.sleep,
    **kwargs: Any,
) -> httpx.Response:
    """Issue a request, retrying on 429, 5xx and transport failures.

    Responses with any other status (including 4xx) are returned to the caller
    untouched so adapters can decide what a 404 means for them. When every
    attempt fails the last error is raised; if the only failures were 429s a
    ``ProviderRateLimitedError`` is raised instead.
    """
    policy = policy or RetryPolicy()
    last_exc: Exception | None = None

    for attempt in range(policy.max_attempts):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            last_exc = exc
            logger.warning("[%s] Attempt %d/%d failed: %s", label, attempt + 1, policy.max_attempts, exc)
        else:
            if response.status_code == 429:
                delay = policy.rate_limit_delay(attempt)
                logger.info("[%s] Rate limited, waiting %.2fs", label, delay)
                await sleep(delay)
                continue
            if response.status_code >= 500:
                last_exc = httpx.HTTPStatusError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    request=response.request,
                    response=response,
                )
                logger.warning(
                    "[%s] Attempt %d/%d got HTTP %d",
                    label,
                    attempt + 1,
                    policy.max_attempts,
                    response.status_code,
                )
            else:
                return response

        if attempt < policy.max_attempts - 1:
            await sleep(policy.error_delay(attempt))

    if last_exc is None:
        raise ProviderRateLimitedError(url, policy.max_attempts)
    raise last_exc
