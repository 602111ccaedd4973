"""Exception types shared across the aggregation service."""
from __future__ import annotations


class HappeningsError(Exception):
    """Base class for errors raised by the aggregator."""


class GeocodingError(HappeningsError):
    """The geocoding backends could not be reached or returned garbage."""


class GeocodingNotFoundError(GeocodingError):
    """No location matched the requested city."""

    def __init__(self, city: str) -> None:
        super().__init__(f"City not found: {city}")
        self.city = city


class ProviderError(HappeningsError):
    """A provider adapter failed to produce items."""


class ProviderRateLimitedError(ProviderError):
    """Every attempt against a provider endpoint came back with HTTP 429."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"Rate limited after {attempts} attempt(s): {url}")
        self.url = url
        self.attempts = attempts
