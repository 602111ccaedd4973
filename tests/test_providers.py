import asyncio

import httpx
import pytest

from app.config import Settings
from app.providers.base import ProviderClient, ProviderQuery, build_raw_item
from app.providers.eventbrite import EventbriteProvider
from app.providers.meetup import MeetupProvider
from app.providers.opentripmap import OpenTripMapProvider, search_radius_km
from app.providers.registry import build_providers, enabled_provider_names, get_provider
from app.schemas import RawItem
from app.tools.cache import TTLCache

QUERY = ProviderQuery(
    city="Paris",
    start_iso="2025-06-10T00:00:00Z",
    end_iso="2025-06-17T00:00:00Z",
    bbox=(2.22, 48.81, 2.47, 48.90),
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def _no_sleep(_delay: float) -> None:
    return None


def _client(handler=None, clock=None) -> ProviderClient:
    transport = httpx.MockTransport(handler) if handler else None
    cache = TTLCache(1800, clock=clock) if clock else TTLCache(1800)
    return ProviderClient(cache, asyncio.Semaphore(3), transport=transport, sleep=_no_sleep)


def _item(external_id: str = "1") -> RawItem:
    return RawItem(external_id=external_id, source="test", title="T", category=["event"], url="https://x")


def test_fresh_cache_hit_skips_fetcher():
    calls = []

    async def fetcher():
        calls.append(1)
        return [_item()]

    async def run():
        client = _client()
        first = await client.fetch_with_cache("Test", "key", fetcher)
        second = await client.fetch_with_cache("Test", "key", fetcher)
        return first, second

    first, second = asyncio.run(run())
    assert first == second
    assert len(calls) == 1


def test_stale_entry_served_when_refresh_fails():
    clock = FakeClock()

    async def ok():
        return [_item("cached")]

    async def boom():
        raise httpx.ConnectError("down")

    async def run():
        client = _client(clock=clock)
        await client.fetch_with_cache("Test", "key", ok)
        clock.now += 3600
        return await client.fetch_with_cache("Test", "key", boom)

    items = asyncio.run(run())
    assert [i.external_id for i in items] == ["cached"]


def test_failure_without_cache_entry_propagates():
    async def boom():
        raise RuntimeError("provider exploded")

    with pytest.raises(RuntimeError):
        asyncio.run(_client().fetch_with_cache("Test", "key", boom))


def test_build_raw_item_skips_malformed_records():
    assert build_raw_item("Test", external_id="1", source="t", title="T", category=[], url="u") is None
    assert build_raw_item("Test", external_id="1", source="t", title="T", category=["tour"], url="u") is not None


def test_disabled_provider_returns_nothing():
    provider = EventbriteProvider(_client(), None)
    assert not provider.enabled
    assert asyncio.run(provider.fetch_items(QUERY)) == []


def test_eventbrite_maps_events():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "events": [
                    {
                        "id": "eb-1",
                        "name": {"text": "Family Tech Conference"},
                        "description": {"text": "Talks"},
                        "category": {"name": "Science & Tech Conference"},
                        "start": {"utc": "2025-06-11T08:00:00Z", "timezone": "Europe/Paris"},
                        "end": {"utc": "2025-06-11T16:00:00Z"},
                        "venue": {
                            "name": "Convention Center",
                            "latitude": "48.83",
                            "longitude": "2.29",
                            "address": {"city": "Paris", "localized_address_display": "1 Place, Paris"},
                        },
                        "is_free": True,
                        "currency": "EUR",
                        "url": "https://eventbrite.com/e/1",
                        "locale": "fr_FR",
                        "capacity": 200,
                        "capacity_remaining": 50,
                    },
                    {"id": "eb-bad", "name": {"text": "Broken"}, "venue": {"latitude": "999"}},
                ]
            },
        )

    items = asyncio.run(EventbriteProvider(_client(handler), "token").fetch_items(QUERY))

    assert len(items) == 1
    item = items[0]
    assert item.category == ["event", "seminar"]
    assert item.price_min == 0.0
    assert item.lat == 48.83 and item.lng == 2.29
    assert item.is_indoor is True
    assert item.is_family_friendly is True
    assert item.language == "fr"
    assert item.popularity == 0.75
    params = seen[0].url.params
    assert params["location.within"] == "20km"
    assert params["token"] == "token"


def test_meetup_maps_epoch_times_and_rsvps():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "events": [
                    {
                        "id": 42,
                        "name": "Python Meetup",
                        "time": 1749549600000,
                        "duration": 7200000,
                        "yes_rsvp_count": 30,
                        "rsvp_limit": 60,
                        "group": {"name": "PyParis", "category": {"shortname": "Tech"}},
                        "venue": {"name": "Station F", "lat": 48.83, "lon": 2.37},
                        "link": "https://meetup.com/e/42",
                    }
                ]
            },
        )

    items = asyncio.run(MeetupProvider(_client(handler), "key").fetch_items(QUERY))

    item = items[0]
    assert item.external_id == "42"
    assert item.category == ["event", "seminar"]
    assert item.start_time == "2025-06-10T10:00:00+00:00"
    assert item.end_time == "2025-06-10T12:00:00+00:00"
    assert item.attendee_count == 30
    assert item.popularity == 0.5


def test_meetup_http_error_propagates():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "bad key"})

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(MeetupProvider(_client(handler), "key").fetch_items(QUERY))


def test_opentripmap_merges_kinds_and_fetches_details():
    detail_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/radius"):
            return httpx.Response(
                200,
                json=[
                    {
                        "xid": "W1",
                        "name": "Louvre",
                        "kinds": "cultural,museums",
                        "rate": 7,
                        "point": {"lat": 48.8606, "lon": 2.3376},
                    },
                    {"xid": "W2", "name": "", "kinds": "cultural", "rate": 3, "point": {"lat": 48.1, "lon": 2.1}},
                ],
            )
        detail_calls.append(request.url.path)
        return httpx.Response(200, json={"wikipedia_extracts": {"text": "Art museum"}, "otm": "https://otm/W1"})

    items = asyncio.run(OpenTripMapProvider(_client(handler), "key").fetch_items(QUERY))

    assert len(items) == 1
    item = items[0]
    assert item.category == ["attraction", "exhibition"]
    assert item.start_time is None
    assert item.description == "Art museum"
    assert item.popularity == 0.7
    assert item.is_indoor is True
    assert detail_calls and all(path.endswith("/xid/W1") for path in detail_calls)


def test_opentripmap_needs_bbox():
    query = ProviderQuery(city="Paris", start_iso=QUERY.start_iso, end_iso=QUERY.end_iso)
    assert asyncio.run(OpenTripMapProvider(_client(), "key").fetch_items(query)) == []


def test_search_radius_is_capped():
    assert search_radius_km((0.0, 0.0, 10.0, 10.0)) == 50.0
    assert search_radius_km((2.0, 48.0, 2.1, 48.1)) == pytest.approx(5.55, rel=0.01)


def test_registry_keeps_enabled_providers_in_order():
    settings = Settings(eventbrite_api_key="eb", meetup_api_key="mu")
    providers = build_providers(settings, _client())

    assert enabled_provider_names(providers) == ["Eventbrite", "Meetup"]
    assert get_provider(providers, "meetup") is providers[1]
    assert get_provider(providers, "opentripmap") is None


def test_shared_limiter_bounds_concurrent_fetches():
    running = 0
    peak = 0

    def slow(tag: str):
        async def fetcher():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return [_item(tag)]

        return fetcher

    async def run():
        client = ProviderClient(TTLCache(1800), asyncio.Semaphore(1), sleep=_no_sleep)
        return await asyncio.gather(
            client.fetch_with_cache("A", "key-a", slow("a")),
            client.fetch_with_cache("B", "key-b", slow("b")),
        )

    first, second = asyncio.run(run())

    assert peak == 1
    assert [first[0].external_id, second[0].external_id] == ["a", "b"]


def test_opentripmap_ignores_rate_limited_detail_lookups():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/radius"):
            if request.url.params["kinds"] != "cultural":
                return httpx.Response(200, json=[])
            return httpx.Response(
                200,
                json=[
                    {"xid": "A1", "name": "Musee A", "kinds": "museums", "rate": 7, "point": {"lat": 48.86, "lon": 2.33}},
                    {"xid": "B2", "name": "Musee B", "kinds": "museums", "rate": 6, "point": {"lat": 48.85, "lon": 2.31}},
                ],
            )
        return httpx.Response(429)

    items = asyncio.run(OpenTripMapProvider(_client(handler), "key").fetch_items(QUERY))

    assert [item.external_id for item in items] == ["A1", "B2"]
    assert all(item.description is None for item in items)
