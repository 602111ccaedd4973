import asyncio
from datetime import datetime, timezone
from typing import List

from app.orchestrator import gather_provider_items, search_happenings
from app.pipeline.normalize import make_item_id
from app.providers.base import ProviderQuery
from app.schemas import GeocodingResult, RawItem

NOW = datetime(2025, 6, 9, 12, 0, tzinfo=timezone.utc)
QUERY = ProviderQuery(city="Paris", start_iso="2025-06-10T00:00:00Z", end_iso="2025-06-17T00:00:00Z")


class FakeProvider:
    def __init__(self, name: str, items: List[RawItem] | None = None, error: Exception | None = None):
        self.name = name
        self._items = items or []
        self._error = error
        self.queries: List[ProviderQuery] = []

    @property
    def enabled(self) -> bool:
        return True

    async def fetch_items(self, query: ProviderQuery) -> List[RawItem]:
        self.queries.append(query)
        await asyncio.sleep(0)
        if self._error is not None:
            raise self._error
        return list(self._items)


class FakeGeocoder:
    def __init__(self) -> None:
        self.calls: List[str] = []

    async def resolve(self, city: str) -> GeocodingResult:
        self.calls.append(city)
        return GeocodingResult(
            lat=48.8566,
            lng=2.3522,
            bbox=(2.22, 48.81, 2.47, 48.90),
            timezone="Europe/Paris",
            display_name="Paris, France",
            city="Paris",
            country="France",
        )


def _raw(source: str, external_id: str, title: str, start: str | None = "2025-06-12T18:00:00Z", **extra) -> RawItem:
    return RawItem(
        external_id=external_id,
        source=source,
        title=title,
        category=extra.pop("category", ["event"]),
        start_time=start,
        url=f"https://example.com/{source}/{external_id}",
        **extra,
    )


def test_failing_provider_does_not_sink_the_others():
    providers = [
        FakeProvider("A", [_raw("a", "1", "Opera Gala")]),
        FakeProvider("B", error=RuntimeError("boom")),
        FakeProvider("C", [_raw("c", "2", "Food Market"), _raw("c", "3", "Night Run")]),
    ]

    items, outcomes = asyncio.run(gather_provider_items(providers, QUERY))

    assert [i.external_id for i in items] == ["1", "2", "3"]
    assert [(o.name, o.count, o.ok) for o in outcomes] == [("A", 1, True), ("B", 0, False), ("C", 2, True)]
    assert outcomes[1].error == "boom"


def test_search_runs_full_pipeline():
    providers = [
        FakeProvider("A", [_raw("a", "1", "Jazz Night", lat=48.86, lng=2.35, popularity=0.9)]),
        FakeProvider(
            "B",
            [
                _raw("b", "9", "jazz night!", start="2025-06-12T18:10:00Z", description="live"),
                _raw("b", "10", "Too Late", start="2025-07-01T18:00:00Z"),
                _raw("b", "11", "Eiffel Tower", start=None, category=["attraction"]),
            ],
        ),
        FakeProvider("C", error=RuntimeError("down")),
    ]
    geocoder = FakeGeocoder()
    params = {"city": "Paris", "start": "2025-06-10T00:00:00Z", "end": "2025-06-17T00:00:00Z"}

    result = asyncio.run(search_happenings(params, providers=providers, geocoder=geocoder, now=NOW))

    assert geocoder.calls == ["Paris"]
    assert providers[0].queries[0].bbox == (2.22, 48.81, 2.47, 48.90)
    assert result["city"] == "Paris"
    assert result["timezone"] == "Europe/Paris"
    assert result["center"] == (48.8566, 2.3522)
    assert result["providers"] == ["A", "B", "C"]
    assert result["start_iso"] == "2025-06-10T00:00:00Z"
    assert result["count"] == 2
    titles = {item["title"] for item in result["items"]}
    assert titles == {"jazz night!", "Eiffel Tower"}
    jazz = next(item for item in result["items"] if item["normalized_title"] == "jazz night")
    assert jazz["description"] == "live"
    assert jazz["id"] == make_item_id("a", "1")
    assert jazz["start_time"] == "2025-06-12T18:10:00Z"
    assert jazz["timezone"] == "Europe/Paris"
    scores = [item["score"] for item in result["items"]]
    assert scores == sorted(scores, reverse=True)


def test_empty_union_falls_back_to_placeholder_data():
    params = {
        "city": "Porto",
        "start": "2025-06-10T00:00:00Z",
        "end": "2025-06-17T00:00:00Z",
        "sort_by": "soonest",
    }

    result = asyncio.run(
        search_happenings(params, providers=[FakeProvider("A")], geocoder=FakeGeocoder(), now=NOW)
    )

    assert result["count"] == 4
    assert {item["source"] for item in result["items"]} == {"mock"}
    assert result["items"][0]["external_id"] == "mock-2"
    assert "Modern Art Exhibition" not in {item["title"] for item in result["items"]}


def test_result_limit_truncates_items_but_not_count():
    items = [_raw("a", str(n), f"Happening number {n}", start=f"2025-06-1{n}T10:00:00Z") for n in range(5)]
    params = {"city": "Paris", "start": "2025-06-10T00:00:00Z", "end": "2025-06-17T00:00:00Z"}

    result = asyncio.run(
        search_happenings(params, providers=[FakeProvider("A", items)], geocoder=FakeGeocoder(), limit=2, now=NOW)
    )

    assert result["count"] == 5
    assert len(result["items"]) == 2


def test_category_filter_applies_to_placeholder_data():
    params = {
        "city": "Porto",
        "start": "2025-06-10T00:00:00Z",
        "end": "2025-06-17T00:00:00Z",
        "categories": ["tour"],
    }

    result = asyncio.run(search_happenings(params, providers=[], geocoder=FakeGeocoder(), now=NOW))

    assert [item["external_id"] for item in result["items"]] == ["mock-3"]
