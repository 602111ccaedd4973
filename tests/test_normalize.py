from datetime import datetime, timezone

from app.pipeline.normalize import (
    convert_timezone,
    make_item_id,
    normalize,
    normalize_title,
    parse_timestamp,
)
from app.schemas import RawItem

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _raw(**overrides) -> RawItem:
    data = {
        "external_id": "evt-1",
        "source": "eventbrite",
        "title": "Jazz Night",
        "category": ["event"],
        "start_time": "2025-06-10T18:00:00Z",
        "url": "https://example.com/jazz",
    }
    data.update(overrides)
    return RawItem(**data)


def test_identifier_depends_only_on_source_and_external_id():
    first = normalize([_raw(title="Jazz Night")], "UTC", now=NOW)[0]
    second = normalize([_raw(title="Completely different", description="x")], "UTC", now=NOW)[0]

    assert first.id == second.id == make_item_id("eventbrite", "evt-1")
    assert len(first.id) == 16
    assert make_item_id("meetup", "evt-1") != first.id


def test_category_filter_is_a_subset():
    items = [
        _raw(external_id="1", category=["event"]),
        _raw(external_id="2", category=["tour", "attraction"]),
        _raw(external_id="3", category=["seminar"]),
    ]

    everything = {item.id for item in normalize(items, "UTC", now=NOW)}
    filtered = normalize(items, "UTC", ["tour", "seminar"], now=NOW)

    assert {item.id for item in filtered} <= everything
    assert [item.external_id for item in filtered] == ["2", "3"]


def test_empty_category_filter_keeps_everything():
    items = [_raw(external_id="1"), _raw(external_id="2", category=["tour"])]
    assert len(normalize(items, "UTC", [], now=NOW)) == 2


def test_times_are_converted_into_target_timezone():
    item = _raw(start_time="2025-06-10T10:00:00", end_time="2025-06-10T12:00:00", timezone="America/New_York")

    result = normalize([item], "Europe/London", now=NOW)[0]

    assert result.start_time == "2025-06-10T15:00:00+01:00"
    assert result.end_time == "2025-06-10T17:00:00+01:00"
    assert result.timezone == "Europe/London"


def test_unknown_timezone_keeps_original_string():
    item = _raw(start_time="2025-06-10T10:00:00", timezone="Mars/Olympus_Mons")

    result = normalize([item], "Europe/Paris", now=NOW)[0]

    assert result.start_time == "2025-06-10T10:00:00"
    assert result.timezone == "Europe/Paris"


def test_title_and_last_updated_defaults():
    result = normalize([_raw(title="  Jazz   Night!! ")], "UTC", now=NOW)[0]

    assert result.normalized_title == "jazz night"
    assert result.last_updated == NOW.isoformat()

    kept = normalize([_raw(last_updated="2025-05-01T00:00:00Z")], "UTC", now=NOW)[0]
    assert kept.last_updated == "2025-05-01T00:00:00Z"


def test_timestamp_helpers():
    assert parse_timestamp("2025-06-10T10:00:00Z") == datetime(2025, 6, 10, 10, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None
    assert convert_timezone("garbage", "UTC", "Europe/Paris") == "garbage"
    assert normalize_title("Rock & Roll: Live!") == "rock roll live"
