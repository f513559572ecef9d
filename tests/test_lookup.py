"""Lookup pipeline: cache, geocoding fallback and failure classification."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from aqi_dashboard.domain.models import GeoCoord, PlainName, StationRef
from aqi_dashboard.services.cache import reading_cache
from aqi_dashboard.services.gateway import FailureKind, ProviderResponse
from aqi_dashboard.services.lookup import LookupFailureKind, LookupPipeline
from aqi_dashboard.services.preferences import PreferenceStore


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def preferences(session):
    store = PreferenceStore(session)
    await store.load()
    return store


@pytest.fixture
def pipeline(session, gateway, preferences, clock) -> LookupPipeline:
    return LookupPipeline(gateway, reading_cache(session, ttl_seconds=1800, clock=clock), preferences)


@pytest.mark.asyncio
async def test_successful_lookup_updates_cache_and_history(pipeline, gateway, preferences, responses):
    gateway.by_name["Pune"] = responses.ok(responses.feed("Pune, India", aqi=87))

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.ok
    assert not outcome.from_cache
    assert outcome.reading.aqi == 87
    assert outcome.reading.pollutants == {"pm25": 87.0, "pm10": 40.0}
    assert preferences.recents == ["Pune"]
    assert preferences.last_query == "Pune"
    assert await pipeline.cache.get("pune") == outcome.reading


@pytest.mark.asyncio
async def test_cache_hit_within_ttl_skips_provider(pipeline, gateway, clock, responses):
    gateway.by_name["Delhi"] = responses.ok(responses.feed("Delhi, India", aqi=210))
    await pipeline.lookup(PlainName("Delhi"))

    clock.advance(minutes=30)
    outcome = await pipeline.lookup(PlainName(" delhi "))

    assert outcome.from_cache
    assert outcome.reading.aqi == 210
    assert gateway.count("name") == 1


@pytest.mark.asyncio
async def test_expired_entry_is_refetched(pipeline, gateway, clock, responses):
    gateway.by_name["Delhi"] = responses.ok(responses.feed("Delhi, India", aqi=210))
    await pipeline.lookup(PlainName("Delhi"))

    clock.advance(minutes=31)
    gateway.by_name["Delhi"] = responses.ok(responses.feed("Delhi, India", aqi=180))
    outcome = await pipeline.lookup(PlainName("Delhi"))

    assert not outcome.from_cache
    assert outcome.reading.aqi == 180
    assert gateway.count("name") == 2


@pytest.mark.asyncio
async def test_cache_hit_has_no_history_side_effects(pipeline, gateway, preferences, responses):
    gateway.by_name["Pune"] = responses.ok(responses.feed("Pune, India"))
    gateway.by_name["Mumbai"] = responses.ok(responses.feed("Mumbai, India"))
    await pipeline.lookup(PlainName("Pune"))
    await pipeline.lookup(PlainName("Mumbai"))

    await pipeline.lookup(PlainName("Pune"))

    assert preferences.recents == ["Mumbai", "Pune"]
    assert preferences.last_query == "Mumbai"


@pytest.mark.asyncio
async def test_unknown_name_falls_back_to_nearest_station(pipeline, gateway, preferences, responses):
    gateway.geocodes["Unknownville"] = responses.ok(
        [{"lat": "12.97", "lon": "77.59", "display_name": "Unknownville, Karnataka"}]
    )
    gateway.by_geo[(12.97, 77.59)] = responses.ok(responses.feed("Bengaluru, India", geo=(12.97, 77.59)))

    outcome = await pipeline.lookup(PlainName("Unknownville"))

    assert outcome.ok
    assert [kind for kind, _ in gateway.calls] == ["name", "geocode", "geo"]
    reading = outcome.reading
    assert reading.is_nearest
    assert reading.searched_name == "Unknownville"
    assert reading.display_name == "Unknownville"
    assert reading.station_name == "Bengaluru, India"
    assert preferences.recents == ["Bengaluru"]
    assert preferences.last_query == "Unknownville"


@pytest.mark.asyncio
async def test_not_found_leaves_cache_and_history_untouched(pipeline, gateway, preferences, session):
    outcome = await pipeline.lookup(PlainName("Atlantis"))

    assert not outcome.ok
    assert outcome.kind is LookupFailureKind.NOT_FOUND
    assert outcome.message == 'Location "Atlantis" not found! Try another location.'
    assert await pipeline.cache.get("atlantis") is None
    assert preferences.recents == []
    assert preferences.last_query is None
    assert session.commits == 0


@pytest.mark.asyncio
async def test_geocoded_coordinate_without_station_is_not_found(pipeline, gateway, responses):
    gateway.geocodes["Nowhere"] = responses.ok([{"lat": "0", "lon": "0"}])

    outcome = await pipeline.lookup(PlainName("Nowhere"))

    assert outcome.kind is LookupFailureKind.NOT_FOUND
    assert gateway.count("geo") == 1


@pytest.mark.asyncio
async def test_malformed_payload_reads_as_not_found(pipeline, gateway, preferences, responses):
    gateway.by_name["Pune"] = responses.ok({"aqi": 50})

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.kind is LookupFailureKind.MALFORMED
    assert outcome.message == 'Location "Pune" not found! Try another location.'
    assert preferences.recents == []


@pytest.mark.asyncio
async def test_station_reference_never_geocodes(pipeline, gateway, responses):
    outcome = await pipeline.lookup(StationRef("9999"))

    assert outcome.kind is LookupFailureKind.NOT_FOUND
    assert outcome.message == 'Location "@9999" not found! Try another location.'
    assert gateway.count("geocode") == 0


@pytest.mark.asyncio
async def test_station_reference_lookup(pipeline, gateway, preferences, responses):
    gateway.by_station["1451"] = responses.ok(responses.feed("Beijing US Embassy, Beijing, China"))

    outcome = await pipeline.lookup(StationRef("1451"))

    assert outcome.ok
    assert preferences.last_query == "@1451"
    assert preferences.recents == ["Beijing US Embassy"]


@pytest.mark.asyncio
async def test_coordinate_lookup_is_cached(pipeline, gateway, responses):
    gateway.by_geo[(18.5, 73.8)] = responses.ok(responses.feed("Pune, India"))

    await pipeline.lookup(GeoCoord(18.5, 73.8))
    outcome = await pipeline.lookup(GeoCoord(18.5, 73.8))

    assert outcome.from_cache
    assert gateway.count("geo") == 1


@pytest.mark.asyncio
async def test_offline_failure_skips_fallback(pipeline, gateway):
    gateway.by_name["Pune"] = ProviderResponse.transport_error(FailureKind.OFFLINE, "Network unreachable")

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.kind is LookupFailureKind.OFFLINE
    assert outcome.message == "Network error! Please check your internet connection."
    assert gateway.count("geocode") == 0


@pytest.mark.asyncio
async def test_transport_failure_message(pipeline, gateway):
    gateway.by_name["Pune"] = ProviderResponse.transport_error(
        FailureKind.TRANSPORT, "Upstream returned HTTP 500"
    )

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.kind is LookupFailureKind.TRANSPORT
    assert outcome.message == "App error: Upstream returned HTTP 500. Please try again later."


@pytest.mark.asyncio
async def test_geocoder_outage_is_reported_as_transport(pipeline, gateway):
    gateway.geocodes["Atlantis"] = ProviderResponse.transport_error(
        FailureKind.TRANSPORT, "Upstream request timed out"
    )

    outcome = await pipeline.lookup(PlainName("Atlantis"))

    assert outcome.kind is LookupFailureKind.TRANSPORT


@pytest.mark.asyncio
async def test_missing_aqi_is_still_a_success(pipeline, gateway, responses):
    gateway.by_name["Pune"] = responses.ok(responses.feed("Pune, India", aqi="-"))

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.ok
    assert outcome.reading.aqi is None
    assert not outcome.reading.is_available


@pytest.mark.asyncio
async def test_resolve_performs_no_writes(pipeline, gateway, session, responses):
    gateway.by_name["Pune"] = responses.ok(responses.feed())

    outcome = await pipeline.resolve(PlainName("Pune"))

    assert outcome.ok
    assert session.commits == 0
    assert await pipeline.cache.get("pune") is None


@pytest.mark.parametrize(
    "extra",
    [
        {"iaqi": ["pm25"]},
        {"iaqi": "pm25"},
        {"forecast": "x"},
        {"forecast": {"daily": ["pm25"]}},
        {"forecast": {"daily": "pm25"}},
        {"time": "yesterday"},
    ],
)
@pytest.mark.asyncio
async def test_odd_optional_sections_are_ignored(pipeline, gateway, responses, extra):
    gateway.by_name["Pune"] = responses.ok(responses.feed("Pune, India", **extra))

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.ok
    assert outcome.reading.station_name == "Pune, India"
    assert outcome.reading.aqi == 87


@pytest.mark.parametrize("city", ["Pune", ["Pune"], {"geo": [1, 2]}])
@pytest.mark.asyncio
async def test_unusable_city_section_is_malformed(pipeline, gateway, responses, city):
    data = responses.feed()
    data["city"] = city
    gateway.by_name["Pune"] = responses.ok(data)

    outcome = await pipeline.lookup(PlainName("Pune"))

    assert outcome.kind is LookupFailureKind.MALFORMED


@pytest.mark.asyncio
async def test_overlapping_lookups_run_one_at_a_time(pipeline, gateway, responses):
    release = asyncio.Event()
    gateway.by_name["Pune"] = responses.ok(responses.feed("Pune, India"))
    scripted = gateway.lookup_by_name

    async def slow_lookup(name):
        await release.wait()
        return await scripted(name)

    gateway.lookup_by_name = slow_lookup

    first = asyncio.create_task(pipeline.lookup(PlainName("Pune")))
    second = asyncio.create_task(pipeline.lookup(PlainName("Pune")))
    for _ in range(5):
        await asyncio.sleep(0)
    assert pipeline.lock.locked()

    release.set()
    outcomes = await asyncio.gather(first, second)

    assert [outcome.from_cache for outcome in outcomes] == [False, True]
    assert gateway.count("name") == 1
