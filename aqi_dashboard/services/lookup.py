"""Resolve a query into an AQI reading, with a geocoding fallback for plain names."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

from aqi_dashboard.domain.models import GeoCandidate, PlainName, Query, Reading
from aqi_dashboard.logging import logger
from aqi_dashboard.services.cache import ResultCache
from aqi_dashboard.services.exceptions import MalformedResponse
from aqi_dashboard.services.gateway import FailureKind, ProviderGateway, ProviderResponse
from aqi_dashboard.services.preferences import PreferenceStore


class LookupFailureKind(str, Enum):
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    OFFLINE = "offline"
    TRANSPORT = "transport"


@dataclass(slots=True)
class LookupSuccess:
    reading: Reading
    query: Query
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(slots=True)
class LookupFailure:
    kind: LookupFailureKind
    query: Query
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        """User-facing text; malformed responses read the same as not-found."""

        if self.kind is LookupFailureKind.OFFLINE:
            return "Network error! Please check your internet connection."
        if self.kind is LookupFailureKind.TRANSPORT:
            detail = self.detail or "Unable to process air quality data"
            return f"App error: {detail}. Please try again later."
        return f'Location "{self.query.text}" not found! Try another location.'


LookupOutcome = LookupSuccess | LookupFailure


class LookupPipeline:
    """Lookups share one database session with the preference store; ``lock``
    keeps them, and any other writer on that session, from overlapping.
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        reading_cache: ResultCache[Reading],
        preferences: PreferenceStore,
    ) -> None:
        self.gateway = gateway
        self.cache = reading_cache
        self.preferences = preferences
        self.lock = asyncio.Lock()

    async def lookup(self, query: Query) -> LookupOutcome:
        async with self.lock:
            cached = await self.cache.get(query.cache_key)
            if cached is not None:
                logger.info("lookup_cache_hit", query=query.text)
                return LookupSuccess(reading=cached, query=query, from_cache=True)

            outcome = await self.resolve(query)
            if isinstance(outcome, LookupSuccess):
                await self._commit(query, outcome.reading)
            else:
                logger.info(
                    "lookup_failed", query=query.text, kind=outcome.kind.value, detail=outcome.detail
                )
            return outcome

    async def resolve(self, query: Query) -> LookupOutcome:
        """Provider lookup plus fallback; performs no writes."""

        response = await self.gateway.fetch(query)
        if response.is_transport_failure:
            return _transport_failure(query, response)

        searched_name: str | None = None
        if not response.ok and isinstance(query, PlainName):
            logger.info(
                "geocode_fallback",
                query=query.name,
                provider_status=response.status,
                provider_message=response.message,
            )
            geocoded = await self.gateway.geocode(query.name)
            if geocoded.is_transport_failure:
                return _transport_failure(query, geocoded)
            candidate = _first_candidate(geocoded)
            if candidate is None:
                return LookupFailure(LookupFailureKind.NOT_FOUND, query, "no geocoding candidates")
            logger.info(
                "geocode_resolved",
                query=query.name,
                lat=candidate.lat,
                lon=candidate.lon,
                display_name=candidate.display_name,
            )
            response = await self.gateway.lookup_by_geo(candidate.lat, candidate.lon)
            if response.is_transport_failure:
                return _transport_failure(query, response)
            searched_name = query.name

        if not response.ok:
            return LookupFailure(LookupFailureKind.NOT_FOUND, query, response.message)

        try:
            reading = Reading.from_feed(response.data)
        except MalformedResponse as exc:
            data = response.data
            logger.warning(
                "lookup_malformed_response",
                query=query.text,
                error=str(exc),
                payload_keys=sorted(data) if isinstance(data, dict) else type(data).__name__,
            )
            return LookupFailure(LookupFailureKind.MALFORMED, query, str(exc))

        if searched_name is not None:
            reading = reading.as_nearest(searched_name)
        return LookupSuccess(reading=reading, query=query)

    async def _commit(self, query: Query, reading: Reading) -> None:
        await self.cache.put(query.cache_key, reading)
        await self.preferences.set_last_query(query.text)
        await self.preferences.add_recent(reading.city_name)
        logger.info(
            "lookup_succeeded",
            query=query.text,
            station=reading.station_name,
            aqi=reading.aqi,
            nearest=reading.is_nearest,
        )


def _first_candidate(response: ProviderResponse) -> GeoCandidate | None:
    if not response.ok or not isinstance(response.data, list):
        return None
    for item in response.data:
        candidate = GeoCandidate.from_nominatim(item)
        if candidate is not None:
            return candidate
    return None


def _transport_failure(query: Query, response: ProviderResponse) -> LookupFailure:
    kind = (
        LookupFailureKind.OFFLINE
        if response.failure is FailureKind.OFFLINE
        else LookupFailureKind.TRANSPORT
    )
    return LookupFailure(kind, query, response.message)


__all__ = [
    "LookupFailure",
    "LookupFailureKind",
    "LookupOutcome",
    "LookupPipeline",
    "LookupSuccess",
]
