"""Dashboard session: wires search, lookup, presentation and sharing together."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from aqi_dashboard.config import AppSettings
from aqi_dashboard.domain.models import GeoCoord, MapStation, PlainName, Query, Reading, parse_query
from aqi_dashboard.logging import logger
from aqi_dashboard.services.cache import ResultCache, reading_cache, suggestion_cache
from aqi_dashboard.services.exceptions import ShareCardError
from aqi_dashboard.services.gateway import ProviderGateway
from aqi_dashboard.services.lookup import LookupOutcome, LookupPipeline, LookupSuccess
from aqi_dashboard.services.preferences import PreferenceStore
from aqi_dashboard.services.presentation import (
    Presenter,
    build_markers,
    build_view,
    nearby_bounds,
)
from aqi_dashboard.services.search import SearchController
from aqi_dashboard.services.share_card import ShareCardGenerator


class LocationProvider(Protocol):
    async def current_position(self) -> tuple[float, float] | None: ...


class Dashboard:
    """One user's dashboard state; nothing here is module-global."""

    def __init__(
        self,
        *,
        settings: AppSettings,
        gateway: ProviderGateway,
        preferences: PreferenceStore,
        readings: ResultCache[Reading],
        presenter: Presenter,
        location: LocationProvider | None = None,
        share_cards: ShareCardGenerator | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.gateway = gateway
        self.preferences = preferences
        self.presenter = presenter
        self.location = location
        self.share_cards = share_cards or ShareCardGenerator(settings.share_card)
        self.pipeline = LookupPipeline(gateway, readings, preferences)
        self.controller = SearchController(
            gateway,
            suggestion_cache(),
            preferences,
            self.search,
            settings=settings.search,
            default_query=settings.default_city,
            sleep=sleep,
        )
        self.current: Reading | None = None

    @classmethod
    async def open(
        cls,
        session: AsyncSession,
        *,
        settings: AppSettings,
        gateway: ProviderGateway,
        presenter: Presenter,
        location: LocationProvider | None = None,
    ) -> Dashboard:
        preferences = PreferenceStore(session, recent_capacity=settings.search.recent_capacity)
        await preferences.load()
        readings = reading_cache(session, ttl_seconds=settings.cache.reading_ttl_seconds)
        return cls(
            settings=settings,
            gateway=gateway,
            preferences=preferences,
            readings=readings,
            presenter=presenter,
            location=location,
        )

    async def start(self) -> LookupOutcome:
        """Initial load: last query, else current position, else the default city."""

        if self.preferences.last_query:
            return await self.search(parse_query(self.preferences.last_query))

        position = None
        if self.location is not None:
            try:
                position = await self.location.current_position()
            except Exception as exc:
                logger.warning("geolocation_unavailable", error=str(exc))
        if position is not None:
            outcome = await self.search(GeoCoord(*position))
            if outcome.ok:
                return outcome
        return await self.search(PlainName(self.settings.default_city))

    async def search(self, query: Query) -> LookupOutcome:
        outcome = await self.pipeline.lookup(query)
        if not isinstance(outcome, LookupSuccess):
            self.presenter.show_error(outcome.message)
            return outcome

        reading = outcome.reading
        self.current = reading
        view = build_view(reading, self.preferences.favorites)
        if reading.is_available:
            self.presenter.render(view)
        else:
            logger.warning("aqi_unavailable", station=reading.station_name)
            self.presenter.render_unavailable(view)
        if view.trend is not None:
            self.presenter.render_trend(view.trend)
        if reading.coordinate is not None:
            await self.load_nearby(*reading.coordinate)
        return outcome

    async def load_nearby(self, lat: float, lon: float) -> list[MapStation]:
        response = await self.gateway.stations_in_bounds(
            *nearby_bounds(lat, lon, self.settings.nearby_delta_degrees)
        )
        if not response.ok or not isinstance(response.data, list):
            logger.warning("map_load_failed", lat=lat, lon=lon, message=response.message)
            return []
        stations = [
            station
            for station in (MapStation.from_bounds(item) for item in response.data)
            if station is not None
        ]
        self.presenter.render_map((lat, lon), build_markers(stations))
        return stations

    async def toggle_favorite(self) -> bool:
        if self.current is None:
            return False
        async with self.pipeline.lock:
            return await self.preferences.toggle_favorite(self.current.city_name)

    def share_card(self) -> bytes:
        if self.current is None:
            raise ShareCardError("No reading loaded yet")
        return self.share_cards.render(self.current)

    async def close(self) -> None:
        await self.controller.aclose()


__all__ = ["Dashboard", "LocationProvider"]
