"""Shared pytest fixtures: SQLite-backed session and a scripted provider gateway."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from aqi_dashboard.config import AppSettings
from aqi_dashboard.db import models as _db_models  # noqa: F401  registers tables
from aqi_dashboard.db.base import Base
from aqi_dashboard.domain.models import GeoCoord, PlainName, StationRef
from aqi_dashboard.services.gateway import FailureKind, ProviderResponse


class _AsyncSessionWrapper:
    def __init__(self, sync_session) -> None:
        self._sync = sync_session
        self.commits = 0

    async def execute(self, *args, **kwargs):
        return self._sync.execute(*args, **kwargs)

    async def get(self, *args, **kwargs):
        return self._sync.get(*args, **kwargs)

    def add(self, obj) -> None:
        self._sync.add(obj)

    def add_all(self, objs) -> None:
        self._sync.add_all(objs)

    async def flush(self) -> None:
        self._sync.flush()

    async def commit(self) -> None:
        self.commits += 1
        self._sync.commit()

    async def rollback(self) -> None:
        self._sync.rollback()

    async def close(self) -> None:
        self._sync.close()


@pytest_asyncio.fixture
async def session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sync_session = SessionLocal()
    try:
        yield _AsyncSessionWrapper(sync_session)
    finally:
        sync_session.close()
        engine.dispose()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(_env_file=None)


def ok(data: Any) -> ProviderResponse:
    return ProviderResponse(status="ok", data=data, payload={"status": "ok", "data": data})


def upstream_error(message: str = "Unknown station") -> ProviderResponse:
    return ProviderResponse(
        status="error",
        data=message,
        message=message,
        failure=FailureKind.UPSTREAM,
        payload={"status": "error", "data": message},
    )


def make_feed(
    name: str = "Pune, India",
    aqi: Any = 87,
    geo: tuple[float, float] | None = (18.52, 73.85),
    **extra: Any,
) -> dict[str, Any]:
    city: dict[str, Any] = {"name": name}
    if geo is not None:
        city["geo"] = list(geo)
    data = {
        "aqi": aqi,
        "idx": 1234,
        "city": city,
        "iaqi": {"pm25": {"v": 87}, "pm10": {"v": 40}},
        "time": {"v": 1700000000},
        "dominentpol": "pm25",
    }
    data.update(extra)
    return data


class FakeGateway:
    """Scripted stand-in for ProviderGateway that records every call."""

    def __init__(self) -> None:
        self.by_name: dict[str, ProviderResponse] = {}
        self.by_station: dict[str, ProviderResponse] = {}
        self.by_geo: dict[tuple[float, float], ProviderResponse] = {}
        self.geocodes: dict[str, ProviderResponse] = {}
        self.searches: dict[str, ProviderResponse] = {}
        self.bounds: ProviderResponse = ok([])
        self.calls: list[tuple[str, Any]] = []

    async def fetch(self, query):
        if isinstance(query, StationRef):
            return await self.lookup_by_station(query.station_id)
        if isinstance(query, GeoCoord):
            return await self.lookup_by_geo(query.lat, query.lon)
        if isinstance(query, PlainName):
            return await self.lookup_by_name(query.name)
        raise TypeError(query)

    async def lookup_by_name(self, name):
        self.calls.append(("name", name))
        return self.by_name.get(name, upstream_error())

    async def lookup_by_station(self, station_id):
        self.calls.append(("station", station_id))
        return self.by_station.get(station_id, upstream_error())

    async def lookup_by_geo(self, lat, lon):
        self.calls.append(("geo", (lat, lon)))
        return self.by_geo.get((lat, lon), upstream_error())

    async def geocode(self, text):
        self.calls.append(("geocode", text))
        return self.geocodes.get(text, ok([]))

    async def search_stations(self, keyword):
        self.calls.append(("search", keyword))
        return self.searches.get(keyword, ok([]))

    async def stations_in_bounds(self, lat1, lon1, lat2, lon2):
        self.calls.append(("bounds", (lat1, lon1, lat2, lon2)))
        return self.bounds

    def count(self, kind: str) -> int:
        return sum(1 for call_kind, _ in self.calls if call_kind == kind)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def responses() -> SimpleNamespace:
    """Envelope/payload builders for test modules."""

    return SimpleNamespace(ok=ok, upstream_error=upstream_error, feed=make_feed)
