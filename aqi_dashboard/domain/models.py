"""Domain models shared by the lookup pipeline, search controller and presentation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aqi_dashboard.services.exceptions import MalformedResponse
from aqi_dashboard.utils.datetime import from_epoch

T = TypeVar("T")

SuggestionOrigin = Literal["favorite", "recent", "search"]


def normalize_key(text: str) -> str:
    return (text or "").strip().lower()


def city_part(station_name: str) -> str:
    """First comma-separated segment of a provider station name."""

    return station_name.split(",")[0].strip()


@dataclass(frozen=True, slots=True)
class PlainName:
    name: str

    @property
    def text(self) -> str:
        return self.name

    @property
    def cache_key(self) -> str:
        return normalize_key(self.text)


@dataclass(frozen=True, slots=True)
class StationRef:
    station_id: str

    @property
    def text(self) -> str:
        return f"@{self.station_id}"

    @property
    def cache_key(self) -> str:
        return normalize_key(self.text)


@dataclass(frozen=True, slots=True)
class GeoCoord:
    lat: float
    lon: float

    @property
    def text(self) -> str:
        return f"geo:{self.lat};{self.lon}"

    @property
    def cache_key(self) -> str:
        return normalize_key(self.text)


Query = PlainName | StationRef | GeoCoord


def parse_query(text: str) -> Query:
    """Parse raw user input once, at submission time."""

    raw = (text or "").strip()
    if raw.startswith("@") and len(raw) > 1:
        return StationRef(raw[1:])
    if raw.lower().startswith("geo:"):
        lat, _, lon = raw[4:].partition(";")
        try:
            return GeoCoord(float(lat), float(lon))
        except ValueError:
            pass
    return PlainName(raw)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    stored_at: datetime

    def is_fresh(self, now: datetime, ttl: timedelta | None) -> bool:
        if ttl is None:
            return True
        return now - self.stored_at <= ttl


@dataclass(frozen=True, slots=True)
class SuggestionItem:
    display_name: str
    query: Query
    rank: int
    origin: SuggestionOrigin = "search"
    country: str | None = None

    @classmethod
    def from_search_result(cls, item: Any, rank: int) -> SuggestionItem | None:
        if not isinstance(item, dict):
            return None
        station = item.get("station") or {}
        name = station.get("name") if isinstance(station, dict) else None
        uid = item.get("uid")
        if not isinstance(name, str) or not name.strip() or uid is None:
            return None
        parts = [part.strip() for part in name.split(",")]
        country = parts[-1] if len(parts) > 1 else None
        return cls(
            display_name=parts[0],
            query=StationRef(str(uid)),
            rank=rank,
            origin="search",
            country=country or None,
        )


def _to_aqi(value: Any) -> int | None:
    if value is None or value == "-":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _as_dict(value: Any) -> dict[str, Any]:
    """Optional payload sections; anything but an object reads as absent."""

    return value if isinstance(value, dict) else {}


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ForecastDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: str
    avg: float | None = None
    min: float | None = None
    max: float | None = None


class Reading(BaseModel):
    """Resolved AQI snapshot for one station."""

    model_config = ConfigDict(frozen=True)

    station_name: str
    aqi: int | None = None
    station_id: int | None = None
    coordinate: tuple[float, float] | None = None
    pollutants: dict[str, float] = Field(default_factory=dict)
    forecast: dict[str, list[ForecastDay]] = Field(default_factory=dict)
    observed_at: datetime | None = None
    dominant_pollutant: str | None = None
    is_nearest: bool = False
    searched_name: str | None = None

    @property
    def city_name(self) -> str:
        return city_part(self.station_name) or "Unknown"

    @property
    def display_name(self) -> str:
        if self.is_nearest and self.searched_name:
            return self.searched_name
        return self.city_name

    @property
    def is_available(self) -> bool:
        return self.aqi is not None

    def as_nearest(self, searched_name: str) -> Reading:
        return self.model_copy(update={"is_nearest": True, "searched_name": searched_name})

    @classmethod
    def from_feed(cls, data: Any) -> Reading:
        """Build a reading from a WAQI ``/feed`` ``data`` object."""

        if not isinstance(data, dict):
            raise MalformedResponse("feed payload is not an object")
        city = data.get("city")
        name = city.get("name") if isinstance(city, dict) else None
        if not isinstance(name, str) or not name.strip():
            raise MalformedResponse("feed payload has no station name")

        coordinate = None
        geo = city.get("geo")
        if isinstance(geo, (list, tuple)) and len(geo) >= 2:
            lat, lon = _to_float(geo[0]), _to_float(geo[1])
            if lat is not None and lon is not None:
                coordinate = (lat, lon)

        pollutants: dict[str, float] = {}
        for key, entry in _as_dict(data.get("iaqi")).items():
            value = _to_float(entry.get("v")) if isinstance(entry, dict) else None
            if value is not None:
                pollutants[key] = value

        forecast: dict[str, list[ForecastDay]] = {}
        daily = _as_dict(_as_dict(data.get("forecast")).get("daily"))
        for key, days in daily.items():
            if not isinstance(days, list):
                continue
            parsed: list[ForecastDay] = []
            for day in days:
                try:
                    parsed.append(ForecastDay.model_validate(day))
                except ValidationError:
                    continue
            if parsed:
                forecast[key] = parsed

        observed = _as_dict(data.get("time"))
        return cls(
            station_name=name.strip(),
            aqi=_to_aqi(data.get("aqi")),
            station_id=_to_aqi(data.get("idx")),
            coordinate=coordinate,
            pollutants=pollutants,
            forecast=forecast,
            observed_at=from_epoch(observed.get("v")),
            dominant_pollutant=data.get("dominentpol") or None,
        )


class GeoCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float
    display_name: str = ""

    @classmethod
    def from_nominatim(cls, item: Any) -> GeoCandidate | None:
        try:
            return cls.model_validate(item)
        except ValidationError:
            return None


class MapStation(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: int | None = None
    lat: float
    lon: float
    aqi: int | None = None
    name: str = "Unknown"

    @classmethod
    def from_bounds(cls, item: Any) -> MapStation | None:
        if not isinstance(item, dict):
            return None
        lat, lon = _to_float(item.get("lat")), _to_float(item.get("lon"))
        if lat is None or lon is None:
            return None
        station = item.get("station") or {}
        return cls(
            uid=_to_aqi(item.get("uid")),
            lat=lat,
            lon=lon,
            aqi=_to_aqi(item.get("aqi")),
            name=(station.get("name") if isinstance(station, dict) else None) or "Unknown",
        )


__all__ = [
    "CacheEntry",
    "ForecastDay",
    "GeoCandidate",
    "GeoCoord",
    "MapStation",
    "PlainName",
    "Query",
    "Reading",
    "StationRef",
    "SuggestionItem",
    "SuggestionOrigin",
    "city_part",
    "normalize_key",
    "parse_query",
]
