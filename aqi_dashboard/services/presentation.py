"""Pure view-model builders consumed by whatever renders the dashboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Sequence

from aqi_dashboard.domain.models import ForecastDay, MapStation, Reading

POLLUTANT_KEYS = ("pm25", "pm10", "no2", "so2", "o3", "co")
POLLUTANT_SCALE_MAX = 200.0
UNKNOWN_COLOR = "#cccccc"

POLLUTANT_INFO: dict[str, tuple[str, str]] = {
    "pm25": (
        "PM2.5 (Fine Particulate Matter)",
        "Fine particles that are 2.5 micrometers or smaller in diameter. They can penetrate deep "
        "into the lungs and even enter the bloodstream. Major sources include vehicle exhaust, "
        "burning of coal or wood, and industrial processes.",
    ),
    "pm10": (
        "PM10 (Coarse Particulate Matter)",
        "Particulate matter that is 10 micrometers or smaller. These can be inhaled into the "
        "lungs. Sources include dust from roads, construction sites, landfills, and agriculture, "
        "as well as wildfires.",
    ),
    "no2": (
        "NO2 (Nitrogen Dioxide)",
        "A gaseous air pollutant composed of nitrogen and oxygen. It is primarily emitted from "
        "the burning of fuel in vehicles, power plants, and off-road equipment. It can irritate "
        "airways in the human respiratory system.",
    ),
    "so2": (
        "SO2 (Sulfur Dioxide)",
        "A toxic gas with a pungent, irritating smell. It is produced from the burning of fossil "
        "fuels (coal and oil) and from smelting mineral ores that contain sulfur. It can affect "
        "the respiratory system and lung function.",
    ),
    "o3": (
        "O3 (Ground-Level Ozone)",
        "Not emitted directly into the air, but created by chemical reactions between oxides of "
        "nitrogen (NOx) and volatile organic compounds (VOCs) in the presence of sunlight. It is "
        "the main ingredient in 'smog' and can trigger asthma.",
    ),
    "co": (
        "CO (Carbon Monoxide)",
        "A colorless, odorless gas that can be harmful when inhaled in large amounts. It is "
        "released when something is burned. The greatest sources of CO to outdoor air are cars, "
        "trucks and other vehicles or machinery that burn fossil fuels.",
    ),
}


@dataclass(frozen=True, slots=True)
class AqiCategory:
    id: str
    label: str
    advice: str
    color: str


# Upper bound (inclusive) for each band; anything above the last is hazardous.
_CATEGORIES: tuple[tuple[float, AqiCategory], ...] = (
    (50, AqiCategory(
        "good", "Good",
        "Air quality is satisfactory, and air pollution poses little or no risk.",
        "#00e676",
    )),
    (100, AqiCategory(
        "moderate", "Moderate",
        "Air quality is acceptable. However, people with respiratory conditions may be affected.",
        "#ffea00",
    )),
    (150, AqiCategory(
        "unhealthy-sens", "Unhealthy for Sensitive Groups",
        "Members of sensitive groups may experience health effects. General public is less "
        "likely to be affected.",
        "#ff9100",
    )),
    (200, AqiCategory(
        "unhealthy", "Unhealthy",
        "Everyone may begin to experience health effects; members of sensitive groups may "
        "experience more serious health effects.",
        "#ff5252",
    )),
    (300, AqiCategory(
        "very-unhealthy", "Very Unhealthy",
        "Health alert: everyone may experience more serious health effects.",
        "#d500f9",
    )),
)
_HAZARDOUS = AqiCategory(
    "hazardous", "Hazardous",
    "Health warnings of emergency conditions. The entire population is more likely to be affected.",
    "#b71c1c",
)
UNAVAILABLE = AqiCategory(
    "unavailable", "Data Unavailable",
    "This station is currently not reporting AQI levels.",
    UNKNOWN_COLOR,
)


def aqi_category(aqi: float | None) -> AqiCategory:
    if aqi is None:
        return UNAVAILABLE
    for upper, category in _CATEGORIES:
        if aqi <= upper:
            return category
    return _HAZARDOUS


def aqi_color(aqi: float | None) -> str:
    return aqi_category(aqi).color


def adjust_color(hex_color: str, amount: int) -> str:
    """Shift every RGB channel by ``amount``, clamped to 0..255."""

    color = hex_color.lstrip("#")
    if len(color) == 3:
        color = "".join(ch * 2 for ch in color)
    value = int(color, 16)
    channels = ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)
    r, g, b = (min(max(0, channel + amount), 255) for channel in channels)
    return f"#{r:02x}{g:02x}{b:02x}"


def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    color = adjust_color(hex_color, 0).lstrip("#")
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)


def pollutant_info(key: str) -> tuple[str, str] | None:
    return POLLUTANT_INFO.get(key.lower())


@dataclass(frozen=True, slots=True)
class PollutantBar:
    key: str
    value_text: str
    fill_percent: float


@dataclass(frozen=True, slots=True)
class TrendSeries:
    labels: tuple[str, ...]
    average: tuple[float | None, ...]
    maximum: tuple[float | None, ...]


@dataclass(frozen=True, slots=True)
class MapMarker:
    lat: float
    lon: float
    color: str
    popup: str


@dataclass(frozen=True, slots=True)
class ReadingView:
    aqi_text: str
    category: AqiCategory
    theme: str
    city_label: str
    station_label: str
    updated_label: str | None
    is_favorite: bool
    pollutants: tuple[PollutantBar, ...] = field(default_factory=tuple)
    trend: TrendSeries | None = None

    @property
    def available(self) -> bool:
        return self.category is not UNAVAILABLE


class Presenter(Protocol):
    def render(self, view: ReadingView) -> None: ...

    def render_unavailable(self, view: ReadingView) -> None: ...

    def render_map(self, center: tuple[float, float], markers: Sequence[MapMarker]) -> None: ...

    def render_trend(self, series: TrendSeries) -> None: ...

    def show_error(self, message: str) -> None: ...


def _format_value(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def build_pollutants(pollutants: dict[str, float]) -> tuple[PollutantBar, ...]:
    bars = []
    for key in POLLUTANT_KEYS:
        value = pollutants.get(key)
        if value is None:
            bars.append(PollutantBar(key, "--", 0.0))
        else:
            fill = min(value / POLLUTANT_SCALE_MAX * 100, 100.0)
            bars.append(PollutantBar(key, _format_value(value), max(fill, 0.0)))
    return tuple(bars)


def build_trend(forecast: dict[str, list[ForecastDay]], pollutant: str = "pm25") -> TrendSeries | None:
    days = forecast.get(pollutant)
    if not days:
        return None
    labels = tuple("/".join(day.day.split("-")[1:]) for day in days)
    return TrendSeries(
        labels=labels,
        average=tuple(day.avg for day in days),
        maximum=tuple(day.max for day in days),
    )


def build_markers(stations: Sequence[MapStation]) -> tuple[MapMarker, ...]:
    markers = []
    for station in stations:
        aqi_text = "-" if station.aqi is None else str(station.aqi)
        markers.append(
            MapMarker(
                lat=station.lat,
                lon=station.lon,
                color=aqi_color(station.aqi),
                popup=f"{station.name} | AQI: {aqi_text}",
            )
        )
    return tuple(markers)


def nearby_bounds(lat: float, lon: float, delta: float = 0.5) -> tuple[float, float, float, float]:
    return lat - delta, lon - delta, lat + delta, lon + delta


def build_view(reading: Reading, favorites: Sequence[str] = ()) -> ReadingView:
    category = aqi_category(reading.aqi)
    station_prefix = "Nearest Station" if reading.is_nearest else "Station"
    updated = None
    if reading.observed_at is not None:
        updated = f"Updated: {reading.observed_at.strftime('%H:%M')}"
    return ReadingView(
        aqi_text="--" if reading.aqi is None else str(reading.aqi),
        category=category,
        theme=f"theme-{category.id}",
        city_label=reading.display_name,
        station_label=f"{station_prefix}: {reading.station_name}",
        updated_label=updated,
        is_favorite=reading.city_name in favorites,
        pollutants=build_pollutants(reading.pollutants),
        trend=build_trend(reading.forecast),
    )


__all__ = [
    "AqiCategory",
    "MapMarker",
    "POLLUTANT_INFO",
    "PollutantBar",
    "Presenter",
    "ReadingView",
    "TrendSeries",
    "UNAVAILABLE",
    "adjust_color",
    "aqi_category",
    "aqi_color",
    "build_markers",
    "build_pollutants",
    "build_trend",
    "build_view",
    "hex_to_rgb",
    "nearby_bounds",
    "pollutant_info",
]
