"""Upstream AQI (WAQI) and geocoding (Nominatim) integration."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from aqi_dashboard.config import AppSettings
from aqi_dashboard.domain.models import GeoCoord, PlainName, Query, StationRef
from aqi_dashboard.logging import logger
from aqi_dashboard.utils.retry import retry_async


class FailureKind(str, Enum):
    OFFLINE = "offline"
    TRANSPORT = "transport"
    UPSTREAM = "upstream"


@dataclass(slots=True)
class ProviderResponse:
    """Tagged envelope returned by every gateway call."""

    status: str
    data: Any = None
    message: str | None = None
    failure: FailureKind | None = None
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.status == "ok"

    @property
    def is_transport_failure(self) -> bool:
        return self.failure in (FailureKind.OFFLINE, FailureKind.TRANSPORT)

    @classmethod
    def transport_error(cls, failure: FailureKind, message: str) -> ProviderResponse:
        payload = {"status": "error", "message": message}
        return cls(status="error", message=message, failure=failure, payload=payload)


class ProviderGateway:
    """Forwards queries upstream, injecting the provider token.

    Methods never raise for transport problems; callers inspect the envelope.
    """

    def __init__(self, http_client: httpx.AsyncClient, settings: AppSettings | None = None) -> None:
        self._client = http_client
        self._settings = settings or AppSettings()

    async def lookup_by_name(self, name: str) -> ProviderResponse:
        return await self._waqi("feed_name", f"feed/{quote(name.strip(), safe='')}/")

    async def lookup_by_station(self, station_id: str) -> ProviderResponse:
        station_id = str(station_id).lstrip("@")
        return await self._waqi("feed_station", f"feed/@{quote(station_id, safe='')}/")

    async def lookup_by_geo(self, lat: float, lon: float) -> ProviderResponse:
        return await self._waqi("feed_geo", f"feed/geo:{lat};{lon}/")

    async def fetch(self, query: Query) -> ProviderResponse:
        if isinstance(query, StationRef):
            return await self.lookup_by_station(query.station_id)
        if isinstance(query, GeoCoord):
            return await self.lookup_by_geo(query.lat, query.lon)
        if isinstance(query, PlainName):
            return await self.lookup_by_name(query.name)
        raise TypeError(f"Unsupported query type: {type(query).__name__}")

    async def search_stations(self, keyword: str) -> ProviderResponse:
        return await self._waqi("search", "search/", {"keyword": keyword})

    async def stations_in_bounds(
        self, lat1: float, lon1: float, lat2: float, lon2: float
    ) -> ProviderResponse:
        return await self.stations_in_latlng(f"{lat1},{lon1},{lat2},{lon2}")

    async def stations_in_latlng(self, latlng: str) -> ProviderResponse:
        return await self._waqi("map_bounds", "map/bounds/", {"latlng": latlng})

    async def geocode(self, text: str) -> ProviderResponse:
        geo_cfg = self._settings.geocoding
        url = f"{str(geo_cfg.base_url).rstrip('/')}/search"
        params = {"q": text, "format": "json", "limit": geo_cfg.result_limit}
        headers = {"User-Agent": geo_cfg.user_agent}
        body = await self._get_json("geocode", url, params, headers=headers)
        if isinstance(body, ProviderResponse):
            return body
        if not isinstance(body, list):
            message = body.get("error") if isinstance(body, dict) else None
            return ProviderResponse(
                status="error",
                message=str(message or "Unexpected geocoding response"),
                failure=FailureKind.UPSTREAM,
                payload=body,
            )
        return ProviderResponse(status="ok", data=body, payload=body)

    async def _waqi(
        self, name: str, path: str, params: dict[str, Any] | None = None
    ) -> ProviderResponse:
        provider = self._settings.provider
        url = f"{str(provider.base_url).rstrip('/')}/{path}"
        query = dict(params or {})
        token = self._read_secret(provider.api_token)
        if token:
            query["token"] = token
        else:
            logger.warning("provider_token_missing", endpoint=name)

        body = await self._get_json(name, url, query)
        if isinstance(body, ProviderResponse):
            return body
        if not isinstance(body, dict):
            return ProviderResponse(
                status="error",
                message="Unexpected provider response",
                failure=FailureKind.UPSTREAM,
                payload=body,
            )

        status = str(body.get("status") or "error")
        data = body.get("data")
        if status != "ok":
            message = data if isinstance(data, str) else body.get("message")
            return ProviderResponse(
                status=status,
                data=data,
                message=str(message) if message else None,
                failure=FailureKind.UPSTREAM,
                payload=body,
            )
        return ProviderResponse(status=status, data=data, payload=body)

    async def _get_json(
        self,
        name: str,
        url: str,
        params: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
    ) -> Any:
        timeout = self._settings.provider.request_timeout_seconds

        async def _request():
            response = await self._client.get(url, params=params, headers=headers, timeout=timeout)
            response.raise_for_status()
            return response

        try:
            response = await self._retry_http(name, _request)
        except httpx.TimeoutException:
            return self._failed(name, FailureKind.TRANSPORT, "Upstream request timed out")
        except httpx.NetworkError as exc:
            return self._failed(name, FailureKind.OFFLINE, f"Network unreachable: {exc}")
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code if exc.response is not None else "unknown"
            return self._failed(
                name, FailureKind.TRANSPORT, f"Upstream returned HTTP {status_code}"
            )
        except httpx.RequestError as exc:
            return self._failed(name, FailureKind.TRANSPORT, f"Upstream request failed: {exc}")

        try:
            return response.json()
        except ValueError:
            return self._failed(name, FailureKind.TRANSPORT, "Upstream response is not valid JSON")

    async def _retry_http(self, name: str, operation: Callable[[], Awaitable[httpx.Response]]):
        provider = self._settings.provider
        return await retry_async(
            operation,
            max_attempts=provider.retry_attempts,
            base_delay=provider.retry_base_delay,
            retry_on=(httpx.TransportError,),
            logger=logger,
            operation_name=name,
        )

    @staticmethod
    def _failed(name: str, failure: FailureKind, message: str) -> ProviderResponse:
        logger.warning("provider_request_failed", endpoint=name, failure=failure.value, error=message)
        return ProviderResponse.transport_error(failure, message)

    @staticmethod
    def _read_secret(secret: Any) -> str | None:
        if not secret:
            return None
        try:
            return secret.get_secret_value()
        except AttributeError:
            return str(secret)


__all__ = ["FailureKind", "ProviderGateway", "ProviderResponse"]
