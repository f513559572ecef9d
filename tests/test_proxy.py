"""Proxy routes: forward verbatim, hide the token, report transport failures as 500."""

from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from aqi_dashboard.config import AppSettings, ProviderSettings
from aqi_dashboard.web.app import create_app


class Upstream:
    """Scripted upstream answering through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.fail_with: Exception | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        if request.url.host == "nominatim.openstreetmap.org":
            return httpx.Response(200, json=[{"lat": "12.97", "lon": "77.59"}])
        if request.url.path == "/feed/Atlantis/":
            return httpx.Response(200, json={"status": "error", "data": "Unknown station"})
        return httpx.Response(200, json={"status": "ok", "data": {"path": request.url.path}})


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def client(upstream):
    settings = AppSettings(
        _env_file=None,
        provider=ProviderSettings(api_token=SecretStr("hidden-token"), retry_attempts=1),
    )
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    with TestClient(create_app(settings, http_client=http_client)) as test_client:
        yield test_client


def test_feed_by_city_forwards_payload(client, upstream):
    response = client.get("/api/feed/New Delhi")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "data": {"path": "/feed/New Delhi/"}}
    assert upstream.requests[0].url.params["token"] == "hidden-token"
    assert "hidden-token" not in response.text


def test_feed_by_station_reference(client):
    response = client.get("/api/feed/@1451")

    assert response.json()["data"]["path"] == "/feed/@1451/"


def test_feed_by_geo(client):
    response = client.get("/api/feed/geo/18.5/73.8")

    assert response.json()["data"]["path"] == "/feed/geo:18.5;73.8/"


def test_upstream_error_is_forwarded_verbatim(client):
    response = client.get("/api/feed/Atlantis")

    assert response.status_code == 200
    assert response.json() == {"status": "error", "data": "Unknown station"}


def test_search_and_bounds(client, upstream):
    assert client.get("/api/search", params={"keyword": "paris"}).status_code == 200
    assert client.get("/api/map/bounds", params={"latlng": "18.0,73.3,19.0,74.3"}).status_code == 200

    assert upstream.requests[0].url.params["keyword"] == "paris"
    assert upstream.requests[1].url.params["latlng"] == "18.0,73.3,19.0,74.3"


def test_bounds_rejects_malformed_latlng(client, upstream):
    response = client.get("/api/map/bounds", params={"latlng": "1,2;drop table"})

    assert response.status_code == 422
    assert upstream.requests == []


def test_geocode_requires_query(client, upstream):
    response = client.get("/api/geocode")

    assert response.status_code == 400
    assert response.json() == {"status": "error", "message": 'Query parameter "q" is required'}
    assert upstream.requests == []


def test_geocode_forwards_without_token(client, upstream):
    response = client.get("/api/geocode", params={"q": "Unknownville"})

    assert response.json() == [{"lat": "12.97", "lon": "77.59"}]
    assert "token" not in upstream.requests[0].url.params
    assert upstream.requests[0].headers["User-Agent"] == "AQI-Pro-App/1.0"


def test_transport_failure_is_500(client, upstream):
    upstream.fail_with = httpx.ConnectError("connection refused")

    response = client.get("/api/feed/Pune")

    assert response.status_code == 500
    assert response.json()["status"] == "error"
    assert "message" in response.json()


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
