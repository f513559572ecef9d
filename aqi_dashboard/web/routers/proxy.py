"""Proxy endpoints: forward to the provider gateway, hiding the API token."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from aqi_dashboard.services.gateway import ProviderGateway, ProviderResponse

router = APIRouter(prefix="/api", tags=["proxy"])


def get_gateway(request: Request) -> ProviderGateway:
    return request.app.state.gateway


def _forward(response: ProviderResponse) -> JSONResponse:
    if response.is_transport_failure:
        return JSONResponse(response.payload, status_code=500)
    return JSONResponse(response.payload)


# Registered before /feed/{city} so "geo" is never read as a city name.
@router.get("/feed/geo/{lat}/{lon}")
async def feed_by_geo(lat: float, lon: float, gateway: ProviderGateway = Depends(get_gateway)):
    return _forward(await gateway.lookup_by_geo(lat, lon))


@router.get("/feed/{city}")
async def feed_by_city(city: str, gateway: ProviderGateway = Depends(get_gateway)):
    if city.startswith("@"):
        return _forward(await gateway.lookup_by_station(city[1:]))
    return _forward(await gateway.lookup_by_name(city))


@router.get("/search")
async def search_stations(
    keyword: str = Query("", max_length=100),
    gateway: ProviderGateway = Depends(get_gateway),
):
    return _forward(await gateway.search_stations(keyword))


@router.get("/map/bounds")
async def map_bounds(
    latlng: str = Query(..., pattern=r"^-?[\d.]+,-?[\d.]+,-?[\d.]+,-?[\d.]+$"),
    gateway: ProviderGateway = Depends(get_gateway),
):
    return _forward(await gateway.stations_in_latlng(latlng))


@router.get("/geocode")
async def geocode(q: str | None = None, gateway: ProviderGateway = Depends(get_gateway)):
    if not q or not q.strip():
        return JSONResponse(
            {"status": "error", "message": 'Query parameter "q" is required'},
            status_code=400,
        )
    return _forward(await gateway.geocode(q))
