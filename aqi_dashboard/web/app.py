"""FastAPI application factory for the AQI proxy."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aqi_dashboard.config import AppSettings, get_settings
from aqi_dashboard.logging import logger
from aqi_dashboard.services.gateway import ProviderGateway
from aqi_dashboard.web.routers import setup_routers


def create_app(
    settings: AppSettings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = http_client or httpx.AsyncClient(
            timeout=settings.provider.request_timeout_seconds,
            follow_redirects=True,
        )
        app.state.gateway = ProviderGateway(client, settings=settings)
        if settings.provider.api_token is None:
            logger.warning("proxy_started_without_token")
        logger.info("proxy_starting", environment=settings.environment)
        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()
            logger.info("proxy_stopped")

    app = FastAPI(title="AQI Dashboard Proxy", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(setup_routers())

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


__all__ = ["create_app"]
