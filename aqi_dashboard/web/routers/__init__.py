from fastapi import APIRouter

from aqi_dashboard.web.routers import proxy


def setup_routers() -> APIRouter:
    router = APIRouter()
    router.include_router(proxy.router)
    return router


__all__ = ["setup_routers"]
