"""Command-line front end: run the proxy or look up AQI from a terminal."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Sequence

import httpx
import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from aqi_dashboard.config import AppSettings, get_settings
from aqi_dashboard.db.session import Database
from aqi_dashboard.domain.models import parse_query
from aqi_dashboard.logging import logger
from aqi_dashboard.services.dashboard import Dashboard
from aqi_dashboard.services.gateway import ProviderGateway
from aqi_dashboard.services.presentation import MapMarker, ReadingView, TrendSeries
from aqi_dashboard.services.share_card import share_filename
from aqi_dashboard.web.app import create_app

app = typer.Typer(add_completion=False)
console = Console()


class ConsolePresenter:
    """Presenter that prints view models with rich."""

    def __init__(self, output: Console | None = None) -> None:
        self.console = output or console

    def render(self, view: ReadingView) -> None:
        title = f"{view.city_label} {'*' if view.is_favorite else ''}".strip()
        table = Table(title=title)
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("AQI", view.aqi_text)
        table.add_row("Category", view.category.label)
        table.add_row("Advice", view.category.advice)
        table.add_row("Station", view.station_label)
        if view.updated_label:
            table.add_row("Updated", view.updated_label)
        for bar in view.pollutants:
            table.add_row(bar.key.upper(), bar.value_text)
        self.console.print(table)

    def render_unavailable(self, view: ReadingView) -> None:
        self.console.print(f"[yellow]{view.city_label}: {view.category.label}[/yellow]")
        self.console.print(view.category.advice)
        self.console.print(view.station_label)

    def render_map(self, center: tuple[float, float], markers: Sequence[MapMarker]) -> None:
        self.console.print(
            f"{len(markers)} stations within reach of {center[0]:.3f}, {center[1]:.3f}"
        )

    def render_trend(self, series: TrendSeries) -> None:
        table = Table(title="PM2.5 forecast")
        table.add_column("Day", style="cyan")
        table.add_column("Avg")
        table.add_column("Max")
        for label, avg, peak in zip(series.labels, series.average, series.maximum):
            table.add_row(label, _fmt(avg), _fmt(peak))
        self.console.print(table)

    def show_error(self, message: str) -> None:
        self.console.print(f"[red]{message}[/red]")


def _fmt(value: float | None) -> str:
    return "-" if value is None else f"{value:g}"


@asynccontextmanager
async def open_dashboard(settings: AppSettings, presenter: ConsolePresenter) -> AsyncIterator[Dashboard]:
    database = Database(settings)
    await database.create_all()
    try:
        async with httpx.AsyncClient(follow_redirects=True) as client, database.session() as session:
            dashboard = await Dashboard.open(
                session,
                settings=settings,
                gateway=ProviderGateway(client, settings=settings),
                presenter=presenter,
            )
            try:
                yield dashboard
            finally:
                await dashboard.close()
    finally:
        await database.dispose()


async def _lookup(settings: AppSettings, city: str | None) -> bool:
    async with open_dashboard(settings, ConsolePresenter()) as dashboard:
        outcome = await (dashboard.search(parse_query(city)) if city else dashboard.start())
        return outcome.ok


async def _card(settings: AppSettings, city: str, output: Path | None) -> Path | None:
    async with open_dashboard(settings, ConsolePresenter()) as dashboard:
        outcome = await dashboard.search(parse_query(city))
        if not outcome.ok or dashboard.current is None:
            return None
        target = output or Path(share_filename(dashboard.current))
        target.write_bytes(dashboard.share_card())
        return target


@app.command()
def serve(host: str | None = None, port: int | None = None) -> None:
    """Run the proxy server."""

    settings = get_settings()
    bind_host = host or settings.server.host
    bind_port = port or settings.server.port
    logger.info("server_starting", environment=settings.environment, host=bind_host, port=bind_port)
    uvicorn.run(create_app(settings), host=bind_host, port=bind_port, log_config=None)


@app.command()
def lookup(city: str | None = typer.Argument(None, help="City, @stationId or geo:lat;lon")) -> None:
    """Show the current AQI (last query or default city when omitted)."""

    if not asyncio.run(_lookup(get_settings(), city)):
        raise typer.Exit(code=1)


@app.command()
def card(
    city: str = typer.Argument(..., help="City, @stationId or geo:lat;lon"),
    output: Path | None = typer.Option(None, "--output", "-o"),
) -> None:
    """Render a shareable PNG card for a location."""

    written = asyncio.run(_card(get_settings(), city, output))
    if written is None:
        raise typer.Exit(code=1)
    console.print(f"Saved {written}")


__all__ = ["ConsolePresenter", "app", "open_dashboard"]
