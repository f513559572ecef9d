"""Autocomplete state machine: debounce, suggestion cache, shared selection cursor."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from aqi_dashboard.config import SearchSettings
from aqi_dashboard.domain.models import (
    PlainName,
    Query,
    SuggestionItem,
    normalize_key,
    parse_query,
)
from aqi_dashboard.logging import logger
from aqi_dashboard.services.cache import ResultCache
from aqi_dashboard.services.gateway import ProviderGateway
from aqi_dashboard.services.preferences import PreferenceStore

SubmitHandler = Callable[[Query], Awaitable[Any]]
SleepFunc = Callable[[float], Awaitable[Any]]


class SearchState(str, Enum):
    IDLE = "idle"
    SHOWING_DEFAULTS = "showing_defaults"
    DEBOUNCING = "debouncing"
    LOADING = "loading"
    SHOWING_RESULTS = "showing_results"
    CLOSED = "closed"


@dataclass(slots=True)
class SelectionState:
    """Highlighted index into the current list; always -1 or a valid position."""

    index: int = -1
    items: tuple[SuggestionItem, ...] = ()

    def reset(self, items: Sequence[SuggestionItem] = ()) -> None:
        self.items = tuple(items)
        self.index = -1

    def move(self, delta: int) -> None:
        if not self.items:
            self.index = -1
            return
        self.index = max(0, min(self.index + delta, len(self.items) - 1))

    def hover(self, index: int) -> None:
        if 0 <= index < len(self.items):
            self.index = index

    @property
    def selected(self) -> SuggestionItem | None:
        if 0 <= self.index < len(self.items):
            return self.items[self.index]
        return None


def compose_defaults(favorites: Sequence[str], recents: Sequence[str]) -> list[SuggestionItem]:
    """Favorites first, then recent searches, each tagged with its origin."""

    items: list[SuggestionItem] = []
    for origin, names in (("favorite", favorites), ("recent", recents)):
        for name in names:
            items.append(
                SuggestionItem(
                    display_name=name,
                    query=PlainName(name),
                    rank=len(items),
                    origin=origin,
                )
            )
    return items


class SearchController:
    """Owns input handling for the search box.

    Every keystroke bumps ``generation``; a suggestion response is applied only
    when the generation it was started under is still current. Debounce timers
    are tasks that get cancelled by the next keystroke, while suggestion
    requests already sent run to completion and are cached either way.
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        suggestion_cache: ResultCache[list[SuggestionItem]],
        preferences: PreferenceStore,
        submit: SubmitHandler,
        *,
        settings: SearchSettings | None = None,
        default_query: str = "Pune",
        sleep: SleepFunc = asyncio.sleep,
        on_change: Callable[[SearchController], None] | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = suggestion_cache
        self.preferences = preferences
        self.settings = settings or SearchSettings()
        self.default_query = default_query
        self._submit = submit
        self._sleep = sleep
        self._on_change = on_change

        self.state = SearchState.IDLE
        self.text = ""
        self.focused = False
        self.is_open = False
        self.pending_query: str | None = None
        self.selection = SelectionState()
        self._generation = 0
        self._shown_state = SearchState.IDLE
        self._timer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def suggestions(self) -> tuple[SuggestionItem, ...]:
        return self.selection.items

    def on_focus(self) -> None:
        self.focused = True
        if not self.text.strip():
            self._show_defaults()

    def on_input(self, text: str) -> None:
        self.text = text
        query = text.strip()
        self._cancel_timer()
        self._generation += 1
        self.selection.index = -1

        if len(query) < self.settings.min_query_length:
            self.pending_query = None
            self._show_defaults()
            return

        self.pending_query = query
        self.state = SearchState.DEBOUNCING
        self._timer = asyncio.create_task(self._debounce(self._generation, query))
        self._notify()

    def arrow_down(self) -> None:
        self._navigate(1)

    def arrow_up(self) -> None:
        self._navigate(-1)

    def hover(self, index: int) -> None:
        self.selection.hover(index)
        self._notify()

    async def enter(self) -> Any:
        if self.is_open and self.selection.selected is not None:
            return await self.click(self.selection.index)
        raw = self.text.strip() or self.default_query
        self._close()
        return await self._submit(parse_query(raw))

    async def click(self, index: int) -> Any:
        if not 0 <= index < len(self.selection.items):
            return None
        item = self.selection.items[index]
        self.text = item.display_name
        self._close()
        return await self._submit(item.query)

    def escape(self) -> None:
        self._close()
        self.focused = True

    def outside_click(self) -> None:
        self._close()
        self.focused = False

    async def settle(self) -> None:
        """Wait for the pending timer and in-flight requests (tests, shutdown)."""

        while self._timer is not None or self._inflight:
            pending = [task for task in (self._timer, *self._inflight) if task is not None]
            await asyncio.gather(*pending, return_exceptions=True)
            if self._timer is not None and self._timer.done():
                self._timer = None

    async def aclose(self) -> None:
        self._cancel_timer()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _debounce(self, generation: int, query: str) -> None:
        await self._sleep(self.settings.debounce_ms / 1000)
        if generation != self._generation:
            return
        self._timer = None
        self.state = SearchState.LOADING
        self._notify()

        cached = await self.cache.get(normalize_key(query))
        if cached is not None:
            logger.debug("suggestion_cache_hit", query=query)
            if generation == self._generation:
                self._show_results(cached)
            return

        task = asyncio.create_task(self._fetch(generation, query))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _fetch(self, generation: int, query: str) -> None:
        response = await self.gateway.search_stations(query)
        if not response.ok or not isinstance(response.data, list):
            logger.warning(
                "suggestion_fetch_failed",
                query=query,
                status=response.status,
                failure=response.failure.value if response.failure else None,
                message=response.message,
            )
            if generation == self._generation and self.state is SearchState.LOADING:
                self.state = self._shown_state
                self._notify()
            return

        items: list[SuggestionItem] = []
        for raw in response.data:
            item = SuggestionItem.from_search_result(raw, rank=len(items))
            if item is not None:
                items.append(item)
            if len(items) >= self.settings.max_suggestions:
                break

        await self.cache.put(normalize_key(query), items)
        if generation != self._generation:
            logger.debug("suggestions_discarded_stale", query=query, current=self.pending_query)
            return
        self._show_results(items)

    def _navigate(self, delta: int) -> None:
        if not self.is_open or not self.selection.items:
            return
        self.selection.move(delta)
        self._notify()

    def _show_defaults(self) -> None:
        items = compose_defaults(self.preferences.favorites, self.preferences.recents)
        if not items:
            self._close()
            return
        self._show(SearchState.SHOWING_DEFAULTS, items)

    def _show_results(self, items: Sequence[SuggestionItem]) -> None:
        self._show(SearchState.SHOWING_RESULTS, items)

    def _show(self, state: SearchState, items: Sequence[SuggestionItem]) -> None:
        self.selection.reset(items)
        self.state = state
        self._shown_state = state
        self.is_open = True
        self._notify()

    def _close(self) -> None:
        self._cancel_timer()
        self._generation += 1
        self.pending_query = None
        self.selection.reset()
        self.state = SearchState.CLOSED
        self._shown_state = SearchState.CLOSED
        self.is_open = False
        self._notify()

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)


__all__ = ["SearchController", "SearchState", "SelectionState", "compose_defaults"]
