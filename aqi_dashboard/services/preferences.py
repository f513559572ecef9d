"""Favorites, recent history and last-query persistence."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aqi_dashboard.db.models import Preference

FAVORITES_KEY = "favorites"
RECENTS_KEY = "recents"
LAST_QUERY_KEY = "last_query"


def push_recent(history: Sequence[str], name: str, capacity: int = 5) -> list[str]:
    """Most-recent-first insert; an existing entry moves to the front."""

    return ([name] + [item for item in history if item != name])[:capacity]


class PreferenceStore:
    """Keeps favorites/recents in memory and writes every change through."""

    def __init__(self, session: AsyncSession, *, recent_capacity: int = 5) -> None:
        self.session = session
        self.recent_capacity = recent_capacity
        self._favorites: list[str] = []
        self._recents: list[str] = []
        self._last_query: str | None = None

    async def load(self) -> None:
        stmt = select(Preference).where(
            Preference.name.in_((FAVORITES_KEY, RECENTS_KEY, LAST_QUERY_KEY))
        )
        rows = {row.name: row.value for row in (await self.session.execute(stmt)).scalars()}
        self._favorites = list(dict.fromkeys(_str_list(rows.get(FAVORITES_KEY))))
        self._recents = _str_list(rows.get(RECENTS_KEY))[: self.recent_capacity]
        last = rows.get(LAST_QUERY_KEY)
        self._last_query = last if isinstance(last, str) and last.strip() else None

    @property
    def favorites(self) -> list[str]:
        return list(self._favorites)

    @property
    def recents(self) -> list[str]:
        return list(self._recents)

    @property
    def last_query(self) -> str | None:
        return self._last_query

    async def toggle_favorite(self, name: str) -> bool:
        if name in self._favorites:
            self._favorites = [item for item in self._favorites if item != name]
        else:
            self._favorites = self._favorites + [name]
        await self._save(FAVORITES_KEY, self._favorites)
        return name in self._favorites

    async def add_recent(self, name: str) -> list[str]:
        self._recents = push_recent(self._recents, name, self.recent_capacity)
        await self._save(RECENTS_KEY, self._recents)
        return self.recents

    async def set_last_query(self, text: str) -> None:
        self._last_query = text
        await self._save(LAST_QUERY_KEY, text)

    async def _save(self, name: str, value: Any) -> None:
        stmt = select(Preference).where(Preference.name == name)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            self.session.add(Preference(name=name, value=value))
        else:
            row.value = value
        await self.session.flush()
        await self.session.commit()


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


__all__ = ["PreferenceStore", "push_recent"]
