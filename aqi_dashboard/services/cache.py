"""Time-boxed result caches over in-memory or SQL backing stores."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Generic, Protocol, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aqi_dashboard.db.models import CachedReading
from aqi_dashboard.domain.models import CacheEntry, Reading
from aqi_dashboard.utils.datetime import ensure_utc, utc_now

T = TypeVar("T")


class CacheBackend(Protocol[T]):
    async def load(self, key: str) -> CacheEntry[T] | None: ...

    async def store(self, key: str, entry: CacheEntry[T]) -> None: ...


class MemoryCacheBackend(Generic[T]):
    """Session-scoped store; gone when the process exits."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry[T]] = {}

    async def load(self, key: str) -> CacheEntry[T] | None:
        return self._entries.get(key)

    async def store(self, key: str, entry: CacheEntry[T]) -> None:
        self._entries[key] = entry


class SqlCacheBackend(Generic[T]):
    """Durable store backed by the ``reading_cache`` table."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        dump: Callable[[T], dict[str, Any]],
        load: Callable[[dict[str, Any]], T],
    ) -> None:
        self.session = session
        self._dump = dump
        self._load = load

    async def load(self, key: str) -> CacheEntry[T] | None:
        row = await self._get_row(key)
        if row is None:
            return None
        return CacheEntry(value=self._load(row.payload), stored_at=ensure_utc(row.stored_at))

    async def store(self, key: str, entry: CacheEntry[T]) -> None:
        payload = self._dump(entry.value)
        row = await self._get_row(key)
        if row is None:
            self.session.add(
                CachedReading(cache_key=key, payload=payload, stored_at=entry.stored_at)
            )
        else:
            row.payload = payload
            row.stored_at = entry.stored_at
        await self.session.flush()
        await self.session.commit()

    async def _get_row(self, key: str) -> CachedReading | None:
        stmt = select(CachedReading).where(CachedReading.cache_key == key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class ResultCache(Generic[T]):
    """``get``/``put`` over a backend; stale entries read as misses."""

    def __init__(
        self,
        backend: CacheBackend[T],
        *,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.ttl = ttl
        self._clock = clock

    async def get(self, key: str) -> T | None:
        entry = await self.backend.load(key)
        if entry is None or not entry.is_fresh(self._clock(), self.ttl):
            return None
        return entry.value

    async def put(self, key: str, value: T) -> None:
        await self.backend.store(key, CacheEntry(value=value, stored_at=self._clock()))


def reading_cache(
    session: AsyncSession,
    *,
    ttl_seconds: int,
    clock: Callable[[], datetime] = utc_now,
) -> ResultCache[Reading]:
    backend: SqlCacheBackend[Reading] = SqlCacheBackend(
        session,
        dump=lambda reading: reading.model_dump(mode="json"),
        load=Reading.model_validate,
    )
    return ResultCache(backend, ttl=timedelta(seconds=ttl_seconds), clock=clock)


def suggestion_cache() -> ResultCache[list]:
    return ResultCache(MemoryCacheBackend(), ttl=None)


__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "ResultCache",
    "SqlCacheBackend",
    "reading_cache",
    "suggestion_cache",
]
