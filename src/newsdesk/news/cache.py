from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Protocol

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from newsdesk.db.models import CacheEntryRow
from newsdesk.news.categories import Category
from newsdesk.news.models import CachedNews, CacheEntry, NewsItem, now_ms

LOGGER = logging.getLogger(__name__)

_ITEMS = TypeAdapter(list[NewsItem])


def cache_key(category: Category, signature: str) -> str:
    return f"news:{category.value}:{signature}"


class CacheBackend(Protocol):
    def load(self, key: str) -> CacheEntry | None: ...

    def store(self, key: str, entry: CacheEntry) -> None: ...

    def delete_prefix(self, prefix: str) -> None: ...

    def clear(self) -> None: ...


class SqlCacheBackend:
    """Persisted cache tier backed by the ``cache_entries`` table.

    Storage errors are logged and treated as misses.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def load(self, key: str) -> CacheEntry | None:
        try:
            with self.session_factory() as session:
                row = session.get(CacheEntryRow, key)
                if row is None:
                    return None
                payload, inserted_at_ms, ttl_ms = row.payload, row.inserted_at_ms, row.ttl_ms
        except SQLAlchemyError as exc:
            LOGGER.warning("Cache read failed for %s: %s", key, exc)
            return None
        try:
            items = _ITEMS.validate_json(payload)
        except ValidationError as exc:
            LOGGER.warning("Discarding unreadable cache entry %s: %s", key, exc)
            return None
        return CacheEntry(items=items, inserted_at_ms=inserted_at_ms, ttl_ms=ttl_ms)

    def store(self, key: str, entry: CacheEntry) -> None:
        payload = json.dumps([item.to_wire() for item in entry.items])
        try:
            with self.session_factory() as session:
                row = session.get(CacheEntryRow, key)
                if row is None:
                    session.add(
                        CacheEntryRow(
                            key=key,
                            payload=payload,
                            inserted_at_ms=entry.inserted_at_ms,
                            ttl_ms=entry.ttl_ms,
                        )
                    )
                else:
                    row.payload = payload
                    row.inserted_at_ms = entry.inserted_at_ms
                    row.ttl_ms = entry.ttl_ms
                session.commit()
        except SQLAlchemyError as exc:
            LOGGER.warning("Cache write failed for %s: %s", key, exc)

    def delete_prefix(self, prefix: str) -> None:
        try:
            with self.session_factory() as session:
                session.execute(delete(CacheEntryRow).where(CacheEntryRow.key.startswith(prefix, autoescape=True)))
                session.commit()
        except SQLAlchemyError as exc:
            LOGGER.warning("Cache delete failed for %s*: %s", prefix, exc)

    def clear(self) -> None:
        try:
            with self.session_factory() as session:
                session.execute(delete(CacheEntryRow))
                session.commit()
        except SQLAlchemyError as exc:
            LOGGER.warning("Cache clear failed: %s", exc)


class NewsCache:
    """Two-tier per-category cache keyed by category and source signature.

    A hit in the persisted tier is promoted into memory. Entries are returned
    even when stale; callers decide whether to refresh.
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        backend: CacheBackend | None = None,
        clock_ms: Callable[[], int] = now_ms,
    ) -> None:
        self.ttl_ms = ttl_seconds * 1000
        self.backend = backend
        self._clock_ms = clock_ms
        self._memory: dict[str, CacheEntry] = {}

    def get(self, category: Category, signature: str) -> CachedNews | None:
        key = cache_key(category, signature)
        now = self._clock_ms()
        entry = self._memory.get(key)
        if entry is not None:
            return CachedNews(items=list(entry.items), is_stale=entry.is_stale(now), origin="memory")

        if self.backend is None:
            return None
        entry = self.backend.load(key)
        if entry is None:
            return None
        self._memory[key] = entry
        return CachedNews(items=list(entry.items), is_stale=entry.is_stale(now), origin="storage")

    def set(
        self,
        category: Category,
        signature: str,
        items: list[NewsItem],
        ttl_seconds: int | None = None,
    ) -> None:
        key = cache_key(category, signature)
        ttl_ms = ttl_seconds * 1000 if ttl_seconds is not None else self.ttl_ms
        entry = CacheEntry(items=list(items), inserted_at_ms=self._clock_ms(), ttl_ms=ttl_ms)
        self._memory[key] = entry
        if self.backend is not None:
            self.backend.store(key, entry)

    def invalidate(self, category: Category) -> None:
        prefix = f"news:{category.value}:"
        for key in [k for k in self._memory if k.startswith(prefix)]:
            del self._memory[key]
        if self.backend is not None:
            self.backend.delete_prefix(prefix)

    def clear(self) -> None:
        self._memory.clear()
        if self.backend is not None:
            self.backend.clear()
