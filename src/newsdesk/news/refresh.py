from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Literal

from newsdesk.core.config import Settings
from newsdesk.core.exceptions import EdgeSnapshotError
from newsdesk.news.cache import NewsCache
from newsdesk.news.categories import NEWS_CATEGORIES, Category
from newsdesk.news.checkpoints import CheckpointStore
from newsdesk.news.dedup import merge_news_items
from newsdesk.news.edge import EdgeSnapshotClient
from newsdesk.news.feeds import SourceRegistry
from newsdesk.news.fetcher import CategoryFetcher
from newsdesk.news.models import CacheOrigin, NewsItem

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CachedCategory:
    category: Category
    items: list[NewsItem]
    stale: bool
    origin: CacheOrigin


@dataclass(slots=True, frozen=True)
class FreshCategory:
    category: Category
    items: list[NewsItem]


@dataclass(slots=True, frozen=True)
class CategoryError:
    category: Category
    error: Exception


@dataclass(slots=True, frozen=True)
class CheckpointUpdate:
    category: Category
    checkpoint: int


RefreshEvent = CachedCategory | FreshCategory | CategoryError | CheckpointUpdate
EventHandler = Callable[[RefreshEvent], object]


@dataclass(slots=True)
class RefreshResult:
    categories: dict[Category, list[NewsItem]]
    path: Literal["edge", "direct"]
    checkpoints: dict[Category, int] = field(default_factory=dict)
    errors: dict[Category, Exception] = field(default_factory=dict)


def _emit(handler: EventHandler | None, event: RefreshEvent) -> None:
    if handler is None:
        return
    try:
        handler(event)
    except Exception:
        LOGGER.warning("Refresh event handler failed on %s", type(event).__name__, exc_info=True)


class ProgressiveRefresher:
    """Cache-first refresh of many categories.

    Cached results are emitted first. Then the edge snapshot is tried once for
    all categories; only if it is disabled or fails does a bounded pool of
    workers fetch each category directly. Checkpoints gathered by whichever
    path ran are saved once at the end.
    """

    def __init__(
        self,
        fetcher: CategoryFetcher,
        cache: NewsCache,
        checkpoints: CheckpointStore,
        edge: EdgeSnapshotClient | None = None,
        registry: SourceRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.checkpoints = checkpoints
        self.edge = edge
        self.registry = registry or fetcher.registry
        self.settings = settings or fetcher.settings

    def _merge(self, existing: list[NewsItem], incoming: list[NewsItem]) -> list[NewsItem]:
        return merge_news_items(existing, incoming, max_age_days=self.settings.news_max_age_days)

    async def refresh(
        self,
        categories: Iterable[Category] | None = None,
        *,
        prefer_edge: bool = True,
        since_by_category: Mapping[Category, int] | None = None,
        concurrency: int | None = None,
        timeout_seconds: float | None = None,
        on_event: EventHandler | None = None,
    ) -> RefreshResult:
        targets = list(dict.fromkeys(categories or ())) or list(NEWS_CATEGORIES)
        result: dict[Category, list[NewsItem]] = {category: [] for category in targets}
        signatures: dict[Category, str] = {}

        for category in targets:
            signature = self.registry.signature(category)
            signatures[category] = signature
            cached = self.cache.get(category, signature)
            if cached is None:
                continue
            result[category] = cached.items
            _emit(on_event, CachedCategory(category, cached.items, cached.is_stale, cached.origin))

        stored = self.checkpoints.load()

        if prefer_edge and self.edge is not None and self.settings.edge_enabled:
            since = {**stored, **(since_by_category or {})}
            try:
                snapshot = await self.edge.fetch_snapshot(targets, since)
            except EdgeSnapshotError as exc:
                LOGGER.warning("Edge snapshot failed, falling back to direct fetch: %s", exc)
            else:
                next_checkpoints = dict(stored)
                for category in targets:
                    merged = self._merge(result[category], snapshot.items_for(category))
                    result[category] = merged
                    self.cache.set(category, signatures[category], merged)
                    _emit(on_event, FreshCategory(category, merged))

                    checkpoint = snapshot.checkpoint_for(category)
                    if checkpoint is None and merged:
                        checkpoint = merged[0].timestamp
                    if checkpoint is not None:
                        next_checkpoints[category] = checkpoint
                        _emit(on_event, CheckpointUpdate(category, checkpoint))

                self.checkpoints.save(next_checkpoints)
                return RefreshResult(result, "edge", next_checkpoints)

        limit = concurrency if concurrency is not None else self.settings.news_category_concurrency
        worker_count = min(max(1, limit), len(targets))
        pending = iter(targets)
        next_checkpoints = dict(stored)
        errors: dict[Category, Exception] = {}

        async def worker() -> None:
            # The iterator is shared; each next() happens between awaits.
            for category in pending:
                try:
                    items = await self.fetcher.fetch_category(category, timeout_seconds)
                except Exception as exc:
                    LOGGER.warning("Direct fetch failed for %s: %s", category.value, exc)
                    errors[category] = exc
                    _emit(on_event, CategoryError(category, exc))
                    continue

                merged = self._merge(result[category], items)
                result[category] = merged
                self.cache.set(category, signatures[category], merged)
                _emit(on_event, FreshCategory(category, merged))
                if merged:
                    next_checkpoints[category] = merged[0].timestamp
                    _emit(on_event, CheckpointUpdate(category, merged[0].timestamp))

        await asyncio.gather(*(worker() for _ in range(worker_count)))
        self.checkpoints.save(next_checkpoints)
        return RefreshResult(result, "direct", next_checkpoints, errors)

    async def stream(
        self,
        categories: Iterable[Category] | None = None,
        *,
        prefer_edge: bool = True,
        since_by_category: Mapping[Category, int] | None = None,
        concurrency: int | None = None,
        timeout_seconds: float | None = None,
    ) -> AsyncIterator[RefreshEvent]:
        """Yield refresh events as they happen.

        Closing or cancelling the consumer cancels the background refresh and
        every fetch it started.
        """
        queue: asyncio.Queue[RefreshEvent | None] = asyncio.Queue()
        task = asyncio.create_task(
            self.refresh(
                categories,
                prefer_edge=prefer_edge,
                since_by_category=since_by_category,
                concurrency=concurrency,
                timeout_seconds=timeout_seconds,
                on_event=queue.put_nowait,
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
