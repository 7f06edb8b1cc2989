from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from newsdesk.news.categories import NEWS_CATEGORIES, Category
from newsdesk.news.edge import EdgeSnapshot
from newsdesk.news.fetcher import CategoryFetcher
from newsdesk.news.models import NewsItem, now_ms
from newsdesk.storage.repository import NewsRepository

LOGGER = logging.getLogger(__name__)

LAST_REFRESH_KEY = "lastRefreshTime"
FEED_HEALTH_KEY = "feedHealth"
CIRCUIT_BREAKERS_KEY = "circuitBreakers"


def checkpoint_key(category: Category) -> str:
    return f"checkpoint:{category.value}"


@dataclass(slots=True)
class AggregatorRefreshStats:
    categories: int = 0
    items: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)


async def fetch_and_store(
    fetcher: CategoryFetcher,
    repository: NewsRepository,
    category: Category,
) -> list[NewsItem]:
    """Fetch a category live and persist it.

    The search API window is narrowed to the time since the previous stored
    checkpoint was written.
    """
    previous = repository.get_meta(checkpoint_key(category))
    since_ms = previous.updated_at_ms if previous is not None else None
    items = await fetcher.fetch_category(category, since_ms=since_ms)
    if items:
        repository.upsert_news_items(items)
        repository.set_meta(checkpoint_key(category), items[0].timestamp)
    return items


async def refresh_all_news(
    fetcher: CategoryFetcher,
    repository: NewsRepository,
    categories: Iterable[Category] | None = None,
) -> AggregatorRefreshStats:
    started = time.perf_counter()
    stats = AggregatorRefreshStats()
    for category in list(categories or ()) or list(NEWS_CATEGORIES):
        stats.categories += 1
        try:
            items = await fetch_and_store(fetcher, repository, category)
        except Exception as exc:
            LOGGER.warning("Refresh failed for %s: %s", category.value, exc)
            stats.errors.append(f"{category.value}: {exc}")
            continue
        stats.items += len(items)
        LOGGER.info("Stored %d items for %s", len(items), category.value)

    repository.set_meta(LAST_REFRESH_KEY, now_ms())
    repository.set_meta(FEED_HEALTH_KEY, fetcher.health.get_all_feed_health())
    repository.set_meta(CIRCUIT_BREAKERS_KEY, fetcher.health.get_circuit_breaker_status())
    stats.duration_ms = int((time.perf_counter() - started) * 1000)
    return stats


async def build_snapshot(
    repository: NewsRepository,
    fetcher: CategoryFetcher,
    categories: Iterable[Category],
    since_by_category: Mapping[Category, int] | None = None,
) -> EdgeSnapshot:
    """Serve stored items newer than each watermark.

    Only categories with no stored rows at all are fetched live; a caller that
    is already caught up gets an empty list. Each checkpoint is the newest
    stored or fetched timestamp, or now when there is none.
    """
    targets = list(categories)
    since_by_category = since_by_category or {}
    result = repository.get_news_by_category_batch(targets, since_by_category)
    latest = {category: repository.get_latest_timestamp(category) for category in targets}

    empty = [category for category in targets if latest[category] is None]
    if empty:
        fetched = await asyncio.gather(
            *(fetch_and_store(fetcher, repository, category) for category in empty),
            return_exceptions=True,
        )
        for category, outcome in zip(empty, fetched):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                LOGGER.warning("Live fetch for snapshot failed for %s: %s", category.value, outcome)
                continue
            since = since_by_category.get(category) or 0
            result[category] = [item for item in outcome if item.timestamp > since]
            if outcome:
                latest[category] = outcome[0].timestamp

    now = now_ms()
    return EdgeSnapshot(
        categories={category.value: items for category, items in result.items()},
        checkpoints={category.value: now if newest is None else newest for category, newest in latest.items()},
    )
