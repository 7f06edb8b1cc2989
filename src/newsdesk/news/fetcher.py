from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Any

import httpx

from newsdesk.core.config import Settings
from newsdesk.core.exceptions import FeedFetchError, NewsdeskError, SearchApiError
from newsdesk.news.categories import SEARCH_QUERIES, Category, RetrievalMode, retrieval_mode
from newsdesk.news.dedup import filter_by_age, sort_newest_first
from newsdesk.news.feeds import SourceRegistry
from newsdesk.news.health import FeedHealthTracker
from newsdesk.news.keywords import DEFAULT_KEYWORDS, Keywords
from newsdesk.news.models import FeedSource, NewsItem, now_ms
from newsdesk.news.parsers import parse_feed, parse_search_response

LOGGER = logging.getLogger(__name__)

FEED_ACCEPT = "application/rss+xml, application/xml, text/xml, */*"
JSON_ACCEPT = "application/json"
MIN_DELTA_MINUTES = 15
MAX_DELTA_MINUTES = 7 * 24 * 60


def search_timespan(since_ms: int | None, default: str = "7d", now: int | None = None) -> str:
    """Lookback window for the search API, narrowed to the time since ``since_ms``."""
    if since_ms is None:
        return default
    elapsed_ms = (now if now is not None else now_ms()) - since_ms
    minutes = max(MIN_DELTA_MINUTES, math.ceil(elapsed_ms / 60000))
    if minutes >= MAX_DELTA_MINUTES:
        return default
    return f"{minutes}min"


def build_search_params(
    category: Category,
    settings: Settings,
    since_ms: int | None = None,
    now: int | None = None,
) -> dict[str, str]:
    return {
        "query": f"{SEARCH_QUERIES[category]} sourcelang:english",
        "timespan": search_timespan(since_ms, settings.search_timespan, now),
        "mode": "artlist",
        "maxrecords": str(settings.search_max_records),
        "format": "json",
        "sort": "date",
    }


class CategoryFetcher:
    """Fetches one category's items according to its retrieval mode.

    Every source is requested concurrently under its own timeout. A failing
    source contributes an empty batch and never affects its siblings.
    """

    def __init__(
        self,
        settings: Settings,
        registry: SourceRegistry,
        health: FeedHealthTracker | None = None,
        client: httpx.AsyncClient | None = None,
        keywords: Keywords = DEFAULT_KEYWORDS,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.health = health or FeedHealthTracker.from_settings(settings)
        self.keywords = keywords
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> CategoryFetcher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _download(
        self,
        url: str,
        timeout: float,
        accept: str,
        params: dict[str, str] | None = None,
        error_cls: type[NewsdeskError] = FeedFetchError,
    ) -> httpx.Response:
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params, headers={"Accept": accept}, timeout=timeout),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise error_cls(f"timed out after {timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise error_cls(str(exc) or type(exc).__name__) from exc
        if response.status_code >= 400:
            raise error_cls(f"HTTP {response.status_code}")
        return response

    async def fetch_feed(self, source: FeedSource, category: Category, timeout: float) -> list[NewsItem]:
        if self.health.should_skip(category, source.name):
            LOGGER.debug("Skipping unhealthy feed %s/%s", category.value, source.name)
            return []

        start = time.perf_counter()
        try:
            response = await self._download(source.url, timeout, FEED_ACCEPT)
        except FeedFetchError as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.health.record(category, source.name, False, elapsed_ms, str(exc))
            LOGGER.warning("Feed fetch failed for %s/%s: %s", category.value, source.name, exc)
            return []

        items = parse_feed(response.content, source.name, category, self.keywords)
        self.health.record(category, source.name, True, (time.perf_counter() - start) * 1000)
        if items:
            LOGGER.info("%s/%s: %d items", category.value, source.name, len(items))
        else:
            LOGGER.warning("%s/%s: 0 items (body length %d)", category.value, source.name, len(response.content))
        return items

    async def fetch_rss_news(self, category: Category, timeout: float) -> list[NewsItem]:
        sources = self.registry.enabled_for(category)
        if not sources:
            if self.registry.configured_for(category):
                LOGGER.warning("No enabled feeds for %s", category.value)
            else:
                LOGGER.warning("No feeds configured for %s", category.value)
            return []

        grouped = await asyncio.gather(
            *(self.fetch_feed(source, category, timeout) for source in sources),
            return_exceptions=True,
        )
        out: list[NewsItem] = []
        for source, result in zip(sources, grouped):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                LOGGER.warning("Feed %s/%s failed: %s", category.value, source.name, result)
                continue
            out.extend(result)
        return sort_newest_first(out)

    async def fetch_search_news(
        self,
        category: Category,
        timeout: float,
        since_ms: int | None = None,
    ) -> list[NewsItem]:
        params = build_search_params(category, self.settings, since_ms)
        try:
            response = await self._download(
                self.settings.search_api_url,
                timeout,
                JSON_ACCEPT,
                params=params,
                error_cls=SearchApiError,
            )
        except SearchApiError as exc:
            LOGGER.warning("Search API request failed for %s: %s", category.value, exc)
            return []

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            LOGGER.warning("Non-JSON search response for %s: %s", category.value, content_type or "<none>")
            return []
        return parse_search_response(response.content, category, self.keywords)

    async def fetch_category(
        self,
        category: Category,
        timeout_seconds: float | None = None,
        since_ms: int | None = None,
    ) -> list[NewsItem]:
        timeout = timeout_seconds or self.settings.news_source_timeout_seconds
        mode = retrieval_mode(category)

        if mode is RetrievalMode.RSS:
            items = await self.fetch_rss_news(category, timeout)
        elif mode is RetrievalMode.RSS_SEARCH:
            rss_items, search_items = await asyncio.gather(
                self.fetch_rss_news(category, timeout),
                self.fetch_search_news(category, timeout, since_ms),
            )
            LOGGER.info(
                "%s: %d feed + %d search = %d total",
                category.value,
                len(rss_items),
                len(search_items),
                len(rss_items) + len(search_items),
            )
            items = [*rss_items, *search_items]
        else:
            items = await self.fetch_search_news(category, timeout, since_ms)

        return sort_newest_first(filter_by_age(items, self.settings.news_max_age_days))
