from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import httpx
import pytest

from newsdesk.core.config import Settings
from newsdesk.news.categories import Category
from newsdesk.news.feeds import SourceRegistry
from newsdesk.news.fetcher import CategoryFetcher, build_search_params, search_timespan
from newsdesk.news.health import FeedHealthTracker
from newsdesk.news.models import FeedSource

SEARCH_URL = "https://search.example/api"

FEEDS = {
    Category.POLITICS: [
        FeedSource("Alpha", "https://alpha.example/rss"),
        FeedSource("Beta", "https://beta.example/rss"),
        FeedSource("Slow", "https://slow.example/rss"),
    ],
    Category.INTEL: [FeedSource("Gamma", "https://gamma.example/rss")],
}


def _settings(**overrides) -> Settings:
    defaults = dict(database_url="sqlite:///:memory:", search_api_url=SEARCH_URL)
    defaults.update(overrides)
    return Settings(**defaults)


def _rss(*entries: tuple[str, str, datetime]) -> str:
    items = "".join(
        f"<item><title>{title}</title><link>{link}</link><pubDate>{format_datetime(when)}</pubDate></item>"
        for title, link, when in entries
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>T</title>{items}</channel></rss>'


def _gdelt_date(when: datetime) -> str:
    return when.strftime("%Y%m%dT%H%M%SZ")


NOW = datetime.now(UTC).replace(microsecond=0)


def _fetcher(handler, settings: Settings | None = None) -> CategoryFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CategoryFetcher(settings or _settings(), SourceRegistry(feeds=FEEDS), client=client)


@pytest.mark.asyncio
async def test_rss_failures_are_isolated_and_output_sorted() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "alpha.example":
            body = _rss(
                ("Senate passes spending bill", "https://alpha.example/1", NOW - timedelta(hours=3)),
                ("Governors meet on border policy", "https://alpha.example/2", NOW - timedelta(hours=1)),
            )
            return httpx.Response(200, text=body)
        if host == "beta.example":
            return httpx.Response(500, text="boom")
        await asyncio.sleep(5)
        return httpx.Response(200, text=_rss())

    fetcher = _fetcher(handler)
    items = await fetcher.fetch_category(Category.POLITICS, timeout_seconds=0.2)

    assert [i.link for i in items] == ["https://alpha.example/2", "https://alpha.example/1"]
    assert all(a.timestamp >= b.timestamp for a, b in zip(items, items[1:]))

    health = fetcher.health.get_all_feed_health()
    assert health["politics/Beta"]["last_error"] == "HTTP 500"
    assert health["politics/Slow"]["consecutive_failures"] == 1
    assert health["politics/Alpha"]["total_successes"] == 1


@pytest.mark.asyncio
async def test_rss_items_older_than_seven_days_are_dropped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = _rss(
            ("Senate passes spending bill", f"{request.url}/new", NOW - timedelta(days=1)),
            ("Old story from last month", f"{request.url}/old", NOW - timedelta(days=30)),
        )
        return httpx.Response(200, text=body)

    fetcher = _fetcher(handler)
    items = await fetcher.fetch_category(Category.POLITICS)

    assert items
    assert all(i.link.endswith("/new") for i in items)


@pytest.mark.asyncio
async def test_search_only_category_queries_search_api() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        payload = {
            "articles": [
                {"title": "Chip exports slow", "url": "https://n.example/a", "seendate": _gdelt_date(NOW - timedelta(hours=2))},
                {"title": "Cloud outage fixed", "url": "https://n.example/b", "seendate": _gdelt_date(NOW - timedelta(hours=1))},
            ]
        }
        return httpx.Response(200, json=payload)

    fetcher = _fetcher(handler)
    items = await fetcher.fetch_category(Category.TECH)

    assert [i.title for i in items] == ["Cloud outage fixed", "Chip exports slow"]
    assert len(seen) == 1
    params = seen[0].url.params
    assert seen[0].url.host == "search.example"
    assert params["query"].endswith("sourcelang:english")
    assert params["timespan"] == "7d"
    assert params["mode"] == "artlist"
    assert params["maxrecords"] == "50"
    assert params["format"] == "json"
    assert params["sort"] == "date"


@pytest.mark.asyncio
async def test_non_json_search_response_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>try later</html>", headers={"content-type": "text/html"})

    fetcher = _fetcher(handler)
    assert await fetcher.fetch_category(Category.AI) == []


@pytest.mark.asyncio
async def test_rss_plus_search_combines_both() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "search.example":
            article = {"title": "Spy agency report", "url": "https://s.example/1", "seendate": _gdelt_date(NOW)}
            return httpx.Response(
                200,
                content=json.dumps({"articles": [article]}),
                headers={"content-type": "application/json; charset=utf-8"},
            )
        body = _rss(("Defense review published", "https://gamma.example/1", NOW - timedelta(hours=4)))
        return httpx.Response(200, text=body)

    fetcher = _fetcher(handler)
    items = await fetcher.fetch_category(Category.INTEL)

    assert [i.source for i in items] == ["News", "Gamma"]


@pytest.mark.asyncio
async def test_since_narrows_search_window() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"articles": []})

    fetcher = _fetcher(handler)
    since = int((NOW - timedelta(minutes=90)).timestamp() * 1000)
    await fetcher.fetch_category(Category.GOV, since_ms=since)

    timespan = seen[0].url.params["timespan"]
    assert timespan.endswith("min")
    assert 90 <= int(timespan[:-3]) <= 92


@pytest.mark.asyncio
async def test_unhealthy_sources_are_not_requested() -> None:
    requested: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        return httpx.Response(200, text=_rss())

    settings = _settings()
    health = FeedHealthTracker.from_settings(settings)
    health.record("politics", "Beta", False, 1.0, "HTTP 500")
    health.record("politics", "Beta", False, 1.0, "HTTP 500")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    fetcher = CategoryFetcher(settings, SourceRegistry(feeds=FEEDS), health=health, client=client)

    await fetcher.fetch_category(Category.POLITICS)

    assert "beta.example" not in requested
    assert "alpha.example" in requested


def test_search_timespan_bounds() -> None:
    now = 10_000_000_000
    assert search_timespan(None, now=now) == "7d"
    assert search_timespan(now - 60_000, now=now) == "15min"
    assert search_timespan(now - 61 * 60_000 - 1, now=now) == "62min"
    assert search_timespan(now - 8 * 24 * 60 * 60_000, now=now) == "7d"


def test_build_search_params_uses_settings() -> None:
    params = build_search_params(Category.IRAN, _settings(search_max_records=25, search_timespan="3d"))

    assert params["maxrecords"] == "25"
    assert params["timespan"] == "3d"
    assert "Tehran" in params["query"]
