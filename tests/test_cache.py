from __future__ import annotations

from newsdesk.core.config import Settings
from newsdesk.db.init import init_db
from newsdesk.db.session import build_engine, build_session_factory
from newsdesk.news.cache import NewsCache, SqlCacheBackend, cache_key
from newsdesk.news.categories import Category
from newsdesk.news.feeds import SourceRegistry
from newsdesk.news.models import FeedSource, NewsItem


class Clock:
    def __init__(self) -> None:
        self.now = 1_700_000_000_000

    def __call__(self) -> int:
        return self.now


def _item(item_id: str = "a") -> NewsItem:
    return NewsItem(
        id=item_id,
        title=f"Headline {item_id}",
        link=f"https://example.com/{item_id}",
        published_raw="Tue, 02 Dec 2025 22:45:00 GMT",
        timestamp=1_699_999_000_000,
        source="Wire",
        category=Category.TECH,
        is_alert=True,
        alert_keyword="war",
        topics=["CYBER"],
    )


def _backend() -> SqlCacheBackend:
    engine = build_engine(Settings(database_url="sqlite:///:memory:"))
    init_db(engine)
    return SqlCacheBackend(build_session_factory(engine))


def test_cache_key_format() -> None:
    assert cache_key(Category.TECH, "abc") == "news:tech:abc"


def test_memory_hit_and_staleness() -> None:
    clock = Clock()
    cache = NewsCache(ttl_seconds=300, clock_ms=clock)
    cache.set(Category.TECH, "sig", [_item()])

    hit = cache.get(Category.TECH, "sig")
    assert hit is not None
    assert hit.origin == "memory"
    assert hit.is_stale is False
    assert [i.id for i in hit.items] == ["a"]

    clock.now += 300_001
    assert cache.get(Category.TECH, "sig").is_stale is True


def test_changed_signature_misses() -> None:
    feeds = {Category.POLITICS: [FeedSource("A", "https://a.example"), FeedSource("B", "https://b.example")]}
    registry = SourceRegistry(feeds=feeds)
    cache = NewsCache()
    cache.set(Category.POLITICS, registry.signature(Category.POLITICS), [_item()])

    registry.toggle(registry.records_for(Category.POLITICS)[0].id)

    assert cache.get(Category.POLITICS, registry.signature(Category.POLITICS)) is None


def test_persisted_tier_round_trip_and_promotion() -> None:
    backend = _backend()
    clock = Clock()
    NewsCache(ttl_seconds=60, backend=backend, clock_ms=clock).set(Category.TECH, "sig", [_item("x")])

    fresh_process = NewsCache(ttl_seconds=60, backend=backend, clock_ms=clock)
    first = fresh_process.get(Category.TECH, "sig")
    second = fresh_process.get(Category.TECH, "sig")

    assert first is not None and first.origin == "storage"
    assert first.items == [_item("x")]
    assert second is not None and second.origin == "memory"


def test_invalidate_and_clear() -> None:
    backend = _backend()
    cache = NewsCache(backend=backend)
    cache.set(Category.TECH, "one", [_item()])
    cache.set(Category.AI, "two", [_item()])

    cache.invalidate(Category.TECH)
    assert cache.get(Category.TECH, "one") is None
    assert cache.get(Category.AI, "two") is not None

    cache.clear()
    assert cache.get(Category.AI, "two") is None
    assert backend.load(cache_key(Category.AI, "two")) is None
