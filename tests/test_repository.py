from __future__ import annotations

import pytest
from sqlalchemy import inspect

from newsdesk.core.config import Settings
from newsdesk.db.init import init_db
from newsdesk.db.session import build_engine, build_session_factory
from newsdesk.news.categories import Category
from newsdesk.news.dedup import DAY_MS
from newsdesk.news.models import NewsItem, now_ms
from newsdesk.storage.repository import DEFAULT_LIMIT, NewsRepository

REQUIRED_TABLES = {"news", "meta", "cache_entries"}

NOW = now_ms()


def _item(item_id: str, category: Category = Category.TECH, age_ms: int = 0, **extra) -> NewsItem:
    return NewsItem(
        id=item_id,
        title=f"Headline {item_id}",
        link=f"https://example.com/{item_id}",
        timestamp=NOW - age_ms,
        source="Wire",
        category=category,
        **extra,
    )


@pytest.fixture
def repository() -> NewsRepository:
    engine = build_engine(Settings(database_url="sqlite:///:memory:"))
    init_db(engine)
    return NewsRepository(build_session_factory(engine))


def test_required_tables_exist() -> None:
    engine = build_engine(Settings(database_url="sqlite:///:memory:"))
    created = init_db(engine)

    assert created == sorted(REQUIRED_TABLES)
    assert REQUIRED_TABLES.issubset(set(inspect(engine).get_table_names()))


def test_upsert_round_trip_and_replace(repository: NewsRepository) -> None:
    item = _item("a", is_alert=True, alert_keyword="war", region="EUROPE", topics=["CONFLICT"], published_raw="x")
    repository.upsert_news_items([item])
    repository.upsert_news_items([item.model_copy(update={"title": "Updated headline"})])

    stored = repository.get_news_by_category(Category.TECH)
    assert len(stored) == 1
    assert stored[0].title == "Updated headline"
    assert stored[0].topics == ["CONFLICT"]
    assert stored[0].is_alert is True
    assert stored[0].published_raw == "x"
    assert repository.get_news_count() == 1


def test_since_filters_and_orders_newest_first(repository: NewsRepository) -> None:
    repository.upsert_news_items([_item("old", age_ms=3000), _item("mid", age_ms=2000), _item("new", age_ms=1000)])
    repository.upsert_news_items([_item("other", Category.AI)])

    assert [i.id for i in repository.get_news_by_category(Category.TECH)] == ["new", "mid", "old"]
    assert [i.id for i in repository.get_news_by_category(Category.TECH, since=NOW - 2000)] == ["new"]

    batch = repository.get_news_by_category_batch([Category.TECH, Category.AI, Category.GOV], {Category.TECH: NOW - 1500})
    assert [i.id for i in batch[Category.TECH]] == ["new"]
    assert [i.id for i in batch[Category.AI]] == ["other"]
    assert batch[Category.GOV] == []


def test_unbounded_reads_are_limited(repository: NewsRepository) -> None:
    repository.upsert_news_items([_item(f"i{n}", age_ms=n) for n in range(DEFAULT_LIMIT + 5)])

    assert len(repository.get_news_by_category(Category.TECH)) == DEFAULT_LIMIT


def test_delete_old_news(repository: NewsRepository) -> None:
    repository.upsert_news_items([_item("fresh", age_ms=DAY_MS), _item("stale", age_ms=8 * DAY_MS)])

    assert repository.delete_old_news(7, now=NOW) == 1
    assert [i.id for i in repository.get_news_by_category(Category.TECH)] == ["fresh"]


def test_meta_round_trip(repository: NewsRepository) -> None:
    assert repository.get_meta("missing") is None

    repository.set_meta("checkpoint:tech", 123)
    repository.set_meta("checkpoint:tech", 456)
    meta = repository.get_meta("checkpoint:tech")

    assert meta is not None
    assert meta.value == 456
    assert meta.updated_at_ms > 0


def test_latest_timestamp_ignores_other_categories(repository: NewsRepository) -> None:
    assert repository.get_latest_timestamp(Category.TECH) is None

    repository.upsert_news_items([_item("old", age_ms=5000), _item("ai", Category.AI)])

    assert repository.get_latest_timestamp(Category.TECH) == NOW - 5000
