from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from newsdesk.db.models import MetaRow, NewsRow
from newsdesk.news.categories import Category
from newsdesk.news.dedup import DAY_MS
from newsdesk.news.models import NewsItem, now_ms

LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 200


@dataclass(slots=True)
class MetaValue:
    value: Any
    updated_at_ms: int


def _row_to_item(row: NewsRow) -> NewsItem:
    topics: list[str] = []
    if row.topics:
        try:
            topics = list(json.loads(row.topics))
        except (TypeError, ValueError):
            LOGGER.debug("Ignoring malformed topics for %s", row.id)
    return NewsItem(
        id=row.id,
        title=row.title,
        link=row.link,
        published_raw=row.pub_date,
        timestamp=row.timestamp,
        description=row.description,
        source=row.source,
        category=Category(row.category),
        is_alert=row.is_alert,
        alert_keyword=row.alert_keyword,
        region=row.region,
        topics=topics,
    )


class NewsRepository:
    """Durable item store answering "items for a category newer than a watermark"."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def upsert_news_items(self, items: Iterable[NewsItem]) -> int:
        count = 0
        with self.session_factory() as session:
            for item in items:
                session.merge(
                    NewsRow(
                        id=item.id,
                        title=item.title,
                        link=item.link,
                        pub_date=item.published_raw,
                        timestamp=item.timestamp,
                        description=item.description,
                        source=item.source,
                        category=item.category.value,
                        is_alert=item.is_alert,
                        alert_keyword=item.alert_keyword,
                        region=item.region,
                        topics=json.dumps(item.topics) if item.topics else None,
                    )
                )
                count += 1
            session.commit()
        return count

    def get_news_by_category(self, category: Category, since: int | None = None) -> list[NewsItem]:
        stmt = select(NewsRow).where(NewsRow.category == category.value)
        if since:
            stmt = stmt.where(NewsRow.timestamp > since)
        stmt = stmt.order_by(NewsRow.timestamp.desc())
        if not since:
            stmt = stmt.limit(DEFAULT_LIMIT)
        with self.session_factory() as session:
            return [_row_to_item(row) for row in session.scalars(stmt)]

    def get_news_by_category_batch(
        self,
        categories: Iterable[Category],
        since_by_category: Mapping[Category, int] | None = None,
    ) -> dict[Category, list[NewsItem]]:
        since_by_category = since_by_category or {}
        return {
            category: self.get_news_by_category(category, since_by_category.get(category))
            for category in categories
        }

    def get_latest_timestamp(self, category: Category) -> int | None:
        stmt = select(func.max(NewsRow.timestamp)).where(NewsRow.category == category.value)
        with self.session_factory() as session:
            latest = session.scalar(stmt)
        return int(latest) if latest is not None else None

    def get_news_count(self) -> int:
        with self.session_factory() as session:
            return int(session.scalar(select(func.count()).select_from(NewsRow)) or 0)

    def delete_old_news(self, max_age_days: int, now: int | None = None) -> int:
        cutoff = (now if now is not None else now_ms()) - max_age_days * DAY_MS
        with self.session_factory() as session:
            result = session.execute(delete(NewsRow).where(NewsRow.timestamp < cutoff))
            session.commit()
        deleted = result.rowcount or 0
        if deleted:
            LOGGER.info("Deleted %d news rows older than %d days", deleted, max_age_days)
        return deleted

    def set_meta(self, key: str, value: Any) -> None:
        with self.session_factory() as session:
            session.merge(MetaRow(key=key, value=json.dumps(value), updated_at=now_ms()))
            session.commit()

    def get_meta(self, key: str) -> MetaValue | None:
        with self.session_factory() as session:
            row = session.get(MetaRow, key)
            if row is None:
                return None
            return MetaValue(value=json.loads(row.value), updated_at_ms=row.updated_at)
