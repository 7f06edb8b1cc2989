"""News ingestion, normalization and progressive refresh."""

from newsdesk.news.categories import NEWS_CATEGORIES, Category, RetrievalMode
from newsdesk.news.models import CachedNews, NewsItem, RegionalFilterDecision

__all__ = [
    "NEWS_CATEGORIES",
    "CachedNews",
    "Category",
    "NewsItem",
    "RegionalFilterDecision",
    "RetrievalMode",
]
