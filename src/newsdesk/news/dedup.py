from __future__ import annotations

from collections.abc import Iterable, Sequence

from newsdesk.news.models import NewsItem, now_ms

MAX_AGE_DAYS = 7
DAY_MS = 24 * 60 * 60 * 1000
TITLE_SIMILARITY_THRESHOLD = 0.6
_MIN_TOKEN_CHARS = 4


def title_tokens(title: str) -> frozenset[str]:
    return frozenset(w for w in title.lower().split() if len(w) >= _MIN_TOKEN_CHARS)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    union = len(a | b)
    return len(a & b) / union if union else 0.0


def title_similarity(a: str, b: str) -> float:
    """Word-level Jaccard similarity ignoring words shorter than four characters."""
    return jaccard(title_tokens(a), title_tokens(b))


def deduplicate_news(
    items: Iterable[NewsItem],
    threshold: float = TITLE_SIMILARITY_THRESHOLD,
) -> list[NewsItem]:
    """Keep the first item of every duplicate chain, preserving input order.

    An item is a duplicate when its id was already seen or its title is similar
    to any earlier title, including titles that were themselves dropped. This
    makes A~B, B~C collapse onto A even when A and C are not similar.
    """
    seen_ids: set[str] = set()
    pool: list[frozenset[str]] = []
    out: list[NewsItem] = []

    for item in items:
        key = item.id.strip().lower()
        if key in seen_ids:
            continue
        seen_ids.add(key)

        tokens = title_tokens(item.title)
        is_duplicate = any(jaccard(tokens, other) > threshold for other in pool)
        pool.append(tokens)
        if not is_duplicate:
            out.append(item)
    return out


def filter_by_age(
    items: Iterable[NewsItem],
    max_age_days: int = MAX_AGE_DAYS,
    now: int | None = None,
) -> list[NewsItem]:
    reference = now if now is not None else now_ms()
    max_age = max_age_days * DAY_MS
    return [item for item in items if reference - item.timestamp <= max_age]


def sort_newest_first(items: Iterable[NewsItem]) -> list[NewsItem]:
    # sorted() is stable with reverse=True, so ties keep their relative order.
    return sorted(items, key=lambda item: item.timestamp, reverse=True)


def merge_news_items(
    existing: Sequence[NewsItem],
    incoming: Sequence[NewsItem],
    *,
    max_age_days: int = MAX_AGE_DAYS,
    now: int | None = None,
) -> list[NewsItem]:
    """Combine two batches: incoming first, deduplicated, age-filtered, newest first."""
    merged = deduplicate_news([*incoming, *existing])
    return sort_newest_first(filter_by_age(merged, max_age_days, now))
