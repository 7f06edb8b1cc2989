from __future__ import annotations

import calendar
import html
import json
import logging
import re
import time
from collections import Counter
from datetime import UTC, datetime
from typing import Any

import feedparser
from dateutil import parser as dtparser

from newsdesk.news.categories import Category
from newsdesk.news.keywords import DEFAULT_KEYWORDS, Keywords
from newsdesk.news.models import NewsItem, hash_code, now_ms
from newsdesk.news.regional_filter import classify, is_regional_category

LOGGER = logging.getLogger(__name__)

DESCRIPTION_MAX_CHARS = 200

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")
_GDELT_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$")


def strip_html(value: str) -> str:
    return _WS_RE.sub(" ", html.unescape(_TAG_RE.sub("", value))).strip()


def _slug(value: str) -> str:
    return _WS_RE.sub("-", value.strip().lower())


def feed_item_id(category: Category, source_name: str, link: str) -> str:
    return f"rss-{category.value}-{_slug(source_name)}-{hash_code(link)}"


def search_item_id(category: Category, url: str, index: int, fallback: str = "") -> str:
    return f"gdelt-{category.value}-{hash_code(url or fallback)}-{index}"


def _to_epoch_ms(value: Any) -> int | None:
    if isinstance(value, time.struct_time):
        return calendar.timegm(value) * 1000
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = dtparser.parse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)


def _entry_link(entry: Any) -> str:
    link = str(entry.get("link") or "").strip()
    if link:
        return link
    links = entry.get("links") or []
    alternates = [ln for ln in links if isinstance(ln, dict) and ln.get("rel", "alternate") == "alternate"]
    for candidate in alternates or links:
        href = candidate.get("href") if isinstance(candidate, dict) else None
        if href:
            return str(href).strip()
    return ""


def _entry_description(entry: Any) -> str:
    for key in ("summary", "description"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value
    content = entry.get("content") or []
    if content and isinstance(content[0], dict):
        return str(content[0].get("value") or "")
    return ""


def _entry_date(entry: Any) -> tuple[str, int]:
    raw = str(entry.get("published") or entry.get("updated") or "").strip()
    for key in ("published_parsed", "updated_parsed"):
        ts = _to_epoch_ms(entry.get(key))
        if ts is not None:
            return raw, ts
    ts = _to_epoch_ms(raw)
    return raw, ts if ts is not None else now_ms()


def parse_feed_with_stats(
    content: str | bytes,
    source_name: str,
    category: Category,
    keywords: Keywords = DEFAULT_KEYWORDS,
) -> tuple[list[NewsItem], Counter[str]]:
    """Parse an RSS 2.0 or Atom document into ``NewsItem``s.

    Returns the kept items and a per-reason count of regional-filter rejections.
    Unreadable documents produce an empty list; this function never raises.
    """
    dropped: Counter[str] = Counter()
    try:
        parsed = feedparser.parse(content)
    except Exception as exc:
        LOGGER.warning("Feed parse failed for %s: %s", source_name, exc)
        return [], dropped

    entries = getattr(parsed, "entries", None) or []
    if getattr(parsed, "bozo", 0) and not entries:
        LOGGER.warning("Parse error for %s: %s", source_name, getattr(parsed, "bozo_exception", "malformed feed"))
        return [], dropped

    items: list[NewsItem] = []
    for entry in entries:
        title = strip_html(str(entry.get("title") or ""))
        link = _entry_link(entry)
        if not title or not link:
            continue

        description = strip_html(_entry_description(entry))[:DESCRIPTION_MAX_CHARS]
        decision = classify(title, description, category)
        if not decision.accepted:
            dropped.update(decision.reasons)
            continue

        published_raw, timestamp = _entry_date(entry)
        detect_text = f"{title} {description}"
        alert = keywords.alert(title)
        items.append(
            NewsItem(
                id=feed_item_id(category, source_name, link),
                title=title,
                link=link,
                published_raw=published_raw or None,
                timestamp=timestamp,
                description=description or None,
                source=source_name,
                category=category,
                is_alert=alert is not None,
                alert_keyword=alert.keyword if alert else None,
                region=keywords.region(detect_text),
                topics=keywords.topics(detect_text),
            )
        )
    return items, dropped


def parse_feed(
    content: str | bytes,
    source_name: str,
    category: Category,
    keywords: Keywords = DEFAULT_KEYWORDS,
) -> list[NewsItem]:
    items, dropped = parse_feed_with_stats(content, source_name, category, keywords)
    if is_regional_category(category) and dropped:
        LOGGER.info(
            "Regional filter %s/%s: kept %d, dropped %d, reasons=%s",
            category.value,
            source_name,
            len(items),
            sum(dropped.values()),
            dict(dropped),
        )
    return items


def parse_search_date(value: str | None) -> int:
    """Epoch ms for a search API ``seendate`` such as ``20251202T224500Z``."""
    if not value:
        return now_ms()
    match = _GDELT_DATE_RE.match(value.strip())
    if match:
        year, month, day, hour, minute, second = (int(g) for g in match.groups())
        try:
            dt = datetime(year, month, day, hour, minute, second, tzinfo=UTC)
        except ValueError:
            return now_ms()
        return int(dt.timestamp() * 1000)
    ts = _to_epoch_ms(value)
    return ts if ts is not None else now_ms()


def search_article_to_item(
    article: dict[str, Any],
    category: Category,
    index: int,
    keywords: Keywords = DEFAULT_KEYWORDS,
) -> NewsItem | None:
    title = strip_html(str(article.get("title") or ""))
    if not title:
        return None
    url = str(article.get("url") or "").strip()
    domain = str(article.get("domain") or "").strip()
    seendate = str(article.get("seendate") or "").strip()
    alert = keywords.alert(title)
    return NewsItem(
        id=search_item_id(category, url, index, fallback=f"{title}|{domain}"),
        title=title,
        link=url,
        published_raw=seendate or None,
        timestamp=parse_search_date(seendate),
        source=domain or "News",
        category=category,
        is_alert=alert is not None,
        alert_keyword=alert.keyword if alert else None,
        region=keywords.region(title),
        topics=keywords.topics(title),
    )


def parse_search_response(
    content: str | bytes,
    category: Category,
    keywords: Keywords = DEFAULT_KEYWORDS,
) -> list[NewsItem]:
    """Map a full-text search API JSON body to ``NewsItem``s; bad JSON yields []."""
    try:
        data = json.loads(content)
    except ValueError:
        snippet = content[:100] if isinstance(content, str) else content[:100].decode("utf-8", "replace")
        LOGGER.warning("Invalid search JSON for %s: %s", category.value, snippet)
        return []

    articles = data.get("articles") if isinstance(data, dict) else None
    if not isinstance(articles, list):
        return []

    items: list[NewsItem] = []
    for index, article in enumerate(articles):
        if not isinstance(article, dict):
            continue
        item = search_article_to_item(article, category, index, keywords)
        if item is None:
            continue
        if not classify(item.title, item.description, category).accepted:
            continue
        items.append(item)
    return items
