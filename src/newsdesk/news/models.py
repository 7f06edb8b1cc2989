from __future__ import annotations

import math
import struct
import time
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from newsdesk.news.categories import Category

CacheOrigin = Literal["memory", "storage"]

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def hash_code(text: str) -> str:
    """Deterministic 32-bit string hash rendered in base 36.

    Iterates UTF-16 code units so ids match those produced by other clients of
    the edge aggregator for the same URL.
    """
    raw = text.encode("utf-16-le")
    acc = 0
    for (unit,) in struct.iter_unpack("<H", raw):
        acc = (acc * 31 + unit) & 0xFFFFFFFF
    if acc >= 0x80000000:
        acc -= 0x100000000
    return _to_base36(abs(acc))


class NewsItem(BaseModel):
    """One normalized article.

    Serializes with camelCase keys (``pubDate``, ``isAlert``) which is the wire
    shape exchanged with the edge aggregator.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    title: str
    link: str
    published_raw: str | None = Field(default=None, alias="pubDate")
    timestamp: int
    description: str | None = None
    source: str
    category: Category
    is_alert: bool = False
    alert_keyword: str | None = None
    region: str | None = None
    topics: list[str] = Field(default_factory=list)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> int:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return now_ms()
        if not math.isfinite(number):
            return now_ms()
        return int(number)

    @field_validator("topics", mode="before")
    @classmethod
    def _coerce_topics(cls, value: Any) -> list[str]:
        if value is None:
            return []
        return [str(v) for v in value]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(slots=True, frozen=True)
class RegionalFilterDecision:
    accepted: bool
    reasons: tuple[str, ...]
    matched_geo_terms: tuple[str, ...] = ()
    matched_policy_terms: tuple[str, ...] = ()
    matched_block_terms: tuple[str, ...] = ()


@dataclass(slots=True)
class CacheEntry:
    items: list[NewsItem]
    inserted_at_ms: int
    ttl_ms: int

    def age_ms(self, at_ms: int | None = None) -> int:
        return (at_ms if at_ms is not None else now_ms()) - self.inserted_at_ms

    def is_stale(self, at_ms: int | None = None) -> bool:
        return self.age_ms(at_ms) > self.ttl_ms


@dataclass(slots=True)
class CachedNews:
    items: list[NewsItem]
    is_stale: bool
    origin: CacheOrigin


@dataclass(slots=True)
class FeedSource:
    name: str
    url: str


@dataclass(slots=True)
class SourceRecord:
    id: str
    category: Category
    name: str
    url: str
    enabled: bool = True
    is_custom: bool = False

    def as_source(self) -> FeedSource:
        return FeedSource(name=self.name, url=self.url)
