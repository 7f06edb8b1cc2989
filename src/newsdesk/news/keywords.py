from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

ALERT_KEYWORDS: tuple[str, ...] = (
    "war",
    "invasion",
    "military",
    "nuclear",
    "sanctions",
    "missile",
    "attack",
    "troops",
    "conflict",
    "strike",
    "bomb",
    "casualties",
    "ceasefire",
    "treaty",
    "nato",
    "coup",
    "martial law",
    "emergency",
    "assassination",
    "terrorist",
    "hostage",
    "evacuation",
)

REGION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "EUROPE": ("nato", "eu", "european", "ukraine", "russia", "germany", "france", "uk", "britain", "poland"),
    "MENA": ("iran", "israel", "saudi", "syria", "iraq", "gaza", "lebanon", "yemen", "houthi", "middle east"),
    "APAC": ("china", "taiwan", "japan", "korea", "indo-pacific", "south china sea", "asean", "philippines"),
    "AMERICAS": ("us", "america", "canada", "mexico", "brazil", "venezuela", "latin"),
    "AFRICA": ("africa", "sahel", "niger", "sudan", "ethiopia", "somalia"),
}

TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "CYBER": ("cyber", "hack", "ransomware", "malware", "breach", "apt", "vulnerability"),
    "NUCLEAR": ("nuclear", "icbm", "warhead", "nonproliferation", "uranium", "plutonium"),
    "CONFLICT": ("war", "military", "troops", "invasion", "strike", "missile", "combat", "offensive"),
    "INTEL": ("intelligence", "espionage", "spy", "cia", "mossad", "fsb", "covert"),
    "DEFENSE": ("pentagon", "dod", "defense", "military", "army", "navy", "air force"),
    "DIPLO": ("diplomat", "embassy", "treaty", "sanctions", "talks", "summit", "bilateral"),
    "ECON": (
        "economy",
        "economic",
        "inflation",
        "recession",
        "gdp",
        "interest rate",
        "fiscal",
        "currency",
        "central bank",
        "imf",
        "world bank",
        "unemployment",
    ),
    "ELECTIONS": (
        "election",
        "vote",
        "ballot",
        "candidate",
        "campaign",
        "runoff",
        "referendum",
        "incumbent",
        "polling",
    ),
    "UNREST": ("protest", "riot", "uprising", "unrest", "crackdown", "dissident", "revolt", "demonstration"),
    "TRADE": (
        "tariff",
        "trade war",
        "embargo",
        "mercosur",
        "brics",
        "free trade",
        "export ban",
        "trade deal",
        "trade agreement",
    ),
    "ENERGY": (
        "oil",
        "pipeline",
        "opec",
        "petroleum",
        "mining",
        "lithium",
        "renewable",
        "natural gas",
        "energy crisis",
    ),
}


def _compile(keyword: str) -> re.Pattern[str]:
    escaped = r"\s+".join(re.escape(part) for part in keyword.split())
    return re.compile(rf"(?<!\w){escaped}(?!\w)", re.IGNORECASE)


_ALERT_PATTERNS = [(kw, _compile(kw)) for kw in ALERT_KEYWORDS]
_REGION_PATTERNS = {region: [_compile(kw) for kw in kws] for region, kws in REGION_KEYWORDS.items()}
_TOPIC_PATTERNS = {topic: [_compile(kw) for kw in kws] for topic, kws in TOPIC_KEYWORDS.items()}


@dataclass(slots=True, frozen=True)
class AlertMatch:
    keyword: str


def contains_alert_keyword(text: str) -> AlertMatch | None:
    for keyword, pattern in _ALERT_PATTERNS:
        if pattern.search(text):
            return AlertMatch(keyword=keyword)
    return None


def detect_region(text: str) -> str | None:
    for region, patterns in _REGION_PATTERNS.items():
        if any(p.search(text) for p in patterns):
            return region
    return None


def detect_topics(text: str) -> list[str]:
    return [topic for topic, patterns in _TOPIC_PATTERNS.items() if any(p.search(text) for p in patterns)]


@dataclass(slots=True, frozen=True)
class Keywords:
    """Text classifiers consumed by the parsers; swap for tests or custom tables."""

    alert: Callable[[str], AlertMatch | None] = contains_alert_keyword
    region: Callable[[str], str | None] = detect_region
    topics: Callable[[str], list[str]] = detect_topics


DEFAULT_KEYWORDS = Keywords()
