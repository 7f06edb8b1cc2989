from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from urllib.parse import urlparse

from newsdesk.core.exceptions import SourceRegistryError
from newsdesk.news.categories import Category
from newsdesk.news.models import FeedSource, SourceRecord, hash_code

LOGGER = logging.getLogger(__name__)

_F = FeedSource

FEEDS: dict[Category, list[FeedSource]] = {
    Category.POLITICS: [
        _F("BBC World", "https://feeds.bbci.co.uk/news/world/rss.xml"),
        _F("NYT World", "https://rss.nytimes.com/services/xml/rss/nyt/World.xml"),
        _F("Washington Post", "https://feeds.washingtonpost.com/rss/politics"),
        _F("The Guardian", "https://www.theguardian.com/world/rss"),
        _F("NPR News", "https://feeds.npr.org/1001/rss.xml"),
        _F("Foreign Affairs", "https://www.foreignaffairs.com/rss.xml"),
        _F("Politico", "https://rss.politico.com/politics-news.xml"),
        _F("Foreign Policy", "https://foreignpolicy.com/feed/"),
        _F("The Economist", "https://www.economist.com/the-world-this-week/rss.xml"),
        _F("Al Jazeera", "https://www.aljazeera.com/xml/rss/all.xml"),
    ],
    Category.TECH: [
        _F("Hacker News", "https://hnrss.org/frontpage"),
        _F("Ars Technica", "https://feeds.arstechnica.com/arstechnica/technology-lab"),
        _F("The Verge", "https://www.theverge.com/rss/index.xml"),
        _F("MIT Tech Review", "https://www.technologyreview.com/feed/"),
        _F("ArXiv AI", "https://rss.arxiv.org/rss/cs.AI"),
        _F("OpenAI Blog", "https://openai.com/news/rss.xml"),
    ],
    Category.FINANCE: [
        _F("CNBC", "https://www.cnbc.com/id/100003114/device/rss/rss.html"),
        _F("MarketWatch", "https://feeds.marketwatch.com/marketwatch/topstories"),
        _F("Yahoo Finance", "https://finance.yahoo.com/news/rssindex"),
        _F("BBC Business", "https://feeds.bbci.co.uk/news/business/rss.xml"),
        _F("FT", "https://www.ft.com/rss/home"),
    ],
    Category.GOV: [
        _F("White House", "https://www.whitehouse.gov/news/feed/"),
        _F("Federal Reserve", "https://www.federalreserve.gov/feeds/press_all.xml"),
        _F("SEC Announcements", "https://www.sec.gov/news/pressreleases.rss"),
        _F(
            "DoD News",
            "https://www.defense.gov/DesktopModules/ArticleCS/RSS.ashx?max=10&ContentType=1&Site=945",
        ),
    ],
    Category.AI: [
        _F("OpenAI Blog", "https://openai.com/news/rss.xml"),
        _F("ArXiv AI", "https://rss.arxiv.org/rss/cs.AI"),
    ],
    Category.INTEL: [
        _F("Defense One", "https://www.defenseone.com/rss/all/"),
        _F("Breaking Defense", "https://breakingdefense.com/feed/"),
        _F("War on the Rocks", "https://warontherocks.com/feed/"),
        _F("Defense News", "https://www.defensenews.com/arc/outboundfeeds/rss/?outputType=xml"),
        _F("The War Zone", "https://www.thedrive.com/the-war-zone/feed"),
        _F("RealClearDefense", "https://www.realcleardefense.com/index.xml"),
        _F("CSIS", "https://www.csis.org/analysis/feed"),
        _F("Bellingcat", "https://www.bellingcat.com/feed/"),
        _F("Chatham House", "https://www.chathamhouse.org/rss/all"),
        _F("IISS", "https://www.iiss.org/rss"),
        _F("Military.com", "https://www.military.com/rss-feeds/content?feed=news-headlines.xml"),
    ],
    Category.BRAZIL: [
        # General
        _F("G1 Brasil", "https://g1.globo.com/rss/g1/"),
        _F("Folha de S.Paulo", "https://feeds.folha.uol.com.br/emcimadahora/rss091.xml"),
        _F("Reuters Brazil", "https://www.reuters.com/world/americas/rss"),
        # Politics
        _F("G1 Politica", "https://g1.globo.com/rss/g1/politica/"),
        _F("Gazeta do Povo", "https://www.gazetadopovo.com.br/feed/rss/republica.xml"),
        _F("CNN Brasil", "https://www.cnnbrasil.com.br/politica/feed/"),
        _F("Poder360", "https://www.poder360.com.br/feed/"),
        _F("Agencia Brasil", "https://agenciabrasil.ebc.com.br/rss/ultimasnoticias/feed.xml"),
        # Economy
        _F("G1 Economia", "https://g1.globo.com/rss/g1/economia/"),
        _F("InfoMoney", "https://www.infomoney.com.br/feed/"),
        _F("Gazeta Economia", "https://www.gazetadopovo.com.br/feed/rss/economia.xml"),
        _F("Valor Economico", "https://valor.globo.com/feed/"),
        # Defense
        _F("DefesaNet", "https://www.defesanet.com.br/feed/"),
        _F("Zona Militar", "https://www.zona-militar.com/feed/"),
        _F("Breaking Defense LATAM", "https://breakingdefense.com/tag/latin-america/feed/"),
    ],
    Category.LATAM: [
        _F("Reuters Latin America", "https://www.reuters.com/world/americas/rss"),
        _F("Americas Quarterly", "https://www.americasquarterly.org/feed/"),
        _F(
            "El Pais America",
            "https://feeds.elpais.com/mrss-s/pages/ep/site/elpais.com/section/america/portada",
        ),
    ],
    Category.IRAN: [
        _F("Tehran Times", "https://www.tehrantimes.com/rss"),
        _F("Al-Monitor", "https://www.al-monitor.com/rss"),
        _F("Radio Farda", "https://en.radiofarda.com/api/zp_qmtl-vomx-tpe_bimr"),
        _F("Mehr News", "https://en.mehrnews.com/rss"),
        _F("ISNA", "https://en.isna.ir/rss"),
        _F("IFP News", "https://ifpnews.com/feed"),
        _F("IranWire", "https://iranwire.com/en/feed"),
    ],
    Category.VENEZUELA: [
        _F("Caracas Chronicles", "https://www.caracaschronicles.com/feed"),
        _F("El Nacional", "https://www.elnacional.com/feed"),
        _F("Venezuelanalysis", "https://venezuelanalysis.com/feed"),
        _F("VOA Americas", "https://www.vozdeamerica.com/api/zt-pemyvi"),
        _F("Reuters Americas", "https://www.reuters.com/world/americas/rss"),
    ],
    Category.GREENLAND: [
        _F("Arctic Today", "https://www.arctictoday.com/feed"),
        _F("High North News", "https://en.highnorthnews.com/feed"),
        _F("The Arctic Institute", "https://www.thearcticinstitute.org/feed"),
        _F("Arctic Council", "https://arctic-council.org/feed"),
        _F("Eye on the Arctic", "https://www.rcinet.ca/eye-on-the-arctic/feed/"),
    ],
    Category.FRINGE: [],
}


def _normalize(value: str) -> str:
    return value.strip().lower()


def build_source_id(category: Category, name: str, url: str) -> str:
    raw = f"{category.value}::{_normalize(name)}::{_normalize(url)}"
    return re.sub(r"[^a-z0-9:/._-]+", "-", raw)


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def source_signature(sources: list[FeedSource]) -> str:
    """Fingerprint of an enabled-source list, independent of its order."""
    pairs = sorted(f"{source.name}|{source.url}" for source in sources)
    return hash_code("::".join(pairs))


class SourceRegistry:
    """Built-in feeds plus user overrides and custom sources.

    Overrides (enabled flags for built-in feeds) and custom sources can be
    persisted to a small JSON file; persistence failures are logged and ignored.
    """

    def __init__(
        self,
        feeds: dict[Category, list[FeedSource]] | None = None,
        path: str | Path | None = None,
    ) -> None:
        self._feeds = feeds if feeds is not None else FEEDS
        self._path = Path(path) if path else None
        self._records: list[SourceRecord] = self._built_in()

    def _built_in(self) -> list[SourceRecord]:
        records = [
            SourceRecord(
                id=build_source_id(category, feed.name, feed.url),
                category=category,
                name=feed.name,
                url=feed.url,
            )
            for category, feeds in self._feeds.items()
            for feed in feeds
        ]
        return sorted(records, key=lambda r: r.name.lower())

    def load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not read source overrides from %s: %s", self._path, exc)
            return
        if not isinstance(payload, dict):
            return

        overrides = payload.get("overrides") or {}
        records = self._built_in()
        for record in records:
            if isinstance(overrides.get(record.id), bool):
                record.enabled = overrides[record.id]

        for raw in payload.get("custom") or []:
            try:
                category = Category(raw["category"])
                name = str(raw["name"])
                url = str(raw["url"])
            except (KeyError, TypeError, ValueError):
                continue
            records.append(
                SourceRecord(
                    id=build_source_id(category, name, url),
                    category=category,
                    name=name,
                    url=url,
                    enabled=bool(raw.get("enabled", True)),
                    is_custom=True,
                )
            )
        self._records = sorted(records, key=lambda r: r.name.lower())

    def save(self) -> None:
        if self._path is None:
            return
        payload = {
            "overrides": {r.id: r.enabled for r in self._records if not r.is_custom},
            "custom": [
                {"category": r.category.value, "name": r.name, "url": r.url, "enabled": r.enabled}
                for r in self._records
                if r.is_custom
            ],
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Could not persist source overrides to %s: %s", self._path, exc)

    def records_for(self, category: Category) -> list[SourceRecord]:
        return [r for r in self._records if r.category == category]

    def enabled_for(self, category: Category) -> list[FeedSource]:
        return [r.as_source() for r in self._records if r.category == category and r.enabled]

    def configured_for(self, category: Category) -> list[FeedSource]:
        return list(self._feeds.get(category, []))

    def signature(self, category: Category) -> str:
        return source_signature(self.enabled_for(category))

    def set_enabled(self, source_id: str, enabled: bool) -> bool:
        for record in self._records:
            if record.id == source_id:
                record.enabled = enabled
                self.save()
                return True
        return False

    def toggle(self, source_id: str) -> bool:
        for record in self._records:
            if record.id == source_id:
                return self.set_enabled(source_id, not record.enabled)
        return False

    def add_source(self, category: Category, name: str, url: str) -> SourceRecord:
        name = name.strip()
        url = url.strip()
        if not name or not url:
            raise SourceRegistryError("required", "Source name and URL are required")
        if not _is_http_url(url):
            raise SourceRegistryError("invalid-url", f"Not an http(s) URL: {url}")
        candidate = _normalize(url)
        if any(r.category == category and _normalize(r.url) == candidate for r in self._records):
            raise SourceRegistryError("duplicate", f"{url} is already registered for {category}")

        record = SourceRecord(
            id=build_source_id(category, name, url),
            category=category,
            name=name,
            url=url,
            is_custom=True,
        )
        self._records = sorted([*self._records, record], key=lambda r: r.name.lower())
        self.save()
        return record

    def reset(self) -> None:
        self._records = self._built_in()
        if self._path is not None:
            try:
                self._path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.warning("Could not remove %s: %s", self._path, exc)
