from __future__ import annotations

from enum import StrEnum


class Category(StrEnum):
    POLITICS = "politics"
    TECH = "tech"
    FINANCE = "finance"
    GOV = "gov"
    AI = "ai"
    INTEL = "intel"
    BRAZIL = "brazil"
    LATAM = "latam"
    IRAN = "iran"
    VENEZUELA = "venezuela"
    GREENLAND = "greenland"
    FRINGE = "fringe"


class RetrievalMode(StrEnum):
    RSS = "rss"
    RSS_SEARCH = "rss_search"
    SEARCH = "search"


RETRIEVAL_MODES: dict[Category, RetrievalMode] = {
    Category.POLITICS: RetrievalMode.RSS,
    Category.BRAZIL: RetrievalMode.RSS,
    Category.LATAM: RetrievalMode.RSS,
    Category.FINANCE: RetrievalMode.RSS,
    Category.INTEL: RetrievalMode.RSS_SEARCH,
}

# Categories whose items must carry both a regional anchor and a policy signal.
REGIONAL_CATEGORIES: frozenset[Category] = frozenset({Category.BRAZIL, Category.LATAM})

# Default refresh order; fringe is only fetched on explicit request.
NEWS_CATEGORIES: tuple[Category, ...] = (
    Category.POLITICS,
    Category.TECH,
    Category.FINANCE,
    Category.GOV,
    Category.AI,
    Category.INTEL,
    Category.BRAZIL,
    Category.LATAM,
    Category.IRAN,
    Category.VENEZUELA,
    Category.GREENLAND,
)

SEARCH_QUERIES: dict[Category, str] = {
    Category.POLITICS: "(politics OR government OR election OR congress)",
    Category.TECH: '(technology OR software OR startup OR "silicon valley")',
    Category.FINANCE: '(finance OR "stock market" OR economy OR banking)',
    Category.GOV: '("federal government" OR "white house" OR congress OR regulation)',
    Category.AI: '("artificial intelligence" OR "machine learning" OR AI OR ChatGPT)',
    Category.INTEL: "(intelligence OR security OR military OR defense)",
    Category.BRAZIL: '(Brazil OR Brasilia OR "Sao Paulo" OR Lula OR Bolsonaro)',
    Category.LATAM: '("Latin America" OR Mexico OR Argentina OR Colombia OR Chile OR Peru)',
    Category.IRAN: '(Iran OR Tehran OR IRGC OR Khamenei OR "Iranian government" OR "Persian Gulf")',
    Category.VENEZUELA: '(Venezuela OR Maduro OR Caracas OR "Venezuelan government" OR "Venezuelan crisis")',
    Category.GREENLAND: '(Greenland OR Arctic OR "Danish territory" OR Nuuk OR "Arctic council" OR "polar region")',
    Category.FRINGE: '(conspiracy OR "deep state" OR "globalist agenda")',
}


def retrieval_mode(category: Category) -> RetrievalMode:
    return RETRIEVAL_MODES.get(category, RetrievalMode.SEARCH)


def parse_categories(values: list[str] | None) -> list[Category]:
    """Map raw category names to ``Category`` members, skipping unknown names."""
    if not values:
        return []
    out: list[Category] = []
    for value in values:
        try:
            category = Category(value.strip().lower())
        except ValueError:
            continue
        if category not in out:
            out.append(category)
    return out
