"""Strict regional relevance filter for the brazil and latam categories.

An item is kept only when it names a place from the category gazetteer *and*
carries a policy/economy/security term. The blocklist runs first and wins over
everything else, so "Brazil wins football match" is dropped even though it
mentions Brazil.
"""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache

from newsdesk.news.categories import REGIONAL_CATEGORIES, Category
from newsdesk.news.models import RegionalFilterDecision

MIN_TITLE_CHARS = 12

GEO_TERMS: dict[Category, tuple[str, ...]] = {
    Category.BRAZIL: (
        "brazil",
        "brasil",
        "brasileiro",
        "brasileira",
        "brasilia",
        "sao paulo",
        "rio de janeiro",
        "belo horizonte",
        "porto alegre",
        "pernambuco",
        "goias",
        "lula",
        "bolsonaro",
        "stf",
        "camara dos deputados",
        "senado federal",
    ),
    Category.LATAM: (
        "latin america",
        "america latina",
        "latinoamerica",
        "latinoamericana",
        "latam",
        "south america",
        "sudamerica",
        "central america",
        "centroamerica",
        "mexico",
        "brasil",
        "argentina",
        "chile",
        "colombia",
        "peru",
        "ecuador",
        "bolivia",
        "uruguay",
        "paraguay",
        "venezuela",
        "costa rica",
        "guatemala",
        "panama",
        "dominican republic",
        "mercosur",
        "oas",
        "oea",
        "inter-american",
    ),
}

POLICY_TERMS: tuple[str, ...] = (
    # English
    "election",
    "elections",
    "vote",
    "poll",
    "congress",
    "senate",
    "chamber",
    "court",
    "supreme court",
    "minister",
    "ministry",
    "government",
    "policy",
    "regulation",
    "reform",
    "corruption",
    "protest",
    "fiscal",
    "inflation",
    "gdp",
    "central bank",
    "interest rate",
    "interest rates",
    "trade",
    "tariff",
    "export",
    "import",
    "commodity",
    "oil",
    "gas",
    "energy",
    "military",
    "defense",
    "security",
    "diplomatic",
    "summit",
    "treaty",
    "sanctions",
    "organized crime",
    "president",
    "presidency",
    "cabinet",
    "lawmakers",
    "legislation",
    "budget",
    "deficit",
    "revenue",
    "taxes",
    "treasury",
    "surplus",
    "public spending",
    "unemployment",
    "armed forces",
    "foreign minister",
    # Portuguese
    "eleicao",
    "eleicoes",
    "votacao",
    "congresso",
    "senado",
    "ministro",
    "ministerio",
    "governo",
    "politica",
    "regulacao",
    "reforma",
    "corrupcao",
    "protesto",
    "inflacao",
    "banco central",
    "taxa de juros",
    "comercio",
    "exportacao",
    "importacao",
    "seguranca",
    "diplomatico",
    "tratado",
    "sancoes",
    "presidente",
    "presidencia",
    # Spanish
    "diputados",
    "ley",
    "decreto",
    "eleccion",
    "elecciones",
    "voto",
    "encuesta",
    "gobierno",
    "congreso",
    "corte",
    "tribunal",
    "corrupcion",
    "protesta",
    "economia",
    "inflacion",
    "tasa de interes",
    "tasas de interes",
    "arancel",
    "aranceles",
    "exportacion",
    "exportaciones",
    "importacion",
    "importaciones",
    "energia",
    "defensa",
    "seguridad",
    "fuerzas armadas",
    "canciller",
    "cumbre",
    "sanciones",
    "crimen organizado",
)

BLOCKLIST_TERMS: tuple[str, ...] = (
    # Sports
    "football",
    "soccer",
    "fifa",
    "copa",
    "serie a",
    "libertadores",
    "nba",
    "nfl",
    "match",
    "defeat",
    "sports",
    "esporte",
    "futebol",
    "partida",
    "futbol",
    "partido",
    # Entertainment and celebrity
    "celebrity",
    "actor",
    "actress",
    "singer",
    "movie",
    "series",
    "streaming",
    "entertainment",
    "gossip",
    "famous",
    "fama",
    "famoso",
    "famosa",
    "novela",
    "reality show",
    "farandula",
    "celebridad",
    "espectaculo",
    # Lifestyle and shopping
    "lifestyle",
    "fashion",
    "beauty",
    "recipe",
    "travel tips",
    "horoscope",
    "shopping",
    "deal",
    "coupon",
    "black friday",
    "game review",
    "promo",
    "moda",
    "belleza",
    # Weather
    "weather forecast",
    "storm warning",
    "heat wave",
    "chuva",
    "clima",
    "previsao do tempo",
    "pronostico del tiempo",
    # Local incidents and traffic
    "traffic",
    "accident",
    "car crash",
    "local crime",
    "robbery",
    "mugging",
    "firefighters",
    "rescue",
    "acidente",
    "engarrafamento",
    "roubo",
    "assalto",
    "bombeiros",
    "accidente",
    "trafico",
    "choque",
    "robo",
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_text(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub(" ", stripped).strip()


@lru_cache(maxsize=1024)
def _term_pattern(term: str) -> re.Pattern[str] | None:
    parts = normalize_text(term).split()
    if not parts:
        return None
    return re.compile(r"\b" + r"\s+".join(re.escape(p) for p in parts) + r"\b")


def matched_terms(text: str, terms: tuple[str, ...]) -> tuple[str, ...]:
    """Terms that occur in already-normalized ``text`` as whole-word sequences."""
    out = []
    for term in terms:
        pattern = _term_pattern(term)
        if pattern is not None and pattern.search(text):
            out.append(term)
    return tuple(out)


def is_regional_category(category: Category) -> bool:
    return category in REGIONAL_CATEGORIES


def classify(title: str, description: str | None, category: Category) -> RegionalFilterDecision:
    if not is_regional_category(category):
        return RegionalFilterDecision(accepted=True, reasons=("non-regional-category",))

    normalized_title = normalize_text(title or "")
    text = f"{normalized_title} {normalize_text(description or '')}".strip()

    if len(normalized_title) < MIN_TITLE_CHARS:
        return RegionalFilterDecision(accepted=False, reasons=("low-information",))

    block = matched_terms(text, BLOCKLIST_TERMS)
    if block:
        return RegionalFilterDecision(accepted=False, reasons=("blocklist",), matched_block_terms=block)

    geo = matched_terms(text, GEO_TERMS[category])
    policy = matched_terms(text, POLICY_TERMS)

    if not geo:
        return RegionalFilterDecision(accepted=False, reasons=("missing-geo",), matched_policy_terms=policy)
    if not policy:
        return RegionalFilterDecision(accepted=False, reasons=("missing-policy",), matched_geo_terms=geo)
    return RegionalFilterDecision(
        accepted=True,
        reasons=("geo-policy-match",),
        matched_geo_terms=geo,
        matched_policy_terms=policy,
    )
