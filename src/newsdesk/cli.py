from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Annotated

import typer
from sqlalchemy import text

from newsdesk.core.config import Settings, get_settings
from newsdesk.core.logging import configure_logging
from newsdesk.db.init import init_db
from newsdesk.db.session import build_engine, build_session_factory
from newsdesk.news.cache import NewsCache, SqlCacheBackend
from newsdesk.news.categories import Category, parse_categories
from newsdesk.news.checkpoints import JsonFileCheckpointStore, coerce_checkpoints
from newsdesk.news.edge import EdgeSnapshotClient
from newsdesk.news.feeds import SourceRegistry
from newsdesk.news.fetcher import CategoryFetcher
from newsdesk.news.models import NewsItem
from newsdesk.news.refresh import (
    CachedCategory,
    CategoryError,
    CheckpointUpdate,
    FreshCategory,
    ProgressiveRefresher,
    RefreshEvent,
)
from newsdesk.services.aggregator import (
    CIRCUIT_BREAKERS_KEY,
    FEED_HEALTH_KEY,
    LAST_REFRESH_KEY,
    build_snapshot,
    refresh_all_news,
)
from newsdesk.storage.repository import NewsRepository

app = typer.Typer(help="Newsdesk command-line interface")
LOGGER = logging.getLogger(__name__)

CategoriesOption = Annotated[
    list[str] | None,
    typer.Option("--category", "-c", help="Category to include; repeat for several"),
]


def _build_runtime() -> Settings:
    settings = get_settings()
    configure_logging(settings)
    return settings


def _build_registry(settings: Settings) -> SourceRegistry:
    registry = SourceRegistry(path=settings.sources_path)
    registry.load()
    return registry


def _build_repository(settings: Settings) -> NewsRepository:
    engine = build_engine(settings)
    init_db(engine)
    return NewsRepository(build_session_factory(engine))


def _categories_or_exit(values: list[str] | None) -> list[Category]:
    categories = parse_categories(values)
    if values and not categories:
        typer.echo(f"No valid categories in: {', '.join(values)}")
        raise typer.Exit(code=1)
    return categories


def _format_item(item: NewsItem) -> str:
    stamp = datetime.fromtimestamp(item.timestamp / 1000, tz=UTC).strftime("%Y-%m-%d %H:%M")
    flag = "!" if item.is_alert else " "
    return f"{flag} {stamp} | {item.source} | {item.title}"


def _print_event(event: RefreshEvent) -> None:
    if isinstance(event, CachedCategory):
        state = "stale" if event.stale else "fresh"
        typer.echo(f"[cache:{event.origin}] {event.category.value}: {len(event.items)} items ({state})")
    elif isinstance(event, FreshCategory):
        typer.echo(f"[fresh] {event.category.value}: {len(event.items)} items")
    elif isinstance(event, CategoryError):
        typer.echo(f"[error] {event.category.value}: {event.error}")
    elif isinstance(event, CheckpointUpdate):
        LOGGER.debug("Checkpoint %s -> %d", event.category.value, event.checkpoint)


@app.command("init-db")
def init_db_command() -> None:
    settings = _build_runtime()
    tables = init_db(build_engine(settings))
    typer.echo(f"Initialized database schema ({', '.join(tables)})")


@app.command("fetch")
def fetch_command(
    category: Annotated[str, typer.Argument(help="Category to fetch")],
    limit: Annotated[int, typer.Option(min=1, max=500)] = 20,
) -> None:
    settings = _build_runtime()
    categories = _categories_or_exit([category])

    async def run() -> list[NewsItem]:
        async with CategoryFetcher(settings, _build_registry(settings)) as fetcher:
            return await fetcher.fetch_category(categories[0])

    items = asyncio.run(run())
    for item in items[:limit]:
        typer.echo(_format_item(item))
    typer.echo(f"Fetched {len(items)} items for {categories[0].value}")


@app.command("refresh")
def refresh_command(
    category: CategoriesOption = None,
    edge: Annotated[bool, typer.Option("--edge/--no-edge", help="Try the edge snapshot first")] = True,
    concurrency: Annotated[int | None, typer.Option(min=1, max=32)] = None,
) -> None:
    settings = _build_runtime()
    categories = _categories_or_exit(category)
    engine = build_engine(settings)
    init_db(engine)
    cache = NewsCache(settings.news_cache_ttl_seconds, SqlCacheBackend(build_session_factory(engine)))
    checkpoints = JsonFileCheckpointStore(settings.checkpoint_path)
    registry = _build_registry(settings)

    async def run():
        edge_client = EdgeSnapshotClient.from_settings(settings) if settings.edge_enabled else None
        async with CategoryFetcher(settings, registry) as fetcher:
            refresher = ProgressiveRefresher(fetcher, cache, checkpoints, edge_client, registry, settings)
            try:
                return await refresher.refresh(
                    categories or None,
                    prefer_edge=edge,
                    concurrency=concurrency,
                    on_event=_print_event,
                )
            finally:
                if edge_client is not None:
                    await edge_client.aclose()

    result = asyncio.run(run())
    total = sum(len(items) for items in result.categories.values())
    typer.echo(
        f"Refresh done | path={result.path} categories={len(result.categories)} "
        f"items={total} errors={len(result.errors)}"
    )


@app.command("ingest")
def ingest_command(
    category: CategoriesOption = None,
    prune_days: Annotated[int, typer.Option(min=1, max=90)] = 7,
) -> None:
    settings = _build_runtime()
    categories = _categories_or_exit(category)
    repository = _build_repository(settings)

    async def run():
        async with CategoryFetcher(settings, _build_registry(settings)) as fetcher:
            return await refresh_all_news(fetcher, repository, categories or None)

    stats = asyncio.run(run())
    deleted = repository.delete_old_news(prune_days)
    typer.echo(
        f"Ingest done | categories={stats.categories} items={stats.items} "
        f"deleted={deleted} duration_ms={stats.duration_ms}"
    )
    for error in stats.errors:
        typer.echo(f"[FAIL] {error}")
    if stats.errors:
        raise typer.Exit(code=1)


@app.command("snapshot")
def snapshot_command(
    category: CategoriesOption = None,
    since: Annotated[str | None, typer.Option(help='JSON map such as {"tech": 1700000000000}')] = None,
) -> None:
    settings = _build_runtime()
    categories = _categories_or_exit(category)
    since_by_category: dict[Category, int] = {}
    if since:
        try:
            raw = json.loads(since)
        except ValueError:
            typer.echo(f"Invalid --since JSON: {since}")
            raise typer.Exit(code=1) from None
        if isinstance(raw, dict):
            since_by_category = coerce_checkpoints(raw)

    repository = _build_repository(settings)

    async def run():
        async with CategoryFetcher(settings, _build_registry(settings)) as fetcher:
            return await build_snapshot(repository, fetcher, categories or list(Category), since_by_category)

    snapshot = asyncio.run(run())
    typer.echo(snapshot.model_dump_json(by_alias=True, exclude_none=True))


@app.command("prune")
def prune_command(days: Annotated[int, typer.Option(min=1, max=90)] = 7) -> None:
    settings = _build_runtime()
    deleted = _build_repository(settings).delete_old_news(days)
    typer.echo(f"Deleted {deleted} items older than {days} days")


@app.command("health")
def health_command() -> None:
    settings = _build_runtime()
    engine = build_engine(settings)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        typer.echo("[OK]  DB connection")
    except Exception as exc:
        typer.echo(f"[FAIL] DB connection ({exc})")
        raise typer.Exit(code=1) from None

    init_db(engine)
    repository = NewsRepository(build_session_factory(engine))
    typer.echo(f"[INFO] news items stored: {repository.get_news_count()}")

    last_refresh = repository.get_meta(LAST_REFRESH_KEY)
    if last_refresh is None:
        typer.echo("[WARN] no refresh recorded yet")
    else:
        stamp = datetime.fromtimestamp(last_refresh.value / 1000, tz=UTC).isoformat()
        typer.echo(f"[INFO] last refresh: {stamp}")

    feed_health = repository.get_meta(FEED_HEALTH_KEY)
    for key, info in sorted((feed_health.value if feed_health else {}).items()):
        if info.get("consecutive_failures"):
            typer.echo(f"[WARN] {key}: {info['consecutive_failures']} failures ({info.get('last_error')})")

    breakers = repository.get_meta(CIRCUIT_BREAKERS_KEY)
    for key, info in sorted((breakers.value if breakers else {}).items()):
        if info.get("state") != "closed":
            typer.echo(f"[WARN] breaker {key} is {info.get('state')}")


if __name__ == "__main__":
    app()
