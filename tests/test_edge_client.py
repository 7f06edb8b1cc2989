from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from newsdesk.core.exceptions import EdgeSnapshotError
from newsdesk.news.categories import Category
from newsdesk.news.edge import EdgeSnapshot, EdgeSnapshotClient

ITEM = {
    "id": "rss-tech-wire-abc",
    "title": "Chipmaker unveils processor",
    "link": "https://example.com/chips",
    "pubDate": "Tue, 02 Dec 2025 22:45:00 GMT",
    "timestamp": 1764715500000,
    "source": "Wire",
    "category": "tech",
    "isAlert": False,
    "topics": [],
}


def _client(handler, timeout: float = 12.0) -> EdgeSnapshotClient:
    transport = httpx.MockTransport(handler)
    return EdgeSnapshotClient("https://edge.example/", timeout, client=httpx.AsyncClient(transport=transport))


@pytest.mark.asyncio
async def test_posts_categories_and_watermarks() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"categories": {"tech": [ITEM]}, "checkpoints": {"tech": 1764715500000}})

    snapshot = await _client(handler).fetch_snapshot([Category.TECH, Category.AI], {Category.TECH: 5})

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://edge.example/news/snapshot"
    assert json.loads(request.content) == {"categories": ["tech", "ai"], "sinceByCategory": {"tech": 5}}

    assert [i.id for i in snapshot.items_for(Category.TECH)] == ["rss-tech-wire-abc"]
    assert snapshot.items_for(Category.TECH)[0].published_raw == ITEM["pubDate"]
    assert snapshot.items_for(Category.AI) == []
    assert snapshot.checkpoint_for(Category.TECH) == 1764715500000
    assert snapshot.checkpoint_for(Category.AI) is None


@pytest.mark.asyncio
async def test_non_2xx_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(EdgeSnapshotError):
        await _client(handler).fetch_snapshot([Category.TECH], {})


@pytest.mark.asyncio
async def test_transport_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EdgeSnapshotError):
        await _client(handler).fetch_snapshot([Category.TECH], {})


@pytest.mark.asyncio
async def test_timeout_raises() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    with pytest.raises(EdgeSnapshotError, match="timed out"):
        await _client(handler, timeout=0.05).fetch_snapshot([Category.TECH], {})


@pytest.mark.asyncio
async def test_invalid_payload_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    with pytest.raises(EdgeSnapshotError):
        await _client(handler).fetch_snapshot([Category.TECH], {})


def test_non_numeric_checkpoints_are_ignored() -> None:
    snapshot = EdgeSnapshot.model_validate({"checkpoints": {"tech": "later", "ai": True, "gov": 12.7}})

    assert snapshot.checkpoint_for(Category.TECH) is None
    assert snapshot.checkpoint_for(Category.AI) is None
    assert snapshot.checkpoint_for(Category.GOV) == 12
    assert snapshot.items_for(Category.GOV) == []
