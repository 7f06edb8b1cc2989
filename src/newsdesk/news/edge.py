from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from newsdesk.core.config import Settings
from newsdesk.core.exceptions import EdgeSnapshotError
from newsdesk.news.categories import Category
from newsdesk.news.models import NewsItem

LOGGER = logging.getLogger(__name__)


class EdgeSnapshot(BaseModel):
    """Response of ``POST /news/snapshot``; both maps may be absent."""

    categories: dict[str, list[NewsItem]] | None = None
    checkpoints: dict[str, Any] | None = None

    def items_for(self, category: Category) -> list[NewsItem]:
        return list((self.categories or {}).get(category.value) or [])

    def checkpoint_for(self, category: Category) -> int | None:
        value = (self.checkpoints or {}).get(category.value)
        if isinstance(value, bool) or not isinstance(value, int | float):
            return None
        if not math.isfinite(value):
            return None
        return int(value)


class EdgeSnapshotClient:
    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 12.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> EdgeSnapshotClient:
        return cls(settings.edge_base_url, settings.edge_timeout_seconds, client)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_snapshot(
        self,
        categories: Sequence[Category],
        since_by_category: Mapping[Category, int],
    ) -> EdgeSnapshot:
        url = f"{self.base_url}/news/snapshot"
        body = {
            "categories": [c.value for c in categories],
            "sinceByCategory": {Category(k).value: int(v) for k, v in since_by_category.items()},
        }
        try:
            response = await asyncio.wait_for(
                self._client.post(url, json=body, timeout=self.timeout_seconds),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            raise EdgeSnapshotError(f"Edge snapshot timed out after {self.timeout_seconds:g}s") from exc
        except httpx.HTTPError as exc:
            raise EdgeSnapshotError(f"Edge snapshot request failed: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise EdgeSnapshotError(f"Edge snapshot request failed: {response.status_code}")

        try:
            snapshot = EdgeSnapshot.model_validate_json(response.content)
        except ValidationError as exc:
            raise EdgeSnapshotError(f"Invalid edge snapshot payload: {exc.error_count()} errors") from exc
        LOGGER.debug("Edge snapshot returned %d categories", len(snapshot.categories or {}))
        return snapshot
