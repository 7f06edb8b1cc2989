from __future__ import annotations

import contextlib
import json
import logging
import math
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from newsdesk.news.categories import Category

LOGGER = logging.getLogger(__name__)


def coerce_checkpoints(raw: Mapping[str, Any]) -> dict[Category, int]:
    """Keep entries whose key is a known category and whose value is a finite number."""
    out: dict[Category, int] = {}
    for key, value in raw.items():
        try:
            category = Category(key)
        except ValueError:
            continue
        if isinstance(value, bool) or not isinstance(value, int | float):
            continue
        if not math.isfinite(value):
            continue
        out[category] = int(value)
    return out


class CheckpointStore(Protocol):
    def load(self) -> dict[Category, int]: ...

    def save(self, checkpoints: Mapping[Category, int]) -> None: ...


class MemoryCheckpointStore:
    def __init__(self, initial: Mapping[Category, int] | None = None) -> None:
        self._data: dict[Category, int] = dict(initial or {})

    def load(self) -> dict[Category, int]:
        return dict(self._data)

    def save(self, checkpoints: Mapping[Category, int]) -> None:
        self._data = dict(checkpoints)


class JsonFileCheckpointStore:
    """Category watermarks in a small JSON file.

    Reads of a missing or corrupt file yield an empty map. Writes go through a
    temp file and ``os.replace``; failures are logged and skipped.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[Category, int]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable checkpoints at %s: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return coerce_checkpoints(raw)

    def save(self, checkpoints: Mapping[Category, int]) -> None:
        payload = {Category(k).value: int(v) for k, v in checkpoints.items()}
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(payload, handle, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            LOGGER.warning("Could not write checkpoints to %s: %s", self.path, exc)
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    Path(tmp_name).unlink(missing_ok=True)
