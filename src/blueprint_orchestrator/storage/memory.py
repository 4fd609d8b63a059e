"""In-memory storage backend for tests and single-process runs."""

from __future__ import annotations

import copy
from typing import Any


class InMemoryStore:
    """Dict-of-dicts implementation of ``KeyValueStore``.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    async def migrate(self) -> None:
        return None

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        value = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, collection: str, key: str, value: dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[key] = copy.deepcopy(value)

    async def delete(self, collection: str, key: str) -> None:
        self._collections.get(collection, {}).pop(key, None)

    async def list(self, collection: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(item) for item in self._collections.get(collection, {}).values()]
