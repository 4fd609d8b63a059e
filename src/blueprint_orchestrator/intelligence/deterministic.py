"""Seed derivation and the content-addressed response cache."""

from __future__ import annotations

import hashlib

from blueprint_orchestrator.intelligence.models import utc_now
from blueprint_orchestrator.storage.base import CACHE, KeyValueStore


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def generate_seed(project_id: str, prompt: str, *, master_key: str) -> str:
    """Stable per-(project, request) seed."""
    return sha256_hex(f"{master_key}:{project_id}:{prompt}")


def cache_key(seed: str, task_id: str, provider: str, model: str, prompt: str) -> str:
    prompt_hash = sha256_hex(prompt)
    return sha256_hex(f"{seed}:{task_id}:{provider}:{model}:{prompt_hash}")


class DeterministicCache:
    """Memoises generated text in the ``det_cache`` collection."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def get(self, key: str) -> str | None:
        record = await self.store.get(CACHE, key)
        if record is None:
            return None
        value = record.get("value")
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        await self.store.put(
            CACHE,
            key,
            {"key": key, "value": value, "timestamp": utc_now().isoformat()},
        )
