"""Storage interface for collection-scoped key/value records."""

from __future__ import annotations

from typing import Any, Protocol

JOBS = "jobs"
RUN_PLANS = "runplans"
CONSENSUS = "consensus"
GROUNDING = "grounding"
VERIFICATION = "verification"
DOCUMENTS = "documents"
CACHE = "det_cache"
KNOWLEDGE_CHUNKS = "uki_chunks"


class KeyValueStore(Protocol):
    async def migrate(self) -> None: ...

    async def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    async def put(self, collection: str, key: str, value: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, key: str) -> None: ...

    async def list(self, collection: str) -> list[dict[str, Any]]: ...


def scoped_key(job_id: str, task_id: str) -> str:
    """Record key for per-task results of one job."""
    return f"{job_id}:{task_id}"
