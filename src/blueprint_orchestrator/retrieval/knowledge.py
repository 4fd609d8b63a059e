"""Local knowledge index: chunked reference text with embedding search."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from blueprint_orchestrator.intelligence.llm import EmbeddingClient
from blueprint_orchestrator.intelligence.models import Credentials
from blueprint_orchestrator.storage.base import KNOWLEDGE_CHUNKS, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KnowledgeChunk:
    id: str
    context_id: str
    text: str
    vector: tuple[float, ...]
    chunk_index: int = 0


@dataclass(frozen=True)
class KnowledgeHit:
    chunk: KnowledgeChunk
    score: float


class KnowledgeIndex:
    def __init__(
        self,
        *,
        store: KeyValueStore,
        embedder: EmbeddingClient | None,
        embedding_model: str = "text-embedding-3-small",
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.embedding_model = embedding_model

    async def ingest(self, context_id: str, content: str, credentials: Credentials) -> int:
        """Chunk, embed, and persist ``content``. Returns the number of stored chunks."""
        if self.embedder is None:
            return 0
        stored = 0
        for idx, chunk in enumerate(chunk_text(content)):
            vector = await self.embedder.embed(chunk, self.embedding_model, credentials)
            if not vector:
                continue
            chunk_id = f"{context_id}_{idx}"
            await self.store.put(
                KNOWLEDGE_CHUNKS,
                chunk_id,
                {
                    "id": chunk_id,
                    "context_id": context_id,
                    "text": chunk,
                    "vector": list(vector),
                    "chunk_index": idx,
                },
            )
            stored += 1
        logger.info("Ingested context=%s chunks=%d", context_id, stored)
        return stored

    async def search(self, query: str, credentials: Credentials, k: int = 5) -> list[KnowledgeHit]:
        if self.embedder is None:
            return []
        query_vector = await self.embedder.embed(query, self.embedding_model, credentials)
        if not query_vector:
            return []

        hits: list[KnowledgeHit] = []
        for row in await self.store.list(KNOWLEDGE_CHUNKS):
            chunk = _row_to_chunk(row)
            if chunk is None:
                continue
            hits.append(KnowledgeHit(chunk=chunk, score=cosine_similarity(query_vector, chunk.vector)))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[: max(k, 0)]


def chunk_text(text: str, *, size: int = 512, overlap: int = 50) -> list[str]:
    if size <= overlap:
        raise ValueError("chunk size must exceed overlap")
    chunks: list[str] = []
    start = 0
    while start < len(text):
        end = min(start + size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
        start += size - overlap
    return chunks


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    if not left or not right or len(left) != len(right):
        return 0.0
    dot = sum(a * b for a, b in zip(left, right))
    norm_left = math.sqrt(sum(a * a for a in left))
    norm_right = math.sqrt(sum(b * b for b in right))
    if norm_left == 0.0 or norm_right == 0.0:
        return 0.0
    return dot / (norm_left * norm_right)


def _row_to_chunk(row: dict) -> KnowledgeChunk | None:
    vector = row.get("vector")
    text = row.get("text")
    if not isinstance(vector, list) or not isinstance(text, str):
        return None
    return KnowledgeChunk(
        id=str(row.get("id", "")),
        context_id=str(row.get("context_id", "")),
        text=text,
        vector=tuple(float(value) for value in vector),
        chunk_index=int(row.get("chunk_index", 0)),
    )
