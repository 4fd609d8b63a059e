"""Local knowledge retrieval used for grounding."""

from blueprint_orchestrator.retrieval.knowledge import (
    KnowledgeChunk,
    KnowledgeHit,
    KnowledgeIndex,
    chunk_text,
    cosine_similarity,
)

__all__ = [
    "KnowledgeChunk",
    "KnowledgeHit",
    "KnowledgeIndex",
    "chunk_text",
    "cosine_similarity",
]
