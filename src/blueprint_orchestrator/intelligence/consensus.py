"""Consensus engine: heuristic confidence scoring with optional drift check."""

from __future__ import annotations

import logging

from blueprint_orchestrator.intelligence.llm import EmbeddingClient
from blueprint_orchestrator.intelligence.models import (
    Alternative,
    ConsensusItem,
    Credentials,
    Provenance,
)
from blueprint_orchestrator.retrieval.knowledge import cosine_similarity

logger = logging.getLogger(__name__)

BASE_SCORE = 0.85
SHORT_RESPONSE_CHARS = 100
SHORT_RESPONSE_PENALTY = 0.2
REFUSAL_PENALTY = 0.5
CODE_BLOCK_BONUS = 0.05
DRIFT_THRESHOLD = 0.6
ALIGNED_THRESHOLD = 0.8
DRIFT_PENALTY = 0.15
ALIGNED_BONUS = 0.05
EMBED_TRUNCATE_CHARS = 1000
REFUSAL_PHRASES = ("i cannot", "i can't", "i'm unable to", "i am unable to", "as an ai")


class ConsensusEngine:
    def __init__(
        self,
        *,
        embedder: EmbeddingClient | None = None,
        embedding_model: str = "text-embedding-3-small",
    ) -> None:
        self.embedder = embedder
        self.embedding_model = embedding_model

    async def score(
        self,
        task_id: str,
        text: str,
        provider: str,
        requirements_summary: str | None = None,
        credentials: Credentials | None = None,
    ) -> ConsensusItem:
        score = heuristic_score(text)
        distance = 0.0

        if requirements_summary and credentials is not None:
            similarity = await self._similarity(text, requirements_summary, credentials)
            if similarity is not None:
                distance = round(1.0 - similarity, 4)
                if similarity < DRIFT_THRESHOLD:
                    score -= DRIFT_PENALTY
                elif similarity > ALIGNED_THRESHOLD:
                    score += ALIGNED_BONUS

        score = round(max(0.0, min(score, 1.0)), 4)
        return ConsensusItem(
            task_id=task_id,
            final=text,
            confidence=score,
            alternatives=[Alternative(provider=provider, content=text, score=score)],
            evidence=[],
            semantic_distance=distance,
            provenance=Provenance(model=provider),
        )

    async def _similarity(
        self, text: str, requirements_summary: str, credentials: Credentials
    ) -> float | None:
        if self.embedder is None:
            logger.warning("Semantic drift check skipped: no embedding client configured")
            return None
        try:
            response_vector = await self.embedder.embed(
                text[:EMBED_TRUNCATE_CHARS], self.embedding_model, credentials
            )
            requirements_vector = await self.embedder.embed(
                requirements_summary[:EMBED_TRUNCATE_CHARS], self.embedding_model, credentials
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Semantic drift check skipped: embedding failed reason=%s", exc)
            return None
        if not response_vector or not requirements_vector:
            logger.warning("Semantic drift check skipped: embeddings unavailable")
            return None
        return cosine_similarity(response_vector, requirements_vector)


def heuristic_score(text: str) -> float:
    score = BASE_SCORE
    if len(text) < SHORT_RESPONSE_CHARS:
        score -= SHORT_RESPONSE_PENALTY
    lowered = text.lower()
    if any(phrase in lowered for phrase in REFUSAL_PHRASES):
        score -= REFUSAL_PENALTY
    if "```" in text:
        score += CODE_BLOCK_BONUS
    return score
