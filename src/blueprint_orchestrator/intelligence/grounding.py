"""Grounding validator: spot-checks factual-sounding claims against evidence."""

from __future__ import annotations

import logging
import re

from blueprint_orchestrator.intelligence.llm import FactChecker
from blueprint_orchestrator.intelligence.models import (
    ConsensusItem,
    Credentials,
    Evidence,
    GroundingIssue,
    GroundingReport,
)
from blueprint_orchestrator.retrieval.knowledge import KnowledgeIndex

logger = logging.getLogger(__name__)

CLAIM_PATTERN = re.compile(r"[^.!?]+[.!?]")
MIN_CLAIM_CHARS = 20
WEB_EVIDENCE_SIMILARITY = 0.99


class GroundingValidator:
    """Checks the first few sentences of a response.

    By default ungrounded claims are not escalated: creative or design text
    rarely has a citable source. ``enforce=True`` records them as MINOR
    issues, which turns the report status to WARN.
    """

    def __init__(
        self,
        *,
        index: KnowledgeIndex | None = None,
        fact_checker: FactChecker | None = None,
        similarity_threshold: float = 0.78,
        max_claims: int = 3,
        enforce: bool = False,
    ) -> None:
        self.index = index
        self.fact_checker = fact_checker
        self.similarity_threshold = similarity_threshold
        self.max_claims = max_claims
        self.enforce = enforce

    async def validate(self, consensus: ConsensusItem, credentials: Credentials) -> GroundingReport:
        claims = extract_claims(consensus.final, limit=self.max_claims)
        checked: list[str] = []
        issues: list[GroundingIssue] = []
        evidence: list[Evidence] = []

        for claim in claims:
            if len(claim) < MIN_CLAIM_CHARS:
                continue
            checked.append(claim)

            if self.index is not None:
                hits = await self.index.search(claim, credentials, k=1)
                if hits and hits[0].score > self.similarity_threshold:
                    evidence.append(Evidence(chunk_id=hits[0].chunk.id, similarity=hits[0].score))
                    continue

            if self.fact_checker is not None:
                verdict = await self.fact_checker.fact_check(claim, credentials)
                if verdict.is_grounded:
                    source = verdict.sources[0] if verdict.sources else "web search"
                    evidence.append(
                        Evidence(chunk_id=f"WEB: {source}", similarity=WEB_EVIDENCE_SIMILARITY)
                    )
                    continue

            if self.enforce:
                issues.append(GroundingIssue(claim_text=claim, severity="MINOR"))
            else:
                logger.debug("Ungrounded claim task=%s claim=%r", consensus.task_id, claim[:80])

        consensus.evidence = evidence
        return GroundingReport(
            task_id=consensus.task_id,
            claims_checked=checked,
            ungrounded_claims=issues,
            status="WARN" if issues else "PASS",
        )


def extract_claims(text: str, *, limit: int = 3) -> list[str]:
    return [match.strip() for match in CLAIM_PATTERN.findall(text)[:limit]]
