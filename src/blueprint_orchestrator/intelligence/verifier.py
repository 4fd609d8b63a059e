"""Rule-based document verifier."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from blueprint_orchestrator.intelligence.models import (
    Severity,
    VerificationCheck,
    VerificationReport,
)


@dataclass(frozen=True)
class Rule:
    id: str
    category: str
    severity: Severity
    description: str
    check: Callable[[str], bool]
    suggestion: str


def _mentions(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(pattern, re.IGNORECASE)
    return lambda document: compiled.search(document) is not None


def _has_heading(pattern: str) -> Callable[[str], bool]:
    compiled = re.compile(rf"^#+ {pattern}", re.MULTILINE)
    return lambda document: compiled.search(document) is not None


# Each check returns True when the document satisfies the rule.
RULEBOOK: tuple[Rule, ...] = (
    Rule(
        id="R.ARCH.001",
        category="ARCH",
        severity="MAJOR",
        description="Architecture section present.",
        check=_has_heading(r".*Architecture"),
        suggestion="Add a section describing the system components and their interactions.",
    ),
    Rule(
        id="R.ARCH.002",
        category="ARCH",
        severity="MINOR",
        description="Microservices or monolith strategy stated.",
        check=_mentions(r"microservice|monolith"),
        suggestion="State whether the system is a monolith or a microservices architecture.",
    ),
    Rule(
        id="R.SEC.001",
        category="SEC",
        severity="BLOCKER",
        description="Authentication and authorization strategy defined.",
        check=_mentions(r"auth|oauth|jwt|openid"),
        suggestion="Define how users authenticate (OAuth, JWT, SSO).",
    ),
    Rule(
        id="R.SEC.002",
        category="SEC",
        severity="MAJOR",
        description="Encryption at rest and in transit mentioned.",
        check=_mentions(r"encryption|tls|aes|kms"),
        suggestion="Specify TLS for transit and AES/KMS for data at rest.",
    ),
    Rule(
        id="R.PERF.001",
        category="PERF",
        severity="MAJOR",
        description="Caching strategy defined.",
        check=_mentions(r"redis|memcached|cdn|cache"),
        suggestion="Define a caching layer (Redis, CDN) to reduce database load.",
    ),
    Rule(
        id="R.TEST.001",
        category="TEST",
        severity="MAJOR",
        description="Testing Strategy section present.",
        check=_has_heading(r"Testing Strategy"),
        suggestion="Add a Testing Strategy section covering unit, integration, and E2E tests.",
    ),
    Rule(
        id="R.DATA.001",
        category="DATA",
        severity="MINOR",
        description="Data Model section present.",
        check=_has_heading(r"Data Model"),
        suggestion="Add a Data Model section describing entities and relationships.",
    ),
    Rule(
        id="R.OPS.001",
        category="OPS",
        severity="MINOR",
        description="Observability approach mentioned.",
        check=_mentions(r"logging|monitoring|metrics|alerting"),
        suggestion="Describe logging, metrics, and alerting.",
    ),
)


def verify(
    document: str, document_id: str, *, rulebook: tuple[Rule, ...] = RULEBOOK
) -> VerificationReport:
    """Evaluate every rule in order. Overall is FAIL iff a BLOCKER rule fails."""
    checks: list[VerificationCheck] = []
    blocked = False
    for rule in rulebook:
        passed = bool(rule.check(document))
        checks.append(
            VerificationCheck(
                id=rule.id,
                description=rule.description,
                result="PASS" if passed else "FAIL",
                severity=rule.severity,
                suggestion=None if passed else rule.suggestion,
            )
        )
        if not passed and rule.severity == "BLOCKER":
            blocked = True

    passed_count = sum(1 for check in checks if check.result == "PASS")
    score = round(100 * passed_count / len(checks)) if checks else 100
    return VerificationReport(
        document_id=document_id,
        checks=checks,
        overall="FAIL" if blocked else "PASS",
        score=score,
    )
