"""Deterministic static analysis heuristics over generated artifacts."""

from __future__ import annotations

import re

from blueprint_orchestrator.intelligence.models import AgentRole, Section
from blueprint_orchestrator.tools.schemas import (
    ArtifactsInput,
    CoherenceFinding,
    ContentInput,
    ContractInput,
    ToolOutput,
)

MERMAID_BLOCK = re.compile(r"```mermaid([\s\S]*?)```")
SECRET_PATTERNS = (
    ("AWS Key", re.compile(r"AKIA[0-9A-Z]{16}")),
    ("Generic Secret", re.compile(r'"client_secret"\s*:\s*"[^"]+"', re.IGNORECASE)),
    ("Private Key", re.compile(r"-----BEGIN (?:RSA )?PRIVATE KEY-----")),
)
UNIT_COSTS = (
    ("EC2", 40),
    ("RDS", 60),
    ("Load Balancer", 20),
    ("Kubernetes", 100),
    ("Redis", 30),
    ("Lambda", 5),
)
COST_WARNING_THRESHOLD = 500
PRECEDING_WORD = re.compile(r"([\w.+-]+)\s*$")
VERSION_WORDS = {"version", "v", "python", "node", "java", "postgres", "ubuntu"}
ENDPOINT_PATTERN = re.compile(r"\b(GET|POST|PUT|PATCH|DELETE) (/[\w\-/{}:]+)")
API_RESOURCE_PATTERN = re.compile(r"/api/v\d+/(\w+)", re.IGNORECASE)
TABLE_PATTERN = re.compile(
    r"CREATE TABLE (?:IF NOT EXISTS )?[\"`]?(\w+)|Table:\s*(\w+)|#+ (\w+) Table", re.IGNORECASE
)
IGNORED_RESOURCES = {"auth", "login", "logout", "health", "token", "refresh"}
SENSITIVE_FIELDS = ("password", "ssn", "credit_card", "salary")
DEPRECATED_TECH = (
    ("AngularJS", "AngularJS (1.x) is deprecated. Migrate to Angular 2+ or React/Vue."),
    ("Python 2", "Python 2 reached end-of-life in 2020. Use Python 3."),
    ("Node.js 12", "Node.js 12 is EOL. Use a current LTS release."),
    ("jQuery", "jQuery is outdated for modern SPAs."),
)


def security_scanner(payload: ContentInput) -> ToolOutput:
    warnings = [
        f"Potential {name} found." for name, pattern in SECRET_PATTERNS if pattern.search(payload.content)
    ]
    logs = [] if warnings else ["No secrets detected."]
    return ToolOutput(
        tool_id="security_scanner", success=not warnings, logs=logs, warnings=warnings
    )


def mermaid_validator(payload: ContentInput) -> ToolOutput:
    blocks = MERMAID_BLOCK.findall(payload.content)
    if not blocks:
        return ToolOutput(tool_id="mermaid_validator", success=True, logs=["No Mermaid blocks found."])

    warnings: list[str] = []
    success = True
    for idx, block in enumerate(blocks, start=1):
        if "graph" in block and "-->" not in block and "---" not in block:
            warnings.append(f"Block {idx}: graph definition might be missing connections.")
        if block.count("{") != block.count("}"):
            warnings.append(f"Block {idx}: unbalanced braces detected.")
            success = False
    return ToolOutput(
        tool_id="mermaid_validator",
        success=success,
        logs=[f"Found {len(blocks)} Mermaid blocks."],
        warnings=warnings,
        data={"blocks": len(blocks)},
    )


def cost_estimator(payload: ContentInput) -> ToolOutput:
    """Monthly cost estimate. ``2 EC2`` counts two instances; a bare mention counts one."""
    logs: list[str] = []
    breakdown: dict[str, int] = {}
    total = 0
    for term, unit_cost in UNIT_COSTS:
        pattern = re.compile(
            rf"(?:\b(\d+)\s*(?:x\s*)?)?\b{re.escape(term)}s?\b", re.IGNORECASE
        )
        quantity = sum(_quantity(payload.content, match) for match in pattern.finditer(payload.content))
        if quantity:
            breakdown[term] = quantity * unit_cost
            total += quantity * unit_cost
            logs.append(f"Found {quantity} x {term} (~${unit_cost}/mo)")

    warnings = []
    if total > COST_WARNING_THRESHOLD:
        warnings.append(f"Estimated cost exceeds ${COST_WARNING_THRESHOLD}/mo (${total}).")
    return ToolOutput(
        tool_id="cost_estimator",
        success=True,
        logs=logs,
        warnings=warnings,
        data={"estimated_cost": total, "breakdown": breakdown},
    )


def _quantity(content: str, match: re.Match[str]) -> int:
    count = match.group(1)
    if not count:
        return 1
    # "PostgreSQL 15 RDS" names a version, not fifteen instances.
    preceding = PRECEDING_WORD.search(content, 0, match.start())
    if preceding is not None and _is_versioned_name(preceding.group(1)):
        return 1
    return int(count)


def _is_versioned_name(word: str) -> bool:
    word = word.strip(".")
    if word.lower() in VERSION_WORDS or "." in word:
        return True
    tail = word[1:]
    return any(char.isupper() for char in tail) and any(char.islower() for char in tail)


def contract_verifier(payload: ContractInput) -> ToolOutput:
    if not payload.frontend.strip() or not payload.backend.strip():
        return ToolOutput(tool_id="contract_verifier", success=False, logs=["Missing content"])

    logs: list[str] = []
    unreferenced: list[str] = []
    endpoints = _dedupe(f"{method} {path}" for method, path in ENDPOINT_PATTERN.findall(payload.backend))
    for endpoint in endpoints:
        path = endpoint.split(" ", 1)[1]
        if path not in payload.frontend:
            unreferenced.append(endpoint)
            logs.append(f"API {endpoint} not explicitly found in frontend text.")
    return ToolOutput(
        tool_id="contract_verifier",
        success=True,
        logs=logs,
        data={"endpoints": len(endpoints), "unreferenced": unreferenced},
    )


def api_contract_linter(payload: ContentInput) -> ToolOutput:
    content = payload.content
    if not content.strip():
        return ToolOutput(tool_id="api_contract_linter", success=False, logs=["Missing content"])

    critical: list[str] = []
    findings: list[str] = []
    recommendations: list[str] = []

    if "openapi:" not in content and "swagger:" not in content:
        findings.append("No OpenAPI/Swagger definition found.")
        recommendations.append("Define the API using an OpenAPI 3 document.")
    if "/api/v" not in content:
        critical.append("API versioning (e.g. /api/v1) not explicitly seen in endpoints.")
        recommendations.append("Add a version segment to API paths.")

    endpoint_count = len(ENDPOINT_PATTERN.findall(content))
    if endpoint_count and "400" not in content and "500" not in content:
        findings.append(f"Missing error response definitions (400, 500) for {endpoint_count} endpoints.")
        recommendations.append("Document standard error envelopes and status codes.")
    if not re.search(r"security:|Authorization:|Bearer", content):
        findings.append("No authentication scheme defined in API contract.")
        recommendations.append("Add OAuth2, JWT, or API key authentication definitions.")
    if re.search(r"GET /[\w/-]*s\b", content) and not re.search(r"limit|offset|page|cursor", content):
        findings.append("List endpoints should support pagination.")
        recommendations.append("Add limit/offset or cursor parameters to list endpoints.")

    return ToolOutput(
        tool_id="api_contract_linter",
        success=not critical,
        warnings=critical + findings,
        findings=critical + findings,
        recommendations=recommendations,
        data={"endpoints": endpoint_count},
    )


def coherence_checker(payload: ArtifactsInput) -> ToolOutput:
    """Cross-section checks. Each finding names the section that should change."""
    artifacts = payload.artifacts
    backend = artifacts.get(Section.BACKEND.value, "")
    data_model = artifacts.get(Section.DATA_MODEL.value, "")
    security = artifacts.get(Section.SECURITY.value, "")
    infrastructure = artifacts.get(Section.INFRASTRUCTURE.value, "")

    issues: list[CoherenceFinding] = []

    tables = [
        next(group for group in match if group).lower() for match in TABLE_PATTERN.findall(data_model)
    ]
    for resource in _dedupe(res.lower() for res in API_RESOURCE_PATTERN.findall(backend)):
        if resource in IGNORED_RESOURCES:
            continue
        if not any(resource.rstrip("s") in table for table in tables):
            issues.append(
                CoherenceFinding(
                    section=Section.DATA_MODEL.value,
                    role=AgentRole.DATA_MODELER.value,
                    severity="warning",
                    message=f"API resource '{resource}' has no obvious matching database table.",
                    recommendation=f"Ensure a table exists for '{resource}' or explain why it is not needed.",
                )
            )

    if "Redis" in backend and "Redis" not in infrastructure and "ElastiCache" not in infrastructure:
        issues.append(
            CoherenceFinding(
                section=Section.INFRASTRUCTURE.value,
                role=AgentRole.PLATFORM_ENGINEER.value,
                severity="critical",
                message="Backend requires Redis but the infrastructure plan does not include it.",
                recommendation="Add Redis to the infrastructure topology (ElastiCache or self-hosted).",
            )
        )
    if re.search(r"message queue", backend, re.IGNORECASE) and not re.search(
        r"SQS|RabbitMQ|Kafka", infrastructure
    ):
        issues.append(
            CoherenceFinding(
                section=Section.INFRASTRUCTURE.value,
                role=AgentRole.PLATFORM_ENGINEER.value,
                severity="warning",
                message="Backend mentions a message queue but no queue service is provisioned.",
                recommendation="Add a message queue service (SQS, RabbitMQ, or Kafka).",
            )
        )

    lowered_data = data_model.lower()
    lowered_security = security.lower()
    for field in SENSITIVE_FIELDS:
        if field in lowered_data and field not in lowered_security:
            issues.append(
                CoherenceFinding(
                    section=Section.SECURITY.value,
                    role=AgentRole.SECURITY_ENGINEER.value,
                    severity="critical",
                    message=f"Sensitive field '{field}' appears in the data model but not in the security model.",
                    recommendation=f"Add encryption and access controls for '{field}'.",
                )
            )

    messages = [issue.message for issue in issues]
    return ToolOutput(
        tool_id="coherence_checker",
        success=not any(issue.severity == "critical" for issue in issues),
        warnings=messages,
        findings=messages,
        recommendations=[issue.recommendation for issue in issues],
        data={"issues": [issue.model_dump() for issue in issues]},
    )


def compliance_checker(payload: ArtifactsInput) -> ToolOutput:
    artifacts = payload.artifacts
    requirements = artifacts.get(Section.REQUIREMENTS.value, "")
    security = artifacts.get(Section.SECURITY.value, "")
    data_model = artifacts.get(Section.DATA_MODEL.value, "")
    scope = f"{requirements}\n{security}"

    critical: list[str] = []
    findings: list[str] = []
    recommendations: list[str] = []

    if "GDPR" in scope:
        if not re.search(r"encrypt|hash", f"{data_model}\n{security}", re.IGNORECASE):
            critical.append("GDPR: personal data must be encrypted at rest.")
            recommendations.append("Enable encryption at rest for all stores holding PII.")
        if "audit log" not in security.lower():
            critical.append("GDPR: access to personal data must be audit logged.")
            recommendations.append("Implement audit logging for all PII access.")
        if not re.search(r"right to be forgotten|deletion", scope, re.IGNORECASE):
            findings.append("GDPR: no data deletion mechanism specified.")
            recommendations.append("Add user data deletion endpoints and processes.")

    if "HIPAA" in scope:
        if "MFA" not in security and "multi-factor" not in security.lower():
            critical.append("HIPAA: multi-factor authentication is required for PHI access.")
            recommendations.append("Enforce MFA for all users accessing protected health information.")
        if "encrypted" not in data_model.lower() and "encrypted" not in security.lower():
            critical.append("HIPAA: PHI must be encrypted in transit and at rest.")
            recommendations.append("Use TLS for transit and AES-256 for data at rest.")

    if re.search(r"credit.?card|payment", data_model, re.IGNORECASE) and "token" not in data_model.lower():
        findings.append("PCI-DSS: do not store full card numbers.")
        recommendations.append("Integrate a payment gateway and store tokens only.")

    return ToolOutput(
        tool_id="compliance_checker",
        success=not critical,
        warnings=critical + findings,
        findings=critical + findings,
        recommendations=recommendations,
    )


def scalability_simulator(payload: ArtifactsInput) -> ToolOutput:
    backend = payload.artifacts.get(Section.BACKEND.value, "")
    data_model = payload.artifacts.get(Section.DATA_MODEL.value, "")

    bottlenecks: list[str] = []
    recommendations: list[str] = []
    lowered_backend = backend.lower()

    if "has many" in data_model.lower() and "batch" not in lowered_backend and "eager" not in lowered_backend:
        bottlenecks.append("Potential N+1 query problem detected in database relationships.")
        recommendations.append("Use eager loading or batched queries.")
    if "single server" in lowered_backend or "single instance" in lowered_backend or (
        "monolith" in lowered_backend and "load balancer" not in lowered_backend
    ):
        bottlenecks.append("Possible single point of failure: no load balancing detected.")
        recommendations.append("Add a load balancer and a horizontal scaling strategy.")
    if re.search(r"email|pdf generation|video processing|report", backend, re.IGNORECASE) and (
        "queue" not in lowered_backend and "worker" not in lowered_backend
    ):
        bottlenecks.append("Long-running tasks detected without an async queue.")
        recommendations.append("Offload heavy work to background workers behind a job queue.")

    capacity = 1000.0
    if "redis" in lowered_backend or "cache" in lowered_backend:
        capacity *= 1.5
    if "cdn" in lowered_backend:
        capacity *= 2
    if "unindexed" in data_model.lower() or "index" not in data_model.lower():
        capacity *= 0.5
    requests_per_second = round(capacity)

    return ToolOutput(
        tool_id="scalability_simulator",
        success=not bottlenecks,
        logs=[f"Simulated load: {requests_per_second} req/s"],
        warnings=bottlenecks,
        findings=[
            f"Estimated capacity: {requests_per_second} req/s",
            f"Estimated concurrent users: {requests_per_second * 10}",
            *bottlenecks,
        ],
        recommendations=recommendations,
        data={"requests_per_second": requests_per_second, "concurrent_users": requests_per_second * 10},
    )


def dependency_analyzer(payload: ArtifactsInput) -> ToolOutput:
    backend = payload.artifacts.get(Section.BACKEND.value, "")
    frontend = payload.artifacts.get(Section.FRONTEND.value, "")
    infrastructure = payload.artifacts.get(Section.INFRASTRUCTURE.value, "")

    issues: list[str] = []
    recommendations: list[str] = []
    if "Redis" in backend and "Redis" not in infrastructure and "ElastiCache" not in infrastructure:
        issues.append("MISSING: backend mentions Redis but the infrastructure plan does not.")
        recommendations.append("Add Redis or ElastiCache to the infrastructure topology.")
    if re.search(r"queue|topic|pub/sub", backend, re.IGNORECASE) and not re.search(
        r"SQS|RabbitMQ|Kafka|Service Bus", infrastructure, re.IGNORECASE
    ):
        issues.append("MISSING: backend mentions message queues but the infrastructure plan does not.")
        recommendations.append("Add SQS, Kafka, or RabbitMQ to the infrastructure plan.")
    if "websocket" in frontend.lower() and "websocket" not in backend.lower():
        issues.append("MISMATCH: frontend plans for WebSockets but the backend does not mention them.")
        recommendations.append("Describe WebSocket handling in the backend architecture.")

    return ToolOutput(
        tool_id="dependency_analyzer",
        success=not issues,
        warnings=issues,
        findings=issues,
        recommendations=recommendations,
    )


def tech_stack_validator(payload: ArtifactsInput) -> ToolOutput:
    content = "\n".join(payload.artifacts.values())
    warnings = [message for term, message in DEPRECATED_TECH if term in content]
    recommendations: list[str] = []

    if "MongoDB" in content and "complex joins" in content:
        warnings.append("MongoDB is not ideal for complex relational joins.")
        recommendations.append("Use PostgreSQL if relational data is core.")
    if "REST" in content and "real-time" in content and "WebSocket" not in content:
        warnings.append("REST is not optimal for real-time features.")
        recommendations.append("Use WebSockets or GraphQL subscriptions for live updates.")
    if "TypeScript" not in content and ("React" in content or "Angular" in content):
        warnings.append("TypeScript is strongly recommended for large React/Angular projects.")
        recommendations.append("Adopt TypeScript for the frontend.")

    return ToolOutput(
        tool_id="tech_stack_validator",
        success=not warnings,
        warnings=warnings,
        findings=list(warnings),
        recommendations=recommendations,
    )


def license_checker(payload: ArtifactsInput) -> ToolOutput:
    content = "\n".join(payload.artifacts.values())
    lowered = content.lower()
    issues: list[str] = []
    recommendations: list[str] = []

    if "mysql" in lowered and "GPL" in content and "mariadb" not in lowered:
        issues.append("MySQL GPL licensing may impose copyleft obligations if modified or distributed.")
        recommendations.append("Consider PostgreSQL or MariaDB for a closed-source product.")
    if "mongodb" in lowered and "commercial" in lowered:
        issues.append("MongoDB SSPL may be incompatible with commercial SaaS offerings.")
        recommendations.append("Review SSPL terms or consider PostgreSQL with JSONB.")
    if "AGPL" in content and "SaaS" in content:
        issues.append("AGPL dependency in a SaaS context is a high legal risk.")
        recommendations.append("Replace AGPL components or obtain a commercial license.")
    if "GPL" in content and "MIT" in content and "dual license" not in lowered:
        issues.append("Mixing GPL and MIT licensed components requires careful compliance.")

    return ToolOutput(
        tool_id="license_checker",
        success=True,
        warnings=issues,
        findings=issues,
        recommendations=recommendations,
    )


def _dedupe(values) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
