"""Typed records shared by the planner, supervisor, validators, and storage."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class Section(str, Enum):
    """Closed set of document sections produced by the pipeline."""

    REQUIREMENTS = "Requirements"
    DESIGN_SYSTEM = "Design System"
    FRONTEND = "Frontend Architecture"
    BACKEND = "Backend Architecture"
    DATA_MODEL = "Data Model"
    SECURITY = "Security Model"
    INFRASTRUCTURE = "Infrastructure & DevOps"
    TESTING = "Testing Strategy"


class AgentRole(str, Enum):
    PRODUCT_ARCHITECT = "PRODUCT_ARCHITECT"
    UX_ARCHITECT = "UX_ARCHITECT"
    FRONTEND_ENGINEER = "FRONTEND_ENGINEER"
    BACKEND_ARCHITECT = "BACKEND_ARCHITECT"
    DATA_MODELER = "DATA_MODELER"
    SECURITY_ENGINEER = "SECURITY_ENGINEER"
    PLATFORM_ENGINEER = "PLATFORM_ENGINEER"
    SDET = "SDET"


TaskStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED", "FAILED"]
JobStatus = Literal["CREATED", "RUNNING", "COMPLETED", "FAILED", "PAUSED"]
EventPhase = Literal[
    "PLAN",
    "DISPATCH",
    "CONSENSUS",
    "TOOL_EXECUTION",
    "GROUNDING",
    "VERIFY",
    "FINALIZE",
    "CONTROL",
]
EventLevel = Literal["INFO", "WARN", "ERROR"]
Severity = Literal["BLOCKER", "MAJOR", "MINOR"]
CritiqueSeverity = Literal["critical", "warning", "suggestion"]


def utc_now() -> datetime:
    return datetime.now(UTC)


class Credentials(BaseModel):
    """Provider credentials for one job. Never persisted."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: SecretStr = SecretStr("")
    base_url: str | None = None


class TaskBudget(BaseModel):
    """Advisory resource ceiling for one task."""

    tokens: int = Field(default=4000, ge=1)
    time_ms: int = Field(default=60_000, ge=1)


class Task(BaseModel):
    """One unit of work in a run plan."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    role: AgentRole
    section: Section
    instruction: str
    dependencies: list[str] = Field(default_factory=list)
    budget: TaskBudget = Field(default_factory=TaskBudget)
    status: TaskStatus = "PENDING"
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None


class RunPlan(BaseModel):
    """Ordered task DAG for one job."""

    id: str
    project_id: str
    seed: str
    created_at: datetime = Field(default_factory=utc_now)
    tasks: list[Task] = Field(default_factory=list)

    def task(self, task_id: str) -> Task:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise KeyError(f"Task {task_id} is not part of plan {self.id}")

    def task_for_role(self, role: AgentRole) -> Task | None:
        return next((task for task in self.tasks if task.role == role), None)


class EventEnvelope(BaseModel):
    """Immutable trace record emitted at every stage transition."""

    model_config = ConfigDict(frozen=True)

    trace_id: str
    job_id: str
    timestamp: str
    phase: EventPhase
    event_type: str
    level: EventLevel = "INFO"
    payload: dict[str, Any] = Field(default_factory=dict)


class IntelligenceJob(BaseModel):
    """Execution record owned by the supervisor."""

    id: str
    project_id: str
    doc_id: str
    status: JobStatus = "CREATED"
    prompt: str
    provider: str
    model: str
    seed: str | None = None
    run_plan_id: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    logs: list[EventEnvelope] = Field(default_factory=list)


class Alternative(BaseModel):
    provider: str
    content: str
    score: float


class Evidence(BaseModel):
    chunk_id: str
    similarity: float


class Provenance(BaseModel):
    model: str
    timestamp: datetime = Field(default_factory=utc_now)


class ConsensusItem(BaseModel):
    """Scored result of one task execution."""

    task_id: str
    final: str
    confidence: float = Field(ge=0.0, le=1.0)
    alternatives: list[Alternative] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    semantic_distance: float = 0.0
    provenance: Provenance


class GroundingIssue(BaseModel):
    claim_text: str
    severity: Literal["MAJOR", "MINOR"] = "MINOR"
    evidence_needed: bool = True


class GroundingReport(BaseModel):
    task_id: str
    claims_checked: list[str] = Field(default_factory=list)
    ungrounded_claims: list[GroundingIssue] = Field(default_factory=list)
    status: Literal["PASS", "WARN"] = "PASS"


class VerificationCheck(BaseModel):
    id: str
    description: str
    result: Literal["PASS", "FAIL"]
    severity: Severity
    suggestion: str | None = None


class VerificationReport(BaseModel):
    document_id: str
    checks: list[VerificationCheck] = Field(default_factory=list)
    overall: Literal["PASS", "WARN", "FAIL"] = "PASS"
    score: int = Field(default=100, ge=0, le=100)


class Critique(BaseModel):
    """One finding from the revision loop's review phase."""

    severity: CritiqueSeverity
    affected_role: str
    affected_section: str | None = None
    issue: str
    recommendation: str = ""
