"""Run plan construction for the fixed eight-stage engineering pipeline."""

from __future__ import annotations

from dataclasses import dataclass

from blueprint_orchestrator.intelligence.deterministic import sha256_hex
from blueprint_orchestrator.intelligence.models import AgentRole, RunPlan, Section, Task


@dataclass(frozen=True)
class Stage:
    role: AgentRole
    section: Section
    instruction: str
    depends_on: tuple[Section, ...] = ()


PIPELINE: tuple[Stage, ...] = (
    Stage(
        AgentRole.PRODUCT_ARCHITECT,
        Section.REQUIREMENTS,
        "Produce the PRD: functional and non-functional requirements, user stories, and a domain dictionary.",
    ),
    Stage(
        AgentRole.UX_ARCHITECT,
        Section.DESIGN_SYSTEM,
        "Design the interaction layer and the design system.",
        (Section.REQUIREMENTS,),
    ),
    Stage(
        AgentRole.FRONTEND_ENGINEER,
        Section.FRONTEND,
        "Plan browser execution, state management, and routes.",
        (Section.DESIGN_SYSTEM,),
    ),
    Stage(
        AgentRole.BACKEND_ARCHITECT,
        Section.BACKEND,
        "Define the API contract, service boundaries, and topology.",
        (Section.REQUIREMENTS, Section.DESIGN_SYSTEM),
    ),
    Stage(
        AgentRole.DATA_MODELER,
        Section.DATA_MODEL,
        "Design the database schema, entity relationships, and data flow.",
        (Section.BACKEND,),
    ),
    Stage(
        AgentRole.SECURITY_ENGINEER,
        Section.SECURITY,
        "Produce a STRIDE analysis, authorization model, and security controls.",
        (Section.BACKEND, Section.DATA_MODEL),
    ),
    Stage(
        AgentRole.PLATFORM_ENGINEER,
        Section.INFRASTRUCTURE,
        "Describe infrastructure as code, CI/CD, and the rollout roadmap.",
        (Section.BACKEND, Section.SECURITY),
    ),
    Stage(
        AgentRole.SDET,
        Section.TESTING,
        "Define the test pyramid, acceptance scenarios, and quality gates.",
        (Section.REQUIREMENTS, Section.FRONTEND, Section.BACKEND),
    ),
)


def create_run_plan(
    project_id: str, seed: str, *, pipeline: tuple[Stage, ...] = PIPELINE
) -> RunPlan:
    """Build the task DAG. Every dependency must name a stage declared earlier."""
    section_ids: dict[Section, str] = {}
    tasks: list[Task] = []
    for idx, stage in enumerate(pipeline):
        missing = [section.value for section in stage.depends_on if section not in section_ids]
        if missing:
            raise ValueError(
                f"Stage {stage.section.value} depends on undeclared sections: {', '.join(missing)}"
            )
        task_id = f"task-{idx}"
        tasks.append(
            Task(
                id=task_id,
                role=stage.role,
                section=stage.section,
                instruction=stage.instruction,
                dependencies=[section_ids[section] for section in stage.depends_on],
            )
        )
        section_ids[stage.section] = task_id

    plan_id = f"plan-{sha256_hex(f'{project_id}:{seed}')[:16]}"
    return RunPlan(id=plan_id, project_id=project_id, seed=seed, tasks=tasks)
