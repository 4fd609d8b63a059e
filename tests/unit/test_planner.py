import pytest

from blueprint_orchestrator.intelligence.models import AgentRole, Section
from blueprint_orchestrator.intelligence.planner import PIPELINE, Stage, create_run_plan


def test_plan_has_eight_tasks_in_topological_order() -> None:
    plan = create_run_plan("proj-1", "seed-1")

    assert len(plan.tasks) == 8
    assert [task.id for task in plan.tasks] == [f"task-{idx}" for idx in range(8)]
    seen: set[str] = set()
    for task in plan.tasks:
        assert set(task.dependencies) <= seen
        seen.add(task.id)


def test_plan_dependency_map_matches_pipeline() -> None:
    plan = create_run_plan("proj-1", "seed-1")
    by_section = {task.section: task for task in plan.tasks}

    def deps(section: Section) -> set[Section]:
        return {plan.task(dep).section for dep in by_section[section].dependencies}

    assert deps(Section.REQUIREMENTS) == set()
    assert deps(Section.DESIGN_SYSTEM) == {Section.REQUIREMENTS}
    assert deps(Section.FRONTEND) == {Section.DESIGN_SYSTEM}
    assert deps(Section.BACKEND) == {Section.REQUIREMENTS, Section.DESIGN_SYSTEM}
    assert deps(Section.DATA_MODEL) == {Section.BACKEND}
    assert deps(Section.SECURITY) == {Section.BACKEND, Section.DATA_MODEL}
    assert deps(Section.INFRASTRUCTURE) == {Section.BACKEND, Section.SECURITY}
    assert deps(Section.TESTING) == {Section.REQUIREMENTS, Section.FRONTEND, Section.BACKEND}


def test_plan_assigns_one_role_per_section() -> None:
    plan = create_run_plan("proj-1", "seed-1")

    assert plan.task_for_role(AgentRole.PLATFORM_ENGINEER).section == Section.INFRASTRUCTURE
    assert plan.task_for_role(AgentRole.SDET).section == Section.TESTING
    assert len({task.role for task in plan.tasks}) == 8
    assert all(task.status == "PENDING" for task in plan.tasks)
    assert all(task.budget.tokens == 4000 and task.budget.time_ms == 60_000 for task in plan.tasks)


def test_plan_id_is_stable_for_project_and_seed() -> None:
    first = create_run_plan("proj-1", "seed-1")
    second = create_run_plan("proj-1", "seed-1")
    other = create_run_plan("proj-1", "seed-2")

    assert first.id == second.id
    assert first.id != other.id
    assert first.seed == "seed-1"
    assert first.project_id == "proj-1"


def test_forward_dependency_is_rejected() -> None:
    pipeline = (
        Stage(AgentRole.UX_ARCHITECT, Section.DESIGN_SYSTEM, "design", (Section.REQUIREMENTS,)),
        PIPELINE[0],
    )

    with pytest.raises(ValueError, match="Requirements"):
        create_run_plan("proj-1", "seed-1", pipeline=pipeline)


def test_unknown_task_lookup_raises_key_error() -> None:
    plan = create_run_plan("proj-1", "seed-1")

    with pytest.raises(KeyError):
        plan.task("task-99")
