"""Plan node: derive the seed and build the run plan, or reuse an existing one."""

from __future__ import annotations

from typing import TYPE_CHECKING

from blueprint_orchestrator.graph.state import PipelineState

if TYPE_CHECKING:
    from blueprint_orchestrator.intelligence.supervisor import Supervisor


async def run(state: PipelineState, supervisor: Supervisor) -> PipelineState:
    plan = await supervisor.plan_job(state["job_id"])
    return {"plan_id": plan.id}
