"""Execute node: run the task DAG to completion."""

from __future__ import annotations

from typing import TYPE_CHECKING

from blueprint_orchestrator.graph.state import PipelineState

if TYPE_CHECKING:
    from blueprint_orchestrator.intelligence.supervisor import Supervisor


async def run(state: PipelineState, supervisor: Supervisor) -> PipelineState:
    completed = await supervisor.run_dag(state["job_id"])
    return {"completed_tasks": list(state.get("completed_tasks", [])) + completed}
