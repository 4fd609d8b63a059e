"""Revise node: one critique pass over the completed blackboard."""

from __future__ import annotations

from typing import TYPE_CHECKING

from blueprint_orchestrator.graph.state import PipelineState

if TYPE_CHECKING:
    from blueprint_orchestrator.intelligence.supervisor import Supervisor


async def run(state: PipelineState, supervisor: Supervisor) -> PipelineState:
    return {"revised": await supervisor.revise(state["job_id"])}
