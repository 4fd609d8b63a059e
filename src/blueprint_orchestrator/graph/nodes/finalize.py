"""Finalize node: assemble, verify, and persist the document."""

from __future__ import annotations

from typing import TYPE_CHECKING

from blueprint_orchestrator.graph.state import PipelineState

if TYPE_CHECKING:
    from blueprint_orchestrator.intelligence.supervisor import Supervisor


async def run(state: PipelineState, supervisor: Supervisor) -> PipelineState:
    report = await supervisor.finalize(state["job_id"])
    return {"verification": report.overall}
