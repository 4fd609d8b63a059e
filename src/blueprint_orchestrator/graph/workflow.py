"""LangGraph workflow assembly for one job: plan, execute, revise, finalize."""

from __future__ import annotations

from typing import TYPE_CHECKING

from langgraph.graph import END, StateGraph

from blueprint_orchestrator.graph.nodes import execute, finalize, plan, revise
from blueprint_orchestrator.graph.state import PipelineState

if TYPE_CHECKING:
    from blueprint_orchestrator.intelligence.supervisor import Supervisor


def build_graph(supervisor: Supervisor, *, revision_enabled: bool = True):
    async def _plan(state: PipelineState) -> PipelineState:
        return await plan.run(state, supervisor)

    async def _execute(state: PipelineState) -> PipelineState:
        return await execute.run(state, supervisor)

    async def _revise(state: PipelineState) -> PipelineState:
        return await revise.run(state, supervisor)

    async def _finalize(state: PipelineState) -> PipelineState:
        return await finalize.run(state, supervisor)

    def _after_execute(state: PipelineState) -> str:
        return "revise" if revision_enabled else "finalize"

    graph = StateGraph(PipelineState)

    graph.add_node("plan", _plan)
    graph.add_node("execute", _execute)
    graph.add_node("revise", _revise)
    graph.add_node("finalize", _finalize)

    graph.set_entry_point("plan")
    graph.add_edge("plan", "execute")
    graph.add_conditional_edges(
        "execute", _after_execute, {"revise": "revise", "finalize": "finalize"}
    )
    graph.add_edge("revise", "finalize")
    graph.add_edge("finalize", END)

    return graph.compile()
