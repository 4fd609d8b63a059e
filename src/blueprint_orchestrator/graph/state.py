"""Typed state contract for the job pipeline graph."""

from typing import TypedDict


class PipelineState(TypedDict, total=False):
    job_id: str
    plan_id: str
    completed_tasks: list[str]
    revised: bool
    verification: str


def initial_state(job_id: str) -> PipelineState:
    return {
        "job_id": job_id,
        "completed_tasks": [],
        "revised": False,
    }
