"""Strict Pydantic schemas for static analysis tool inputs and outputs."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class StrictModel(BaseModel):
    """Base model for strict schema validation."""

    model_config = ConfigDict(extra="forbid")


class ContentInput(StrictModel):
    content: str


class ArtifactsInput(StrictModel):
    """Committed artifacts keyed by section name."""

    artifacts: dict[str, str] = Field(default_factory=dict)


class ContractInput(StrictModel):
    frontend: str
    backend: str


class ToolOutput(StrictModel):
    tool_id: str
    success: bool
    logs: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    data: dict[str, Any] = Field(default_factory=dict)


FindingSeverity = Literal["critical", "warning"]


class CoherenceFinding(StrictModel):
    """One cross-section misalignment, attributed to the section that should change."""

    section: str
    role: str
    severity: FindingSeverity
    message: str
    recommendation: str
