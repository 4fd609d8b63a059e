"""Tool registry and role-based trigger resolution."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from blueprint_orchestrator.intelligence.models import AgentRole, Section
from blueprint_orchestrator.tools import deterministic
from blueprint_orchestrator.tools.schemas import (
    ArtifactsInput,
    ContentInput,
    ContractInput,
    ToolOutput,
)

MERMAID_FENCE = "```mermaid"


@dataclass(frozen=True)
class ToolSpec:
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    fn: Callable[[BaseModel], BaseModel]
    description: str = ""


def build_registry() -> dict[str, ToolSpec]:
    return {
        "security_scanner": ToolSpec(
            input_model=ContentInput,
            output_model=ToolOutput,
            fn=deterministic.security_scanner,
            description="Flags leaked credentials and private keys.",
        ),
        "mermaid_validator": ToolSpec(
            input_model=ContentInput,
            output_model=ToolOutput,
            fn=deterministic.mermaid_validator,
            description="Checks Mermaid diagrams for missing edges and unbalanced braces.",
        ),
        "cost_estimator": ToolSpec(
            input_model=ContentInput,
            output_model=ToolOutput,
            fn=deterministic.cost_estimator,
            description="Estimates monthly infrastructure cost from resource mentions.",
        ),
        "contract_verifier": ToolSpec(
            input_model=ContractInput,
            output_model=ToolOutput,
            fn=deterministic.contract_verifier,
            description="Cross-checks backend endpoints against the frontend plan.",
        ),
        "api_contract_linter": ToolSpec(
            input_model=ContentInput,
            output_model=ToolOutput,
            fn=deterministic.api_contract_linter,
            description="Lints API design for versioning, errors, auth, and pagination.",
        ),
        "coherence_checker": ToolSpec(
            input_model=ArtifactsInput,
            output_model=ToolOutput,
            fn=deterministic.coherence_checker,
            description="Finds cross-section misalignments.",
        ),
        "compliance_checker": ToolSpec(
            input_model=ArtifactsInput,
            output_model=ToolOutput,
            fn=deterministic.compliance_checker,
            description="Checks GDPR, HIPAA, and PCI-DSS obligations.",
        ),
        "scalability_simulator": ToolSpec(
            input_model=ArtifactsInput,
            output_model=ToolOutput,
            fn=deterministic.scalability_simulator,
            description="Estimates capacity and flags bottlenecks.",
        ),
        "dependency_analyzer": ToolSpec(
            input_model=ArtifactsInput,
            output_model=ToolOutput,
            fn=deterministic.dependency_analyzer,
            description="Finds components the infrastructure plan does not provision.",
        ),
        "tech_stack_validator": ToolSpec(
            input_model=ArtifactsInput,
            output_model=ToolOutput,
            fn=deterministic.tech_stack_validator,
            description="Flags deprecated or mismatched technologies.",
        ),
        "license_checker": ToolSpec(
            input_model=ArtifactsInput,
            output_model=ToolOutput,
            fn=deterministic.license_checker,
            description="Flags copyleft and SSPL licensing risks.",
        ),
    }


def list_tools() -> list[dict[str, str]]:
    return [
        {"name": name, "description": spec.description}
        for name, spec in sorted(build_registry().items())
    ]


def tools_for_role(
    role: AgentRole | str,
    content: str,
    artifacts: Mapping[str, str],
) -> list[str]:
    """Tools triggered after ``role`` produced ``content``, given already committed artifacts."""
    role = AgentRole(role)
    selected = ["security_scanner"]
    if MERMAID_FENCE in content:
        selected.append("mermaid_validator")

    if role == AgentRole.BACKEND_ARCHITECT:
        selected.append("api_contract_linter")
        if artifacts.get(Section.FRONTEND.value):
            selected.append("contract_verifier")
    elif role == AgentRole.FRONTEND_ENGINEER:
        selected.extend(["tech_stack_validator", "license_checker"])
    elif role == AgentRole.DATA_MODELER:
        selected.append("scalability_simulator")
    elif role == AgentRole.SECURITY_ENGINEER:
        selected.append("compliance_checker")
    elif role == AgentRole.PLATFORM_ENGINEER:
        selected.extend(["cost_estimator", "dependency_analyzer"])
    elif role == AgentRole.SDET:
        selected.append("coherence_checker")
    return selected


def default_args_for_tool(
    tool_name: str,
    *,
    section: Section | str,
    content: str,
    artifacts: Mapping[str, str],
) -> dict[str, Any]:
    """Build tool input where ``content`` is the fresh artifact for ``section``."""
    merged = dict(artifacts)
    merged[Section(section).value] = content

    spec = build_registry().get(tool_name)
    if spec is None:
        return {}
    if spec.input_model is ContentInput:
        return {"content": content}
    if spec.input_model is ContractInput:
        return {
            "frontend": merged.get(Section.FRONTEND.value, ""),
            "backend": merged.get(Section.BACKEND.value, ""),
        }
    return {"artifacts": merged}
