"""Static analysis tools with schema-validated execution."""

from blueprint_orchestrator.tools.gateway import ToolExecutor
from blueprint_orchestrator.tools.registry import (
    ToolSpec,
    build_registry,
    default_args_for_tool,
    list_tools,
    tools_for_role,
)

__all__ = [
    "ToolExecutor",
    "ToolSpec",
    "build_registry",
    "default_args_for_tool",
    "list_tools",
    "tools_for_role",
]
