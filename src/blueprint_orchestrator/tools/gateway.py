"""Schema-enforcing tool execution gateway."""

from __future__ import annotations

import logging
import time
from typing import Any

from blueprint_orchestrator.tools.registry import ToolSpec, build_registry

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Execute registered tools with strict validation. Failures are recorded, not raised."""

    def __init__(self, *, registry: dict[str, ToolSpec] | None = None) -> None:
        self.registry = registry or build_registry()

    def execute(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        started_at = time.perf_counter()
        try:
            output = self._execute_once(tool_name, args)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool failed tool=%s reason=%s", tool_name, exc)
            return {
                "tool": tool_name,
                "status": "failed",
                "error": str(exc),
                "duration_ms": _duration_ms(started_at),
            }
        return {
            "tool": tool_name,
            "status": "ok",
            "output": output,
            "duration_ms": _duration_ms(started_at),
        }

    def _execute_once(self, tool_name: str, args: dict[str, Any]) -> dict[str, Any]:
        spec = self.registry.get(tool_name)
        if spec is None:
            raise ValueError(f"Unknown tool: {tool_name}")

        payload = spec.input_model.model_validate(args)
        raw_output = spec.fn(payload)
        validated_output = spec.output_model.model_validate(raw_output)
        return validated_output.model_dump(mode="json")


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
