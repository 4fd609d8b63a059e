"""Single-pass critique and targeted regeneration over a completed blackboard."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from blueprint_orchestrator.intelligence.blackboard import Blackboard
from blueprint_orchestrator.intelligence.consensus import ConsensusEngine
from blueprint_orchestrator.intelligence.dispatcher import Dispatcher
from blueprint_orchestrator.intelligence.event_bus import EventBus
from blueprint_orchestrator.intelligence.llm import GenerationClient
from blueprint_orchestrator.intelligence.models import (
    AgentRole,
    Critique,
    Credentials,
    RunPlan,
    Section,
    Task,
)
from blueprint_orchestrator.intelligence.prompts import CRITIC_SYSTEM_PROMPT
from blueprint_orchestrator.storage.base import CONSENSUS, KeyValueStore, scoped_key
from blueprint_orchestrator.tools import ToolExecutor

logger = logging.getLogger(__name__)

SUMMARY_CHARS = 1000
REVISION_SEED_SUFFIX = "_rev_1"
CRITIC_INSTRUCTIONS = """Review these architectural artifact summaries.
Identify conflicts, missing critical security controls, or scalability bottlenecks.

ARTIFACTS:
{summaries}

Respond with JSON of the form:
{{"critiques": [{{"severity": "critical" | "warning" | "suggestion",
"affected_role": "<one of {roles}>",
"affected_section": "<section name>",
"issue": "<description of the flaw>",
"recommendation": "<how to fix it>"}}]}}"""


class RevisionLoop:
    """Review the full artifact set once and regenerate the sections that need it."""

    def __init__(
        self,
        *,
        dispatcher: Dispatcher,
        client: GenerationClient,
        consensus: ConsensusEngine,
        bus: EventBus,
        tools: ToolExecutor | None = None,
        store: KeyValueStore | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.client = client
        self.consensus = consensus
        self.bus = bus
        self.tools = tools or ToolExecutor()
        self.store = store

    async def run(
        self,
        job_id: str,
        plan: RunPlan,
        board: Blackboard,
        credentials: Credentials,
        seed: str,
    ) -> Blackboard:
        self.bus.publish(job_id, "VERIFY", "REVIEW_STARTED", {"sections": len(board)})
        critiques = await self.review(board, credentials)

        actionable = [critique for critique in critiques if critique.severity != "suggestion"]
        roles = _dedupe_roles(actionable, plan)
        self.bus.publish(
            job_id,
            "VERIFY",
            "CRITIQUE_REPORT",
            {"critiques": len(critiques), "actionable": len(actionable), "roles": roles},
        )
        if not roles:
            return board

        self.bus.publish(job_id, "VERIFY", "REVISION_REQUIRED", {"roles": roles}, level="WARN")
        revised = board.copy()
        revision_seed = f"{seed}{REVISION_SEED_SUFFIX}"

        for role in roles:
            task = plan.task_for_role(AgentRole(role))
            if task is None:
                continue
            feedback = [critique for critique in actionable if _role_of(critique) == role]
            await self._revise(job_id, task, revised, feedback, credentials, revision_seed)

        residual = self._coherence(revised)
        if not residual.get("success", True):
            self.bus.publish(
                job_id,
                "VERIFY",
                "RESIDUAL_ISSUES",
                {"issues": residual.get("findings", [])},
                level="WARN",
            )
        return revised

    async def review(self, board: Blackboard, credentials: Credentials) -> list[Critique]:
        critiques = self._coherence_critiques(board)
        critiques.extend(await self._critic(board, credentials))
        return critiques

    async def _revise(
        self,
        job_id: str,
        task: Task,
        board: Blackboard,
        feedback: list[Critique],
        credentials: Credentials,
        seed: str,
    ) -> None:
        self.bus.publish(
            job_id,
            "DISPATCH",
            "REVISION_STARTED",
            {"task_id": task.id, "role": task.role.value, "section": task.section.value},
        )
        context = build_revision_context(board.get(task.section, ""), task.section, feedback)
        try:
            response = await self.dispatcher.dispatch_task(task, context, credentials, seed)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Revision failed job=%s task=%s reason=%s", job_id, task.id, exc)
            self.bus.publish(
                job_id,
                "DISPATCH",
                "REVISION_FAILED",
                {"task_id": task.id, "role": task.role.value, "error": str(exc)},
                level="ERROR",
            )
            return

        board.put(task.section, response, overwrite=True)
        requirements = board.get(Section.REQUIREMENTS) if task.section != Section.REQUIREMENTS else None
        item = await self.consensus.score(
            task.id,
            response,
            credentials.model,
            requirements_summary=requirements,
            credentials=credentials,
        )
        if self.store is not None:
            await self.store.put(CONSENSUS, scoped_key(job_id, task.id), item.model_dump(mode="json"))
        self.bus.publish(
            job_id,
            "DISPATCH",
            "REVISION_COMPLETED",
            {"task_id": task.id, "length": len(response), "confidence": item.confidence},
        )

    def _coherence(self, board: Blackboard) -> dict[str, Any]:
        result = self.tools.execute("coherence_checker", {"artifacts": board.as_text_map()})
        return result.get("output", {}) if result.get("status") == "ok" else {}

    def _coherence_critiques(self, board: Blackboard) -> list[Critique]:
        output = self._coherence(board)
        return [
            Critique(
                severity=issue["severity"],
                affected_role=issue["role"],
                affected_section=issue["section"],
                issue=issue["message"],
                recommendation=issue["recommendation"],
            )
            for issue in output.get("data", {}).get("issues", [])
        ]

    async def _critic(self, board: Blackboard, credentials: Credentials) -> list[Critique]:
        summaries = "\n".join(
            f"--- {section.value} ---\n{board[section][:SUMMARY_CHARS]}" for section in board
        )
        prompt = CRITIC_INSTRUCTIONS.format(
            summaries=summaries, roles=", ".join(role.value for role in AgentRole)
        )
        try:
            response = await self.client.generate_json(
                system_prompt=CRITIC_SYSTEM_PROMPT,
                user_prompt=prompt,
                model=credentials.model,
                credentials=credentials,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Critic review failed; continuing without LLM findings reason=%s", exc)
            return []

        raw = response.get("critiques") if isinstance(response, dict) else None
        if not isinstance(raw, list):
            return []
        critiques: list[Critique] = []
        for entry in raw:
            try:
                critiques.append(Critique.model_validate(_normalize_entry(entry)))
            except ValidationError:
                logger.debug("Skipping malformed critique entry=%r", entry)
        return critiques


def build_revision_context(previous: str, section: Section, feedback: list[Critique]) -> str:
    lines = [f"- Issue: {critique.issue}\n  Fix: {critique.recommendation}" for critique in feedback]
    return (
        f"PREVIOUS VERSION:\n{previous}\n\n"
        "CRITIC FEEDBACK (REQUIRED FIXES):\n"
        + "\n".join(lines)
        + f"\n\nRegenerate the \"{section.value}\" section to address these issues. "
        "Stay consistent with the original requirements."
    )


def _dedupe_roles(critiques: list[Critique], plan: RunPlan) -> list[str]:
    planned = {task.role.value for task in plan.tasks}
    roles: list[str] = []
    for critique in critiques:
        role = _role_of(critique)
        if role in planned and role not in roles:
            roles.append(role)
    return roles


def _role_of(critique: Critique) -> str:
    return critique.affected_role.strip().upper()


def _normalize_entry(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return entry
    normalized = dict(entry)
    if isinstance(normalized.get("severity"), str):
        normalized["severity"] = normalized["severity"].strip().lower()
    return normalized
