"""Dispatcher: prompt assembly, deterministic cache lookup, and generation."""

from __future__ import annotations

import logging
from collections.abc import Callable

from blueprint_orchestrator.intelligence.deterministic import DeterministicCache, cache_key
from blueprint_orchestrator.intelligence.llm import GenerationClient
from blueprint_orchestrator.intelligence.models import Credentials, Task
from blueprint_orchestrator.intelligence.prompts import OUTPUT_DIRECTIVE, system_prompt_for

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n\n...[Context Truncated]...\n\n"
REPLAY_CHUNK_CHARS = 64

ChunkCallback = Callable[[str], None]


class Dispatcher:
    """Runs one agent task against the generation client through the cache.

    Identical (seed, task id, provider, model, user prompt) tuples are always
    served from the cache. Provider errors are not caught here.
    """

    def __init__(
        self,
        *,
        client: GenerationClient,
        cache: DeterministicCache,
        context_budget_chars: int = 60_000,
        context_head_chars: int = 10_000,
    ) -> None:
        self.client = client
        self.cache = cache
        self.context_budget_chars = context_budget_chars
        self.context_head_chars = min(context_head_chars, context_budget_chars)

    async def dispatch_task(
        self,
        task: Task,
        context: str,
        credentials: Credentials,
        seed: str,
        *,
        system_prompt_override: str | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> str:
        system_prompt = build_system_prompt(
            task.role.value, task.instruction, override=system_prompt_override
        )
        user_prompt = build_user_prompt(self.truncate_context(context), task.instruction)

        key = cache_key(seed, task.id, credentials.provider, credentials.model, user_prompt)
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit task=%s key=%s", task.id, key[:12])
            if on_chunk is not None:
                for start in range(0, len(cached), REPLAY_CHUNK_CHARS):
                    on_chunk(cached[start : start + REPLAY_CHUNK_CHARS])
            return cached

        parts: list[str] = []
        async for chunk in self.client.stream(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            model=credentials.model,
            credentials=credentials,
        ):
            parts.append(chunk)
            if on_chunk is not None:
                on_chunk(chunk)
        response = "".join(parts)

        await self.cache.set(key, response)
        return response

    def truncate_context(self, context: str) -> str:
        if len(context) <= self.context_budget_chars:
            return context
        head = context[: self.context_head_chars]
        tail_chars = self.context_budget_chars - self.context_head_chars
        tail = context[-tail_chars:] if tail_chars > 0 else ""
        return f"{head}{TRUNCATION_MARKER}{tail}"


def build_system_prompt(role: str, instruction: str, *, override: str | None = None) -> str:
    base = system_prompt_for(role, override=override)
    return f"{base}\n\nYour specific task is: {instruction}\n{OUTPUT_DIRECTIVE}"


def build_user_prompt(context: str, instruction: str) -> str:
    return f"CONTEXT (Previous Decisions):\n{context}\n\nTASK:\n{instruction}"
