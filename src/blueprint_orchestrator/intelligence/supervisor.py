"""Job supervisor: DAG scheduling, per-task pipeline, and job control."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from blueprint_orchestrator.config.settings import Settings, get_settings
from blueprint_orchestrator.graph.state import initial_state
from blueprint_orchestrator.graph.workflow import build_graph
from blueprint_orchestrator.intelligence.blackboard import Blackboard
from blueprint_orchestrator.intelligence.consensus import ConsensusEngine
from blueprint_orchestrator.intelligence.deterministic import DeterministicCache, generate_seed
from blueprint_orchestrator.intelligence.dispatcher import Dispatcher
from blueprint_orchestrator.intelligence.errors import (
    DeadlockError,
    InvalidTransitionError,
    JobNotFoundError,
)
from blueprint_orchestrator.intelligence.event_bus import EventBus
from blueprint_orchestrator.intelligence.grounding import GroundingValidator
from blueprint_orchestrator.intelligence.llm import (
    EmbeddingClient,
    FactChecker,
    GenerationClient,
    OpenAIEmbeddingClient,
    OpenAIGenerationClient,
)
from blueprint_orchestrator.intelligence.models import (
    ConsensusItem,
    Credentials,
    EventEnvelope,
    EventLevel,
    EventPhase,
    IntelligenceJob,
    RunPlan,
    Section,
    Task,
    VerificationReport,
    utc_now,
)
from blueprint_orchestrator.intelligence.planner import create_run_plan
from blueprint_orchestrator.intelligence.revision import RevisionLoop
from blueprint_orchestrator.intelligence.verifier import verify
from blueprint_orchestrator.retrieval.knowledge import KnowledgeIndex
from blueprint_orchestrator.storage.base import (
    CONSENSUS,
    DOCUMENTS,
    GROUNDING,
    JOBS,
    RUN_PLANS,
    VERIFICATION,
    KeyValueStore,
    scoped_key,
)
from blueprint_orchestrator.tools import ToolExecutor, default_args_for_tool, tools_for_role

logger = logging.getLogger(__name__)

Planner = Callable[[str, str], RunPlan]


@dataclass
class _JobRuntime:
    """In-memory state of one job. Credentials live here only."""

    job: IntelligenceJob
    credentials: Credentials
    plan: RunPlan | None = None
    board: Blackboard = field(default_factory=Blackboard)
    resumed: asyncio.Event = field(default_factory=asyncio.Event)
    runner: asyncio.Task | None = None
    rerun_ids: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.resumed.set()


class Supervisor:
    """Owns job lifecycles. One instance per process; jobs share no mutable state."""

    def __init__(
        self,
        *,
        store: KeyValueStore,
        bus: EventBus,
        dispatcher: Dispatcher,
        consensus: ConsensusEngine,
        grounding: GroundingValidator,
        tools: ToolExecutor | None = None,
        revision: RevisionLoop | None = None,
        knowledge: KnowledgeIndex | None = None,
        planner: Planner = create_run_plan,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.bus = bus
        self.dispatcher = dispatcher
        self.consensus = consensus
        self.grounding = grounding
        self.tools = tools or ToolExecutor()
        self.revision = revision
        self.knowledge = knowledge
        self.planner = planner
        self._jobs: dict[str, _JobRuntime] = {}
        self.bus.subscribe(self._record_event)
        self._graph = build_graph(
            self, revision_enabled=self.settings.revision_enabled and revision is not None
        )

    # Job control

    async def start_job(
        self, project_id: str, doc_id: str, prompt: str, credentials: Credentials
    ) -> str:
        if not prompt.strip():
            raise ValueError("prompt must not be empty")
        job = IntelligenceJob(
            id=str(uuid4()),
            project_id=project_id,
            doc_id=doc_id,
            prompt=prompt,
            provider=credentials.provider,
            model=credentials.model,
        )
        runtime = _JobRuntime(job=job, credentials=credentials)
        self._jobs[job.id] = runtime
        await self._save_job(runtime)

        self._set_status(runtime, "RUNNING")
        await self._save_job(runtime)
        runtime.runner = asyncio.create_task(self._run_pipeline(job.id), name=f"job-{job.id}")
        return job.id

    async def wait_for_job(self, job_id: str, timeout: float | None = None) -> IntelligenceJob:
        runtime = self._runtime(job_id)
        if runtime.runner is not None:
            await asyncio.wait_for(asyncio.shield(runtime.runner), timeout)
        return runtime.job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> IntelligenceJob:
        runtime = self._jobs.get(job_id)
        if runtime is not None:
            return runtime.job.model_copy(deep=True)
        record = await self.store.get(JOBS, job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return IntelligenceJob.model_validate(record)

    async def get_plan(self, job_id: str) -> RunPlan | None:
        job = await self.get_job(job_id)
        runtime = self._jobs.get(job_id)
        if runtime is not None and runtime.plan is not None:
            return runtime.plan.model_copy(deep=True)
        if job.run_plan_id is None:
            return None
        record = await self.store.get(RUN_PLANS, job.run_plan_id)
        return RunPlan.model_validate(record) if record is not None else None

    async def get_events(self, job_id: str) -> list[EventEnvelope]:
        job = await self.get_job(job_id)
        return list(job.logs)

    async def get_document(self, job_id: str) -> dict[str, Any] | None:
        job = await self.get_job(job_id)
        document = await self.store.get(DOCUMENTS, job.doc_id)
        if document is None or document.get("job_id") != job.id:
            return None
        verification = await self.store.get(VERIFICATION, job.doc_id)
        return {**document, "verification": verification}

    async def ingest_knowledge(self, context_id: str, content: str, credentials: Credentials) -> int:
        """Add reference text to the index that grounding checks claims against."""
        if not content.strip():
            raise ValueError("content must not be empty")
        if self.knowledge is None:
            return 0
        return await self.knowledge.ingest(context_id, content, credentials)

    async def pause_job(self, job_id: str) -> IntelligenceJob:
        runtime = self._runtime(job_id)
        if runtime.job.status != "RUNNING":
            raise InvalidTransitionError(f"Cannot pause job in status {runtime.job.status}")
        runtime.resumed.clear()
        self._set_status(runtime, "PAUSED")
        self._emit(job_id, "CONTROL", "PIPELINE_PAUSED", {"message": "No new tasks will be dispatched."})
        await self._save_job(runtime)
        return runtime.job.model_copy(deep=True)

    async def resume_job(self, job_id: str) -> IntelligenceJob:
        runtime = self._runtime(job_id)
        if runtime.job.status != "PAUSED":
            raise InvalidTransitionError(f"Cannot resume job in status {runtime.job.status}")
        self._set_status(runtime, "RUNNING")
        self._emit(job_id, "CONTROL", "PIPELINE_RESUMED", {})
        await self._save_job(runtime)
        return runtime.job.model_copy(deep=True)

    async def retry_task(
        self, job_id: str, task_id: str, credentials: Credentials | None = None
    ) -> IntelligenceJob:
        """Re-run one task of a finished job.

        For a COMPLETED job the task is regenerated and the document is
        re-assembled and re-verified. For a FAILED job the task and every
        task downstream of it are reset, and the pipeline resumes from the
        first incomplete task. Artifacts already on the board are overwritten.
        """
        runtime = self._runtime(job_id)
        if runtime.job.status not in ("COMPLETED", "FAILED"):
            raise InvalidTransitionError(f"Cannot retry a task while job is {runtime.job.status}")
        if runtime.plan is None:
            raise InvalidTransitionError("Job has no run plan to retry")
        task = runtime.plan.task(task_id)
        if credentials is not None:
            runtime.credentials = credentials

        previous_status = runtime.job.status
        runtime.job.error = None
        self._set_status(runtime, "RUNNING")
        self._emit(job_id, "CONTROL", "TASK_RETRY", {"task_id": task.id, "from_status": previous_status})
        await self._save_job(runtime)

        if previous_status == "COMPLETED":
            runtime.runner = asyncio.create_task(self._run_retry(job_id, task.id))
        else:
            # Dependents were built on the old artifact and run again after it.
            for rerun_id in [task.id, *dependents_of(runtime.plan, task.id)]:
                rerun = runtime.plan.task(rerun_id)
                rerun.status = "PENDING"
                rerun.error = None
                if rerun.section in runtime.board:
                    runtime.rerun_ids.add(rerun_id)
            runtime.runner = asyncio.create_task(self._run_pipeline(job_id))
        return runtime.job.model_copy(deep=True)

    # Pipeline stages, invoked from the job graph

    async def plan_job(self, job_id: str) -> RunPlan:
        runtime = self._runtime(job_id)
        if runtime.plan is not None:
            return runtime.plan
        job = runtime.job
        seed = generate_seed(job.project_id, job.prompt, master_key=self.settings.seed_master_key)
        plan = self.planner(job.project_id, seed)
        runtime.plan = plan
        job.seed = seed
        job.run_plan_id = plan.id
        await self._save_plan(plan)
        await self._save_job(runtime)
        self._emit(job_id, "PLAN", "PLAN_CREATED", {"plan_id": plan.id, "tasks": len(plan.tasks)})
        return plan

    async def run_dag(self, job_id: str) -> list[str]:
        """Run every incomplete task as soon as its dependencies complete.

        Returns task ids in completion order. The first task failure cancels
        in-flight siblings and propagates.
        """
        runtime = self._runtime(job_id)
        plan = self._require_plan(runtime)
        completed = {task.id for task in plan.tasks if task.status == "COMPLETED"}
        in_flight: dict[asyncio.Task, Task] = {}
        order: list[str] = []

        try:
            while len(completed) < len(plan.tasks):
                running = {task.id for task in in_flight.values()}
                for task in plan.tasks:
                    if task.id in completed or task.id in running:
                        continue
                    if all(dep in completed for dep in task.dependencies):
                        task.status = "IN_PROGRESS"
                        task.started_at = utc_now()
                        task.error = None
                        future = asyncio.create_task(
                            self.execute_agent_task(
                                job_id, task, overwrite=task.id in runtime.rerun_ids
                            )
                        )
                        in_flight[future] = task

                if not in_flight:
                    pending = [task.id for task in plan.tasks if task.id not in completed]
                    raise DeadlockError(pending)

                await self._save_plan(plan)
                done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)

                failure: BaseException | None = None
                for future in done:
                    task = in_flight.pop(future)
                    task.finished_at = utc_now()
                    exc = future.exception()
                    if exc is not None:
                        task.status = "FAILED"
                        task.error = str(exc)
                        self._emit(
                            job_id,
                            "DISPATCH",
                            "TASK_FAILED",
                            {"task_id": task.id, "role": task.role.value, "error": str(exc)},
                            level="ERROR",
                        )
                        failure = failure or exc
                        continue
                    task.status = "COMPLETED"
                    completed.add(task.id)
                    runtime.rerun_ids.discard(task.id)
                    order.append(task.id)
                    self._emit(
                        job_id,
                        "DISPATCH",
                        "TASK_COMPLETED",
                        {"task_id": task.id, "role": task.role.value, "section": task.section.value},
                    )
                if failure is not None:
                    raise failure
        finally:
            for future, task in in_flight.items():
                future.cancel()
                task.status = "PENDING"
                task.started_at = None
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            await self._save_plan(plan)
        return order

    async def execute_agent_task(
        self, job_id: str, task: Task, *, overwrite: bool = False
    ) -> ConsensusItem:
        runtime = self._runtime(job_id)
        plan = self._require_plan(runtime)
        board = runtime.board
        credentials = runtime.credentials
        self._emit(
            job_id,
            "DISPATCH",
            "TASK_STARTED",
            {"task_id": task.id, "role": task.role.value, "section": task.section.value},
        )

        context = build_task_context(runtime.job.prompt, task, plan, board)
        await self.wait_if_paused(job_id)
        response = await self._dispatch(task, context, credentials, runtime.job.seed or "")
        self._emit(job_id, "DISPATCH", "MODEL_RESPONSE", {"task_id": task.id, "length": len(response)})

        requirements = (
            runtime.job.prompt
            if task.section == Section.REQUIREMENTS
            else board.get(Section.REQUIREMENTS) or runtime.job.prompt
        )
        consensus = await self.consensus.score(
            task.id,
            response,
            credentials.model,
            requirements_summary=requirements,
            credentials=credentials,
        )
        self._emit(
            job_id,
            "CONSENSUS",
            "CONSENSUS_SCORED",
            {
                "task_id": task.id,
                "confidence": consensus.confidence,
                "semantic_distance": consensus.semantic_distance,
            },
        )

        self._run_tools(job_id, task, consensus.final, board)

        report = await self.grounding.validate(consensus, credentials)
        self._emit(
            job_id,
            "GROUNDING",
            "GROUNDING_REPORT",
            {
                "task_id": task.id,
                "status": report.status,
                "claims_checked": len(report.claims_checked),
                "evidence": len(consensus.evidence),
                "ungrounded": len(report.ungrounded_claims),
            },
            level="WARN" if report.status == "WARN" else "INFO",
        )

        await self.store.put(CONSENSUS, scoped_key(job_id, task.id), consensus.model_dump(mode="json"))
        await self.store.put(GROUNDING, scoped_key(job_id, task.id), report.model_dump(mode="json"))
        # Committed last: a cancelled task leaves no artifact.
        board.put(task.section, consensus.final, overwrite=overwrite)
        return consensus

    async def revise(self, job_id: str) -> bool:
        runtime = self._runtime(job_id)
        if self.revision is None:
            return False
        plan = self._require_plan(runtime)
        await self.wait_if_paused(job_id)
        runtime.board = await self.revision.run(
            job_id, plan, runtime.board, runtime.credentials, runtime.job.seed or ""
        )
        return True

    async def finalize(self, job_id: str) -> VerificationReport:
        runtime = self._runtime(job_id)
        plan = self._require_plan(runtime)
        job = runtime.job

        document = runtime.board.assemble(plan)
        report = verify(document, job.doc_id)
        await self.store.put(
            DOCUMENTS,
            job.doc_id,
            {
                "id": job.doc_id,
                "job_id": job.id,
                "project_id": job.project_id,
                "run_plan_id": plan.id,
                "content": document,
                "status": "completed",
                "updated_at": utc_now().isoformat(),
            },
        )
        await self.store.put(VERIFICATION, job.doc_id, report.model_dump(mode="json"))
        self._emit(
            job_id,
            "VERIFY",
            "VERIFICATION_REPORT",
            {"overall": report.overall, "score": report.score, "checks": len(report.checks)},
            level="WARN" if report.overall == "FAIL" else "INFO",
        )

        self._set_status(runtime, "COMPLETED")
        self._emit(job_id, "FINALIZE", "JOB_COMPLETED", {"document_id": job.doc_id})
        await self._save_job(runtime)
        return report

    async def wait_if_paused(self, job_id: str) -> None:
        runtime = self._runtime(job_id)
        if not runtime.resumed.is_set():
            logger.info("Job paused; holding dispatch job=%s", job_id)
        await runtime.resumed.wait()

    # Internals

    async def _run_pipeline(self, job_id: str) -> None:
        try:
            await self._graph.ainvoke(initial_state(job_id))
        except asyncio.CancelledError:
            await self._fail_job(job_id, "job cancelled")
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job failed job=%s", job_id)
            await self._fail_job(job_id, f"{type(exc).__name__}: {exc}")

    async def _run_retry(self, job_id: str, task_id: str) -> None:
        runtime = self._runtime(job_id)
        plan = self._require_plan(runtime)
        task = plan.task(task_id)
        try:
            task.status = "IN_PROGRESS"
            task.started_at = utc_now()
            await self.execute_agent_task(job_id, task, overwrite=True)
            task.status = "COMPLETED"
            task.finished_at = utc_now()
            await self._save_plan(plan)
            await self.finalize(job_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Task retry failed job=%s task=%s", job_id, task_id)
            task.status = "FAILED"
            task.error = str(exc)
            await self._save_plan(plan)
            await self._fail_job(job_id, f"{type(exc).__name__}: {exc}")

    async def _dispatch(self, task: Task, context: str, credentials: Credentials, seed: str) -> str:
        call = self.dispatcher.dispatch_task(task, context, credentials, seed)
        if not self.settings.enforce_task_budgets:
            return await call
        return await asyncio.wait_for(call, timeout=task.budget.time_ms / 1000.0)

    def _run_tools(self, job_id: str, task: Task, content: str, board: Blackboard) -> None:
        artifacts = board.as_text_map()
        for tool_name in tools_for_role(task.role, content, artifacts):
            args = default_args_for_tool(
                tool_name, section=task.section, content=content, artifacts=artifacts
            )
            result = self.tools.execute(tool_name, args)
            output = result.get("output", {})
            healthy = result["status"] == "ok" and output.get("success", False)
            self._emit(
                job_id,
                "TOOL_EXECUTION",
                "TOOL_RESULT",
                {"task_id": task.id, **result},
                level="INFO" if healthy else "WARN",
            )

    async def _fail_job(self, job_id: str, error: str) -> None:
        runtime = self._jobs.get(job_id)
        if runtime is None:
            return
        runtime.job.error = error
        self._set_status(runtime, "FAILED")
        self._emit(job_id, "FINALIZE", "JOB_FAILED", {"error": error}, level="ERROR")
        await self._save_job(runtime)

    def _emit(
        self,
        job_id: str,
        phase: EventPhase,
        event_type: str,
        payload: dict[str, Any] | None = None,
        level: EventLevel = "INFO",
    ) -> None:
        self.bus.publish(job_id, phase, event_type, payload, level)

    def _record_event(self, event: EventEnvelope) -> None:
        runtime = self._jobs.get(event.job_id)
        if runtime is None:
            return
        runtime.job.logs.append(event)
        overflow = len(runtime.job.logs) - self.settings.job_log_limit
        if overflow > 0:
            del runtime.job.logs[:overflow]

    def _set_status(self, runtime: _JobRuntime, status: str) -> None:
        runtime.job.status = status
        runtime.job.updated_at = utc_now()
        if status != "PAUSED":
            runtime.resumed.set()

    def _runtime(self, job_id: str) -> _JobRuntime:
        runtime = self._jobs.get(job_id)
        if runtime is None:
            raise JobNotFoundError(job_id)
        return runtime

    @staticmethod
    def _require_plan(runtime: _JobRuntime) -> RunPlan:
        if runtime.plan is None:
            raise InvalidTransitionError(f"Job {runtime.job.id} has no run plan yet")
        return runtime.plan

    async def _save_job(self, runtime: _JobRuntime) -> None:
        await self.store.put(JOBS, runtime.job.id, runtime.job.model_dump(mode="json"))

    async def _save_plan(self, plan: RunPlan) -> None:
        await self.store.put(RUN_PLANS, plan.id, plan.model_dump(mode="json"))


def build_task_context(prompt: str, task: Task, plan: RunPlan, board: Blackboard) -> str:
    """User prompt, then Requirements, then each dependency's artifact."""
    parts = [prompt]
    included: set[Section] = set()
    requirements = board.get(Section.REQUIREMENTS)
    if requirements and task.section != Section.REQUIREMENTS:
        parts.append(f"# {Section.REQUIREMENTS.value}\n{requirements}")
        included.add(Section.REQUIREMENTS)
    for dep_id in task.dependencies:
        dependency = plan.task(dep_id)
        if dependency.section in included:
            continue
        text = board.get(dependency.section)
        if text:
            parts.append(f"# {dependency.section.value}\n{text}")
            included.add(dependency.section)
    return "\n\n".join(parts)


def build_supervisor(
    settings: Settings,
    *,
    store: KeyValueStore,
    generation_client: GenerationClient | None = None,
    embedding_client: EmbeddingClient | None = None,
    fact_checker: FactChecker | None = None,
    bus: EventBus | None = None,
    planner: Planner = create_run_plan,
) -> Supervisor:
    bus = bus or EventBus(history_limit=settings.event_history_limit)
    client = generation_client or OpenAIGenerationClient(
        base_url=settings.llm_base_url,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
    )
    embedder = embedding_client or OpenAIEmbeddingClient(base_url=settings.llm_base_url)
    dispatcher = Dispatcher(
        client=client,
        cache=DeterministicCache(store),
        context_budget_chars=settings.context_budget_chars,
        context_head_chars=settings.context_head_chars,
    )
    consensus = ConsensusEngine(embedder=embedder, embedding_model=settings.embedding_model)
    index = KnowledgeIndex(store=store, embedder=embedder, embedding_model=settings.embedding_model)
    grounding = GroundingValidator(
        index=index,
        fact_checker=fact_checker,
        similarity_threshold=settings.grounding_similarity_threshold,
        max_claims=settings.grounding_max_claims,
        enforce=settings.grounding_enforce,
    )
    tools = ToolExecutor()
    revision = RevisionLoop(
        dispatcher=dispatcher,
        client=client,
        consensus=consensus,
        bus=bus,
        tools=tools,
        store=store,
    )
    return Supervisor(
        store=store,
        bus=bus,
        dispatcher=dispatcher,
        consensus=consensus,
        grounding=grounding,
        tools=tools,
        revision=revision,
        knowledge=index,
        planner=planner,
        settings=settings,
    )


def dependents_of(plan: RunPlan, task_id: str) -> list[str]:
    """Ids of every task that transitively depends on ``task_id``, in plan order."""
    affected = {task_id}
    dependents: list[str] = []
    for task in plan.tasks:
        if any(dep in affected for dep in task.dependencies):
            affected.add(task.id)
            dependents.append(task.id)
    return dependents
