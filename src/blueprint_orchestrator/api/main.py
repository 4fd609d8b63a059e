"""FastAPI app entrypoint for blueprint-orchestrator."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, SecretStr

from blueprint_orchestrator.config.settings import Settings, get_settings
from blueprint_orchestrator.intelligence.errors import InvalidTransitionError, JobNotFoundError
from blueprint_orchestrator.intelligence.llm import EmbeddingClient, FactChecker, GenerationClient
from blueprint_orchestrator.intelligence.models import Credentials, IntelligenceJob, RunPlan
from blueprint_orchestrator.intelligence.supervisor import Supervisor, build_supervisor
from blueprint_orchestrator.storage.base import KeyValueStore
from blueprint_orchestrator.storage.postgres import PostgresStore
from blueprint_orchestrator.tools import list_tools


class CreateJobRequest(BaseModel):
    project_id: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    doc_id: str | None = None
    provider: str | None = None
    model: str | None = None
    api_key: SecretStr | None = None
    base_url: str | None = None


class KnowledgeRequest(BaseModel):
    context_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    provider: str | None = None
    model: str | None = None
    api_key: SecretStr | None = None
    base_url: str | None = None


class RetryTaskRequest(BaseModel):
    api_key: SecretStr | None = None


def _request_credentials(
    payload: CreateJobRequest | KnowledgeRequest, settings: Settings
) -> Credentials:
    api_key = (
        payload.api_key.get_secret_value()
        if payload.api_key is not None
        else settings.resolved_openai_api_key()
    )
    return Credentials(
        provider=payload.provider or settings.llm_provider,
        model=payload.model or settings.llm_model,
        api_key=SecretStr(api_key),
        base_url=payload.base_url,
    )


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store_override: KeyValueStore | None,
    clients: dict[str, Any],
) -> None:
    if not hasattr(app.state, "store"):
        database_url = settings.resolved_database_url()
        if store_override is None and not database_url:
            raise RuntimeError(
                "Missing database URL. Set BLUEPRINT_ORCHESTRATOR_DATABASE_URL "
                "or ORCHESTRATOR_DATABASE_URL before starting the app."
            )
        app.state.store = store_override or PostgresStore(database_url)

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "supervisor"):
        app.state.supervisor = build_supervisor(settings, store=app.state.store, **clients)


def create_app(
    *,
    store: KeyValueStore | None = None,
    settings_override: Settings | None = None,
    generation_client: GenerationClient | None = None,
    embedding_client: EmbeddingClient | None = None,
    fact_checker: FactChecker | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    clients = {
        "generation_client": generation_client,
        "embedding_client": embedding_client,
        "fact_checker": fact_checker,
    }

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, store_override=store, clients=clients)
        await app.state.store.migrate()
        yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if store is not None:
        _ensure_runtime_state(app, settings=settings, store_override=store, clients=clients)

    def _get_supervisor(request: Request) -> Supervisor:
        if not hasattr(request.app.state, "supervisor"):
            _ensure_runtime_state(
                request.app, settings=settings, store_override=store, clients=clients
            )
        return request.app.state.supervisor

    @app.exception_handler(JobNotFoundError)
    async def _job_not_found(_: Request, exc: JobNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTransitionError)
    async def _invalid_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/tools")
    def tools() -> dict[str, list[dict[str, str]]]:
        return {"tools": list_tools()}

    @app.post("/jobs", status_code=202)
    async def create_job(payload: CreateJobRequest, request: Request) -> dict[str, Any]:
        supervisor = _get_supervisor(request)
        job_id = await supervisor.start_job(
            payload.project_id,
            payload.doc_id or str(uuid4()),
            payload.prompt,
            _request_credentials(payload, settings),
        )
        return await _job_payload(supervisor, job_id)

    @app.post("/knowledge", status_code=201)
    async def ingest_knowledge(payload: KnowledgeRequest, request: Request) -> dict[str, Any]:
        try:
            chunks = await _get_supervisor(request).ingest_knowledge(
                payload.context_id, payload.content, _request_credentials(payload, settings)
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"context_id": payload.context_id, "chunks": chunks}

    @app.get("/jobs/{job_id}")
    async def get_job(job_id: str, request: Request) -> dict[str, Any]:
        return await _job_payload(_get_supervisor(request), job_id)

    @app.post("/jobs/{job_id}/pause")
    async def pause_job(job_id: str, request: Request) -> dict[str, Any]:
        supervisor = _get_supervisor(request)
        await supervisor.pause_job(job_id)
        return await _job_payload(supervisor, job_id)

    @app.post("/jobs/{job_id}/resume")
    async def resume_job(job_id: str, request: Request) -> dict[str, Any]:
        supervisor = _get_supervisor(request)
        await supervisor.resume_job(job_id)
        return await _job_payload(supervisor, job_id)

    @app.post("/jobs/{job_id}/tasks/{task_id}/retry", status_code=202)
    async def retry_task(
        job_id: str,
        task_id: str,
        request: Request,
        payload: RetryTaskRequest | None = Body(default=None),
    ) -> dict[str, Any]:
        supervisor = _get_supervisor(request)
        credentials = None
        if payload is not None and payload.api_key is not None:
            job = await supervisor.get_job(job_id)
            credentials = Credentials(provider=job.provider, model=job.model, api_key=payload.api_key)
        try:
            await supervisor.retry_task(job_id, task_id, credentials)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Task not found") from exc
        return await _job_payload(supervisor, job_id)

    @app.get("/jobs/{job_id}/events")
    async def get_events(job_id: str, request: Request) -> dict[str, Any]:
        events = await _get_supervisor(request).get_events(job_id)
        return {"job_id": job_id, "events": [event.model_dump(mode="json") for event in events]}

    @app.get("/jobs/{job_id}/document")
    async def get_document(job_id: str, request: Request) -> dict[str, Any]:
        document = await _get_supervisor(request).get_document(job_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return document

    return app


app = create_app()


async def _job_payload(supervisor: Supervisor, job_id: str) -> dict[str, Any]:
    job = await supervisor.get_job(job_id)
    plan = await supervisor.get_plan(job_id)
    return _serialize_job(job, plan)


def _serialize_job(job: IntelligenceJob, plan: RunPlan | None) -> dict[str, Any]:
    payload = job.model_dump(mode="json", exclude={"logs"})
    payload["tasks"] = [
        {
            "id": task.id,
            "role": task.role.value,
            "section": task.section.value,
            "status": task.status,
            "dependencies": list(task.dependencies),
            "error": task.error,
        }
        for task in (plan.tasks if plan is not None else [])
    ]
    return payload
