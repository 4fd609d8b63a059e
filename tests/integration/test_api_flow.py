import time

from fakes import FakeEmbeddingClient, FakeGenerationClient
from fastapi.testclient import TestClient

from blueprint_orchestrator.api.main import create_app
from blueprint_orchestrator.config.settings import Settings
from blueprint_orchestrator.intelligence.models import AgentRole
from blueprint_orchestrator.storage.memory import InMemoryStore

JOB_PAYLOAD = {
    "project_id": "atlas",
    "doc_id": "atlas-blueprint",
    "prompt": "Design a multi-tenant checkout service for Atlas.",
    "model": "modelA",
    "api_key": "sk-test",
}


def _app(client: FakeGenerationClient | None = None):
    return create_app(
        store=InMemoryStore(),
        settings_override=Settings(_env_file=None),
        generation_client=client or FakeGenerationClient(),
        embedding_client=FakeEmbeddingClient(),
    )


def _wait_for_status(client: TestClient, job_id: str, *statuses: str, timeout_s: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        body = client.get(f"/jobs/{job_id}").json()
        if body["status"] in statuses:
            return body
        time.sleep(0.02)
    raise AssertionError(f"job {job_id} never reached {statuses}")


def test_job_runs_to_completed_document() -> None:
    with TestClient(_app()) as client:
        created = client.post("/jobs", json=JOB_PAYLOAD)
        assert created.status_code == 202
        job_id = created.json()["id"]
        assert created.json()["status"] in ("RUNNING", "COMPLETED")

        job = _wait_for_status(client, job_id, "COMPLETED", "FAILED")
        assert job["status"] == "COMPLETED"
        assert job["model"] == "modelA"
        assert "api_key" not in job
        assert len(job["tasks"]) == 8
        assert all(task["status"] == "COMPLETED" for task in job["tasks"])

        events = client.get(f"/jobs/{job_id}/events").json()
        assert events["job_id"] == job_id
        types = [event["event_type"] for event in events["events"]]
        assert types[0] == "PLAN_CREATED"
        assert "TOOL_RESULT" in types
        assert types[-1] == "JOB_COMPLETED"

        document = client.get(f"/jobs/{job_id}/document").json()
        assert document["id"] == "atlas-blueprint"
        assert document["content"].startswith("# Requirements")
        assert document["verification"]["overall"] == "PASS"


def test_control_endpoints_enforce_transitions() -> None:
    with TestClient(_app()) as client:
        job_id = client.post("/jobs", json=JOB_PAYLOAD).json()["id"]
        _wait_for_status(client, job_id, "COMPLETED")

        assert client.post(f"/jobs/{job_id}/pause").status_code == 409
        assert client.post(f"/jobs/{job_id}/resume").status_code == 409
        assert client.post(f"/jobs/{job_id}/tasks/task-99/retry").status_code == 404


def test_pause_and_resume_over_http() -> None:
    with TestClient(_app(FakeGenerationClient(delay_s=0.05))) as client:
        job_id = client.post("/jobs", json=JOB_PAYLOAD).json()["id"]

        paused = client.post(f"/jobs/{job_id}/pause")
        assert paused.status_code == 200
        assert paused.json()["status"] == "PAUSED"

        resumed = client.post(f"/jobs/{job_id}/resume")
        assert resumed.json()["status"] == "RUNNING"
        assert _wait_for_status(client, job_id, "COMPLETED")["status"] == "COMPLETED"


def test_failed_job_retry_over_http() -> None:
    generator = FakeGenerationClient(fail_roles={AgentRole.DATA_MODELER})
    with TestClient(_app(generator)) as client:
        job_id = client.post("/jobs", json=JOB_PAYLOAD).json()["id"]
        failed = _wait_for_status(client, job_id, "FAILED")
        task_id = next(task["id"] for task in failed["tasks"] if task["role"] == "DATA_MODELER")
        assert failed["error"]

        generator.fail_roles.clear()
        retried = client.post(f"/jobs/{job_id}/tasks/{task_id}/retry", json={"api_key": "sk-new"})

        assert retried.status_code == 202
        assert _wait_for_status(client, job_id, "COMPLETED")["error"] is None


GROUNDED_CLAIM = "Checkout stores orders in PostgreSQL with row level security per tenant."


def _grounding_evidence(client: TestClient, job_id: str, task_id: str) -> int:
    events = client.get(f"/jobs/{job_id}/events").json()["events"]
    report = next(
        event
        for event in events
        if event["event_type"] == "GROUNDING_REPORT" and event["payload"]["task_id"] == task_id
    )
    return report["payload"]["evidence"]


def test_ingested_knowledge_grounds_matching_claims() -> None:
    generator = FakeGenerationClient(
        {AgentRole.PRODUCT_ARCHITECT: f"{GROUNDED_CLAIM} Carts expire after one hour of inactivity."}
    )
    with TestClient(_app(generator)) as client:
        baseline_id = client.post("/jobs", json=JOB_PAYLOAD).json()["id"]
        _wait_for_status(client, baseline_id, "COMPLETED")
        assert _grounding_evidence(client, baseline_id, "task-0") == 0

        ingested = client.post(
            "/knowledge",
            json={"context_id": "atlas-adr", "content": GROUNDED_CLAIM, "api_key": "sk-test"},
        )
        assert ingested.status_code == 201
        assert ingested.json() == {"context_id": "atlas-adr", "chunks": 1}

        job_id = client.post("/jobs", json=JOB_PAYLOAD).json()["id"]
        _wait_for_status(client, job_id, "COMPLETED")
        assert _grounding_evidence(client, job_id, "task-0") >= 1


def test_knowledge_rejects_blank_content() -> None:
    with TestClient(_app()) as client:
        assert client.post("/knowledge", json={"context_id": "adr", "content": ""}).status_code == 422
        assert client.post("/knowledge", json={"context_id": "adr", "content": "   "}).status_code == 422


def test_unknown_job_and_validation_errors() -> None:
    with TestClient(_app()) as client:
        assert client.get("/jobs/missing").status_code == 404
        assert client.get("/jobs/missing/events").status_code == 404
        assert client.get("/jobs/missing/document").status_code == 404
        assert client.post("/jobs", json={"project_id": "atlas", "prompt": ""}).status_code == 422
