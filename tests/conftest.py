from __future__ import annotations

from typing import Any

import pytest
from fakes import FakeEmbeddingClient, FakeGenerationClient
from pydantic import SecretStr

from blueprint_orchestrator.config.settings import Settings
from blueprint_orchestrator.intelligence.models import Credentials
from blueprint_orchestrator.intelligence.planner import create_run_plan
from blueprint_orchestrator.intelligence.supervisor import build_supervisor
from blueprint_orchestrator.storage.memory import InMemoryStore


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(provider="openai", model="modelA", api_key=SecretStr("sk-test"))


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def fake_embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def make_supervisor(store, fake_client, fake_embedder):
    def _factory(
        *,
        client: FakeGenerationClient | None = None,
        embedder: FakeEmbeddingClient | None = None,
        planner=create_run_plan,
        **overrides: Any,
    ):
        settings = Settings(_env_file=None, **overrides)
        return build_supervisor(
            settings,
            store=store,
            generation_client=client or fake_client,
            embedding_client=embedder or fake_embedder,
            planner=planner,
        )

    return _factory
