"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "blueprint-orchestrator"
    app_env: str = "dev"
    app_debug: bool = False
    database_url: str = ""
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_timeout_s: float = Field(default=60.0, ge=0.5)
    llm_max_retries: int = Field(default=2, ge=0)
    llm_backoff_s: float = Field(default=0.5, ge=0.0)
    openai_api_key: str = ""
    embedding_model: str = "text-embedding-3-small"
    context_budget_chars: int = Field(default=60_000, ge=1_000)
    context_head_chars: int = Field(default=10_000, ge=0)
    grounding_similarity_threshold: float = Field(default=0.78, ge=0.0, le=1.0)
    grounding_max_claims: int = Field(default=3, ge=0)
    grounding_enforce: bool = False
    revision_enabled: bool = True
    enforce_task_budgets: bool = False
    event_history_limit: int = Field(default=500, ge=1)
    job_log_limit: int = Field(default=200, ge=0)
    seed_master_key: str = "BlueprintMasterMetaSeed"

    model_config = SettingsConfigDict(
        env_prefix="BLUEPRINT_ORCHESTRATOR_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("ORCHESTRATOR_DATABASE_URL", "")

    def resolved_openai_api_key(self) -> str:
        return self.openai_api_key or os.getenv("OPENAI_API_KEY", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
