"""Exception taxonomy for the orchestration core."""

from __future__ import annotations


class OrchestrationError(RuntimeError):
    """Base class for failures that abort a job."""


class DeadlockError(OrchestrationError):
    """Raised when pending tasks remain but none can run and none are in flight."""

    def __init__(self, pending: list[str]) -> None:
        self.pending = list(pending)
        super().__init__(f"Pipeline deadlock: no runnable tasks among {', '.join(self.pending)}")


class GenerationError(OrchestrationError):
    """Non-retryable failure from the generation provider (auth, 4xx, bad payload)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TransientGenerationError(GenerationError):
    """Retryable provider failure (429, 5xx, transport)."""


class JobNotFoundError(OrchestrationError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidTransitionError(OrchestrationError):
    """Requested control action is not valid for the job's current status."""
