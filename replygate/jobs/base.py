"""Job queue contract shared by the polling and Redis drivers."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from replygate.schemas import Job, JobOptions, JobStatus, JobType, QueueStats


@runtime_checkable
class QueueDriver(Protocol):
    def add_job(
        self,
        job_type: JobType,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> Job | None:
        """Enqueue a job. Returns None when the idempotency key is taken."""
        ...

    def get_next_job(self) -> Job | None:
        """Atomically claim the best due pending job and mark it processing."""
        ...

    def mark_completed(self, job_id: str) -> None: ...

    def mark_failed(self, job_id: str, error: str, should_retry: bool = True) -> JobStatus:
        """Re-queue with backoff or dead-letter. Returns the resulting status."""
        ...

    def get_job(self, job_id: str) -> Job | None: ...

    def cancel_job(self, job_id: str) -> bool:
        """Remove a job that has not been claimed yet."""
        ...

    def get_stats(self) -> QueueStats: ...

    def list_dead_letters(self, limit: int = 50) -> list[Job]: ...

    def requeue_dead_letter(self, job_id: str) -> Job | None:
        """Operator replay: back to pending with a fresh attempt budget."""
        ...

    def close(self) -> None: ...
