"""Store-backed queue driver: claim-then-verify over the persistent store.

Workers read the best candidate, then ask the store to re-check and claim it
in one transaction. If another worker claimed it first, the next candidate
is tried, a bounded number of times.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from replygate.errors import NotFoundError
from replygate.schemas import (
    Job,
    JobOptions,
    JobStatus,
    JobType,
    QueueStats,
    backoff_seconds,
    utcnow,
)
from replygate.store.base import Store

logger = logging.getLogger(__name__)

MAX_CLAIM_ATTEMPTS = 5


class PollingQueueDriver:
    def __init__(self, store: Store, max_claim_attempts: int = MAX_CLAIM_ATTEMPTS):
        self._store = store
        self._max_claim_attempts = max_claim_attempts

    def add_job(
        self,
        job_type: JobType,
        payload: dict[str, Any],
        options: JobOptions | None = None,
    ) -> Job | None:
        options = options or JobOptions()
        job = Job(
            type=job_type,
            payload=payload,
            priority=options.priority,
            max_attempts=options.max_attempts,
            idempotency_key=options.idempotency_key,
            scheduled_for=options.scheduled_for,
        )
        if not self._store.insert_job(job):
            logger.info("Duplicate job skipped: %s", options.idempotency_key)
            return None
        logger.debug("Enqueued %s job %s (priority %d)", job.type.value, job.id, job.priority)
        return job

    def get_next_job(self) -> Job | None:
        now = utcnow()
        lost: set[str] = set()
        for _ in range(self._max_claim_attempts):
            candidate = self._store.next_job_candidate(now, skip=lost)
            if candidate is None:
                return None
            claimed = self._store.claim_job(candidate.id, now)
            if claimed is not None:
                return claimed
            lost.add(candidate.id)
        logger.debug("Gave up claiming after %d lost races", self._max_claim_attempts)
        return None

    def _load(self, job_id: str) -> Job:
        job = self._store.get_job(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def mark_completed(self, job_id: str) -> None:
        job = self._load(job_id)
        now = utcnow()
        job.status = JobStatus.COMPLETED
        job.completed_at = now
        job.updated_at = now
        self._store.update_job(job)

    def mark_failed(self, job_id: str, error: str, should_retry: bool = True) -> JobStatus:
        job = self._load(job_id)
        now = utcnow()
        job.attempts += 1
        job.last_error = error
        job.updated_at = now
        if should_retry and job.attempts < job.max_attempts:
            job.status = JobStatus.PENDING
            job.scheduled_for = now + timedelta(seconds=backoff_seconds(job.attempts))
            job.started_at = None
        else:
            job.status = JobStatus.DEAD_LETTER
            job.completed_at = now
        self._store.update_job(job)
        return job.status

    def get_job(self, job_id: str) -> Job | None:
        return self._store.get_job(job_id)

    def cancel_job(self, job_id: str) -> bool:
        removed = self._store.delete_pending_job(job_id)
        if removed:
            logger.info("Cancelled job %s", job_id)
        return removed

    def get_stats(self) -> QueueStats:
        return QueueStats(**self._store.count_jobs())

    def list_dead_letters(self, limit: int = 50) -> list[Job]:
        return self._store.list_jobs(JobStatus.DEAD_LETTER, limit=limit)

    def requeue_dead_letter(self, job_id: str) -> Job | None:
        job = self._store.get_job(job_id)
        if job is None or job.status != JobStatus.DEAD_LETTER:
            return None
        job.status = JobStatus.PENDING
        job.attempts = 0
        job.scheduled_for = None
        job.started_at = None
        job.completed_at = None
        job.updated_at = utcnow()
        self._store.update_job(job)
        logger.info("Requeued dead-letter job %s", job_id)
        return job

    def close(self) -> None:
        pass
