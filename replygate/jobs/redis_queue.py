"""Redis-backed queue driver.

Native layout, all keys under one prefix:

- ``{prefix}:job:{id}``     job record (JSON)
- ``{prefix}:waiting``      zset, score = -priority * 1e13 + due_ms, popped with ZPOPMIN
- ``{prefix}:delayed``      zset, score = due_ms; promoted to waiting once due
- ``{prefix}:active``       set of claimed ids
- ``{prefix}:completed``    zset, score = completed_ms
- ``{prefix}:failed``       zset of dead letters, score = failed_ms
- ``{prefix}:idem:{key}``   idempotency key -> job id (SET NX)

Claims are atomic because ZPOPMIN and ZREM hand a member to exactly one caller.
Completed jobs are kept for a day (at most 1000) and dead letters for a week;
``prune`` runs whenever a job settles.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

import redis

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

logger = logging.getLogger(__name__)

# Native state -> shared job status
NATIVE_STATE_MAP: dict[str, JobStatus] = {
    "waiting": JobStatus.PENDING,
    "delayed": JobStatus.PENDING,
    "paused": JobStatus.PENDING,
    "active": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.DEAD_LETTER,
}

_PRIORITY_SCALE = 1e13

# Retention for settled jobs
COMPLETED_MAX_AGE_SECONDS = 86_400
COMPLETED_MAX_COUNT = 1_000
DEAD_LETTER_MAX_AGE_SECONDS = 604_800


def _ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def waiting_score(job: Job) -> float:
    """Lower pops first: higher priority, then earlier due time."""
    return -job.priority * _PRIORITY_SCALE + _ms(job.due_at)


class RedisQueueDriver:
    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "replygate:queue",
        completed_max_age: float = COMPLETED_MAX_AGE_SECONDS,
        completed_max_count: int = COMPLETED_MAX_COUNT,
        dead_letter_max_age: float = DEAD_LETTER_MAX_AGE_SECONDS,
    ):
        self._r = client
        self._prefix = prefix.rstrip(":")
        self._completed_max_age = completed_max_age
        self._completed_max_count = completed_max_count
        self._dead_letter_max_age = dead_letter_max_age

    @classmethod
    def from_url(cls, url: str, prefix: str = "replygate:queue", **retention: Any) -> "RedisQueueDriver":
        return cls(redis.Redis.from_url(url, decode_responses=True), prefix=prefix, **retention)

    # -- keys -------------------------------------------------------------
    def _key(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    def _idem_key(self, key: str) -> str:
        return f"{self._prefix}:idem:{key}"

    def _save(self, job: Job, pipe: Any = None) -> None:
        (pipe or self._r).set(self._job_key(job.id), job.model_dump_json())

    def _load(self, job_id: str) -> Job | None:
        raw = self._r.get(self._job_key(job_id))
        return Job.model_validate_json(raw) if raw else None

    def _require(self, job_id: str) -> Job:
        job = self._load(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def _native_state(self, job_id: str) -> str | None:
        if self._r.zscore(self._key("waiting"), job_id) is not None:
            return "waiting"
        if self._r.zscore(self._key("delayed"), job_id) is not None:
            return "delayed"
        if self._r.sismember(self._key("active"), job_id):
            return "active"
        if self._r.zscore(self._key("completed"), job_id) is not None:
            return "completed"
        if self._r.zscore(self._key("failed"), job_id) is not None:
            return "failed"
        return None

    def _enqueue(self, job: Job, now: datetime, pipe: Any) -> None:
        if job.scheduled_for is not None and job.scheduled_for > now:
            pipe.zadd(self._key("delayed"), {job.id: _ms(job.scheduled_for)})
        else:
            pipe.zadd(self._key("waiting"), {job.id: waiting_score(job)})

    def _promote_delayed(self, now: datetime) -> None:
        due = self._r.zrangebyscore(self._key("delayed"), "-inf", _ms(now))
        for job_id in due:
            # ZREM decides which worker moves it
            if self._r.zrem(self._key("delayed"), job_id) != 1:
                continue
            job = self._load(job_id)
            if job is None:
                continue
            self._r.zadd(self._key("waiting"), {job_id: waiting_score(job)})

    def _drop_settled(self, zset: str, job_ids: list[str]) -> int:
        if not job_ids:
            return 0
        jobs = [self._load(job_id) for job_id in job_ids]
        pipe = self._r.pipeline(transaction=True)
        pipe.zrem(self._key(zset), *job_ids)
        pipe.delete(*(self._job_key(job_id) for job_id in job_ids))
        keys = [self._idem_key(j.idempotency_key) for j in jobs if j is not None and j.idempotency_key]
        if keys:
            pipe.delete(*keys)
        pipe.execute()
        return len(job_ids)

    def prune(self, now: datetime | None = None) -> int:
        """Drop completed jobs past their age or count limit and expired dead letters.

        Returns how many job records were removed.
        """
        now = now or utcnow()
        completed = self._key("completed")
        expired = self._r.zrangebyscore(completed, "-inf", _ms(now) - self._completed_max_age * 1000)
        removed = self._drop_settled("completed", expired)
        overflow = self._r.zcard(completed) - self._completed_max_count
        if overflow > 0:
            removed += self._drop_settled("completed", self._r.zrange(completed, 0, overflow - 1))
        dead = self._r.zrangebyscore(self._key("failed"), "-inf", _ms(now) - self._dead_letter_max_age * 1000)
        removed += self._drop_settled("failed", dead)
        if removed:
            logger.debug("Pruned %d settled job(s)", removed)
        return removed

    # -- contract ---------------------------------------------------------
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
        if options.idempotency_key:
            if not self._r.set(self._idem_key(options.idempotency_key), job.id, nx=True):
                logger.info("Duplicate job skipped: %s", options.idempotency_key)
                return None
        pipe = self._r.pipeline(transaction=True)
        self._save(job, pipe)
        self._enqueue(job, utcnow(), pipe)
        pipe.execute()
        logger.debug("Enqueued %s job %s (priority %d)", job.type.value, job.id, job.priority)
        return job

    def get_next_job(self) -> Job | None:
        now = utcnow()
        self._promote_delayed(now)
        while True:
            popped = self._r.zpopmin(self._key("waiting"), 1)
            if not popped:
                return None
            job_id = popped[0][0]
            job = self._load(job_id)
            if job is None:
                logger.warning("Dropping queue entry %s with no job record", job_id)
                continue
            job.status = JobStatus.PROCESSING
            job.started_at = now
            job.updated_at = now
            pipe = self._r.pipeline(transaction=True)
            pipe.sadd(self._key("active"), job_id)
            self._save(job, pipe)
            pipe.execute()
            return job

    def mark_completed(self, job_id: str) -> None:
        job = self._require(job_id)
        now = utcnow()
        job.status = JobStatus.COMPLETED
        job.completed_at = now
        job.updated_at = now
        pipe = self._r.pipeline(transaction=True)
        pipe.srem(self._key("active"), job_id)
        pipe.zadd(self._key("completed"), {job_id: _ms(now)})
        self._save(job, pipe)
        pipe.execute()
        self.prune(now)

    def mark_failed(self, job_id: str, error: str, should_retry: bool = True) -> JobStatus:
        job = self._require(job_id)
        now = utcnow()
        job.attempts += 1
        job.last_error = error
        job.updated_at = now
        pipe = self._r.pipeline(transaction=True)
        pipe.srem(self._key("active"), job_id)
        if should_retry and job.attempts < job.max_attempts:
            job.status = JobStatus.PENDING
            job.scheduled_for = now + timedelta(seconds=backoff_seconds(job.attempts))
            job.started_at = None
            pipe.zadd(self._key("delayed"), {job_id: _ms(job.scheduled_for)})
        else:
            job.status = JobStatus.DEAD_LETTER
            job.completed_at = now
            pipe.zadd(self._key("failed"), {job_id: _ms(now)})
        self._save(job, pipe)
        pipe.execute()
        if job.status == JobStatus.DEAD_LETTER:
            self.prune(now)
        return job.status

    def get_job(self, job_id: str) -> Job | None:
        job = self._load(job_id)
        if job is None:
            return None
        state = self._native_state(job_id)
        if state is not None:
            job.status = NATIVE_STATE_MAP[state]
        return job

    def cancel_job(self, job_id: str) -> bool:
        removed = self._r.zrem(self._key("waiting"), job_id) + self._r.zrem(self._key("delayed"), job_id)
        if not removed:
            return False
        job = self._load(job_id)
        pipe = self._r.pipeline(transaction=True)
        pipe.delete(self._job_key(job_id))
        if job is not None and job.idempotency_key:
            pipe.delete(self._idem_key(job.idempotency_key))
        pipe.execute()
        logger.info("Cancelled job %s", job_id)
        return True

    def get_stats(self) -> QueueStats:
        return QueueStats(
            pending=self._r.zcard(self._key("waiting")) + self._r.zcard(self._key("delayed")),
            processing=self._r.scard(self._key("active")),
            completed=self._r.zcard(self._key("completed")),
            failed=0,
            dead_letter=self._r.zcard(self._key("failed")),
        )

    def list_dead_letters(self, limit: int = 50) -> list[Job]:
        ids = self._r.zrevrange(self._key("failed"), 0, limit - 1)
        jobs = [self._load(job_id) for job_id in ids]
        return [j for j in jobs if j is not None]

    def requeue_dead_letter(self, job_id: str) -> Job | None:
        if self._r.zrem(self._key("failed"), job_id) != 1:
            return None
        job = self._load(job_id)
        if job is None:
            return None
        job.status = JobStatus.PENDING
        job.attempts = 0
        job.scheduled_for = None
        job.started_at = None
        job.completed_at = None
        job.updated_at = utcnow()
        pipe = self._r.pipeline(transaction=True)
        self._save(job, pipe)
        pipe.zadd(self._key("waiting"), {job_id: waiting_score(job)})
        pipe.execute()
        logger.info("Requeued dead-letter job %s", job_id)
        return job

    def close(self) -> None:
        self._r.close()
