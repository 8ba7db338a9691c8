"""Worker loop: claim jobs, dispatch by type, settle the outcome."""

from __future__ import annotations

import logging
import signal
import threading
from typing import Callable, Mapping

from replygate.errors import PermanentJobError
from replygate.jobs.base import QueueDriver
from replygate.jobs.processors import Processor
from replygate.schemas import Job, JobStatus, JobType

logger = logging.getLogger(__name__)

DeadLetterHook = Callable[[Job, str], None]


def log_dead_letter(job: Job, error: str) -> None:
    logger.error(
        "Job %s (%s) dead-lettered after %d attempt(s): %s",
        job.id,
        job.type.value,
        job.attempts + 1,
        error,
    )


class Worker:
    """Single consumer. Stop is graceful: an in-flight job always finishes."""

    def __init__(
        self,
        queue: QueueDriver,
        processors: Mapping[JobType, Processor],
        poll_interval: float = 1.0,
        on_dead_letter: DeadLetterHook | None = None,
    ):
        self._queue = queue
        self._processors = dict(processors)
        self.poll_interval = poll_interval
        self._on_dead_letter = on_dead_letter or log_dead_letter
        self._stop = threading.Event()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Worker stopping after the current job")
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Bind SIGTERM / SIGINT to ``stop()``. Main thread only."""

        def _handle(signum, frame):
            logger.info("Received signal %s", signum)
            self.stop()

        signal.signal(signal.SIGTERM, _handle)
        signal.signal(signal.SIGINT, _handle)

    def run(self) -> None:
        logger.info("Worker started (handlers: %s)", ", ".join(t.value for t in self._processors))
        while not self._stop.is_set():
            try:
                ran = self.run_once()
            except Exception:
                # Broker or store outage: back off and keep consuming
                logger.exception("Worker iteration failed; retrying in %.1fs", self.poll_interval)
                ran = False
            if not ran:
                self._stop.wait(self.poll_interval)
        logger.info("Worker stopped")

    def run_once(self) -> bool:
        """Claim and process at most one job. Returns whether one ran."""
        job = self._queue.get_next_job()
        if job is None:
            return False

        processor = self._processors.get(job.type)
        if processor is None:
            self._fail(job, f"No processor registered for job type {job.type.value}", retry=False)
            return True

        logger.info("Processing job %s (%s), attempt %d", job.id, job.type.value, job.attempts + 1)
        try:
            processor(job)
        except PermanentJobError as e:
            self._fail(job, str(e), retry=False)
        except Exception as e:
            logger.warning("Job %s failed: %s", job.id, e)
            self._fail(job, f"{type(e).__name__}: {e}", retry=True)
        else:
            self._queue.mark_completed(job.id)
            logger.info("Job %s completed", job.id)
        return True

    def _fail(self, job: Job, error: str, retry: bool) -> None:
        status = self._queue.mark_failed(job.id, error, should_retry=retry)
        if status == JobStatus.DEAD_LETTER:
            self._on_dead_letter(job, error)
