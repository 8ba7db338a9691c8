"""Tests for the worker loop."""

import threading

from replygate.errors import PermanentJobError
from replygate.jobs import Worker, build_processors
from replygate.schemas import GenerationStatus, JobOptions, JobStatus, JobType


def _add(queue, job_type=JobType.AI_GENERATION, **options):
    return queue.add_job(job_type, {"conversation_id": "c1"}, JobOptions(**options))


def test_run_once_empty_queue(queue):
    assert Worker(queue, {}).run_once() is False


def test_success_marks_completed(queue):
    seen = []
    job = _add(queue)
    worker = Worker(queue, {JobType.AI_GENERATION: lambda j: seen.append(j.id)})
    assert worker.run_once() is True
    assert seen == [job.id]
    assert queue.get_job(job.id).status == JobStatus.COMPLETED


def test_unregistered_type_is_not_retried(queue):
    dead = []
    job = _add(queue, job_type=JobType.CRM_SYNC)
    worker = Worker(queue, {}, on_dead_letter=lambda j, err: dead.append((j.id, err)))
    worker.run_once()
    stored = queue.get_job(job.id)
    assert stored.status == JobStatus.DEAD_LETTER
    assert stored.attempts == 1
    assert dead and dead[0][0] == job.id
    assert "crm_sync" in dead[0][1]


def test_processor_error_is_retried(queue):
    def fail(job):
        raise RuntimeError("provider timeout")

    job = _add(queue)
    Worker(queue, {JobType.AI_GENERATION: fail}).run_once()
    stored = queue.get_job(job.id)
    assert stored.status == JobStatus.PENDING
    assert stored.attempts == 1
    assert "provider timeout" in stored.last_error


def test_permanent_error_dead_letters(queue):
    def fail(job):
        raise PermanentJobError("payload missing conversation_id")

    job = _add(queue)
    Worker(queue, {JobType.AI_GENERATION: fail}).run_once()
    assert queue.get_job(job.id).status == JobStatus.DEAD_LETTER


def test_exhausted_retries_call_dead_letter_hook(queue):
    dead = []

    def fail(job):
        raise RuntimeError("still broken")

    job = _add(queue, max_attempts=1)
    Worker(queue, {JobType.AI_GENERATION: fail}, on_dead_letter=lambda j, e: dead.append(j.id)).run_once()
    assert dead == [job.id]


def test_stop_lets_in_flight_job_finish(queue):
    first = _add(queue, priority=10)
    second = _add(queue)
    workers = []

    def process(job):
        # Signal arrives mid-job
        workers[0].stop()

    workers.append(Worker(queue, {JobType.AI_GENERATION: process}, poll_interval=0.01))
    workers[0].run()

    assert queue.get_job(first.id).status == JobStatus.COMPLETED
    assert queue.get_job(second.id).status == JobStatus.PENDING


def test_run_returns_after_stop_when_idle(queue):
    worker = Worker(queue, {}, poll_interval=5.0)
    thread = threading.Thread(target=worker.run)
    thread.start()
    worker.stop()
    thread.join(timeout=2)
    assert not thread.is_alive()


class FlakyQueue:
    """Delegates to a real queue, failing the first ``failures`` claims."""

    def __init__(self, queue, failures=1):
        self._queue = queue
        self.failures = failures

    def get_next_job(self):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("connection reset by peer")
        return self._queue.get_next_job()

    def __getattr__(self, name):
        return getattr(self._queue, name)


def test_run_survives_queue_errors(queue):
    job = _add(queue)
    flaky = FlakyQueue(queue, failures=2)
    workers = []

    def process(j):
        workers[0].stop()

    workers.append(Worker(flaky, {JobType.AI_GENERATION: process}, poll_interval=0.01))
    workers[0].run()

    assert flaky.failures == 0
    assert queue.get_job(job.id).status == JobStatus.COMPLETED


class TestAiGenerationProcessor:

    def test_generates_reply(self, queue, store, orchestrator, reply_prompt, inbound, conversation):
        queue.add_job(
            JobType.AI_GENERATION,
            {"conversation_id": conversation.id, "message_id": inbound.id},
        )
        Worker(queue, build_processors(orchestrator)).run_once()

        generations = store.list_generations(conversation.tenant_id, status=None)
        assert len(generations) == 1
        assert generations[0].message_id == inbound.id
        assert generations[0].status == GenerationStatus.PENDING_APPROVAL

    def test_malformed_payload_dead_letters(self, queue, orchestrator):
        job = queue.add_job(JobType.AI_GENERATION, {"message_id": "m1"})
        Worker(queue, build_processors(orchestrator)).run_once()
        stored = queue.get_job(job.id)
        assert stored.status == JobStatus.DEAD_LETTER
        assert "Malformed" in stored.last_error

    def test_missing_conversation_is_retried(self, queue, orchestrator):
        job = queue.add_job(JobType.AI_GENERATION, {"conversation_id": "conv_missing"})
        Worker(queue, build_processors(orchestrator)).run_once()
        stored = queue.get_job(job.id)
        assert stored.status == JobStatus.PENDING
        assert "NotFoundError" in stored.last_error
