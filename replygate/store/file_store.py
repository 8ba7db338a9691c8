"""File-based store: one JSON file per record, for single-host deployments
and tests. Survives restarts within the same data dir.

Writes are serialised by a lock shared by every ``FileStore`` that points at
the same directory in this process. It does not coordinate separate
processes; run multiple workers against ``PostgresStore`` or Redis instead.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from replygate.errors import DuplicatePromptError, NotFoundError
from replygate.schemas import (
    Conversation,
    Generation,
    GenerationStatus,
    Job,
    JobStatus,
    Message,
    OptOut,
    Prompt,
    TenantSettings,
    Violation,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_locks: dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _locks_guard:
        return _locks.setdefault(path, threading.RLock())


def _key_hash(*parts: str | None) -> str:
    return hashlib.sha256("|".join(p or "" for p in parts).encode()).hexdigest()[:32]


class FileStore:
    """Persist every pipeline entity as JSON under ``<data_dir>/store``."""

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir).resolve()
        self._dir.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(self._dir)
        self._index_path = self._dir / "idempotency_index.json"

    # -----------------------------------------------------------------
    # Low-level helpers
    # -----------------------------------------------------------------

    def _collection(self, name: str) -> Path:
        path = self._dir / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _write(self, collection: str, key: str, record: BaseModel) -> None:
        path = self._collection(collection) / f"{key}.json"
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(record.model_dump(mode="json"), f, indent=2)
        tmp.replace(path)

    def _read(self, collection: str, key: str, model: type[M]) -> M | None:
        path = self._collection(collection) / f"{key}.json"
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return model.model_validate(json.load(f))

    def _all(self, collection: str, model: type[M]) -> list[M]:
        records = []
        for path in self._collection(collection).glob("*.json"):
            with open(path, "r", encoding="utf-8") as f:
                records.append(model.model_validate(json.load(f)))
        return records

    def _delete(self, collection: str, key: str) -> None:
        (self._collection(collection) / f"{key}.json").unlink(missing_ok=True)

    def _load_index(self) -> dict[str, str]:
        """Maps idempotency_key -> job_id."""
        if self._index_path.exists():
            with open(self._index_path, "r", encoding="utf-8") as f:
                return json.load(f)
        return {}

    def _save_index(self, index: dict[str, str]) -> None:
        with open(self._index_path, "w", encoding="utf-8") as f:
            json.dump(index, f, indent=2)

    # -----------------------------------------------------------------
    # Jobs
    # -----------------------------------------------------------------

    def insert_job(self, job: Job) -> bool:
        with self._lock:
            if job.idempotency_key:
                index = self._load_index()
                if job.idempotency_key in index:
                    return False
                index[job.idempotency_key] = job.id
                self._save_index(index)
            self._write("jobs", job.id, job)
            return True

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            return self._read("jobs", job_id, Job)

    def next_job_candidate(self, now: datetime, skip: set[str] | None = None) -> Job | None:
        skip = skip or set()
        with self._lock:
            candidates = [
                j for j in self._all("jobs", Job)
                if j.status == JobStatus.PENDING and j.is_due(now) and j.id not in skip
            ]
        if not candidates:
            return None
        candidates.sort(key=lambda j: (-j.priority, j.due_at, j.created_at))
        return candidates[0]

    def claim_job(self, job_id: str, now: datetime) -> Job | None:
        with self._lock:
            job = self._read("jobs", job_id, Job)
            if job is None or job.status != JobStatus.PENDING or not job.is_due(now):
                return None
            job.status = JobStatus.PROCESSING
            job.started_at = now
            job.updated_at = now
            self._write("jobs", job.id, job)
            return job

    def update_job(self, job: Job) -> None:
        with self._lock:
            self._write("jobs", job.id, job)

    def delete_pending_job(self, job_id: str) -> bool:
        with self._lock:
            job = self._read("jobs", job_id, Job)
            if job is None or job.status != JobStatus.PENDING:
                return False
            self._delete("jobs", job_id)
            if job.idempotency_key:
                index = self._load_index()
                index.pop(job.idempotency_key, None)
                self._save_index(index)
            return True

    def count_jobs(self) -> dict[str, int]:
        counts = {s.value: 0 for s in JobStatus}
        with self._lock:
            for job in self._all("jobs", Job):
                counts[job.status.value] += 1
        return counts

    def list_jobs(self, status: JobStatus, limit: int = 50) -> list[Job]:
        with self._lock:
            jobs = [j for j in self._all("jobs", Job) if j.status == status]
        jobs.sort(key=lambda j: j.updated_at, reverse=True)
        return jobs[:limit]

    # -----------------------------------------------------------------
    # Prompts
    # -----------------------------------------------------------------

    def insert_prompt(self, prompt: Prompt) -> Prompt:
        with self._lock:
            for existing in self._all("prompts", Prompt):
                if (existing.tenant_id, existing.name, existing.version) == (
                    prompt.tenant_id, prompt.name, prompt.version
                ):
                    raise DuplicatePromptError(
                        f"Prompt {prompt.name} version {prompt.version} already exists"
                    )
            self._write("prompts", prompt.id, prompt)
            return prompt

    def get_prompt(self, prompt_id: str) -> Prompt | None:
        with self._lock:
            return self._read("prompts", prompt_id, Prompt)

    def find_active_prompt(self, tenant_id: str | None, name: str) -> Prompt | None:
        with self._lock:
            active = [
                p for p in self._all("prompts", Prompt)
                if p.tenant_id == tenant_id and p.name == name and p.is_active
            ]
        if not active:
            return None
        return max(active, key=lambda p: p.activated_at or p.created_at)

    def activate_prompt(self, prompt_id: str, now: datetime) -> Prompt:
        with self._lock:
            target = self._read("prompts", prompt_id, Prompt)
            if target is None:
                raise NotFoundError(f"Prompt not found: {prompt_id}")
            for sibling in self._all("prompts", Prompt):
                if (
                    sibling.id != target.id
                    and sibling.tenant_id == target.tenant_id
                    and sibling.name == target.name
                    and sibling.is_active
                ):
                    sibling.is_active = False
                    sibling.deactivated_at = now
                    self._write("prompts", sibling.id, sibling)
            target.is_active = True
            target.activated_at = now
            target.deactivated_at = None
            self._write("prompts", target.id, target)
            return target

    def list_prompts(self, tenant_id: str | None, name: str | None = None) -> list[Prompt]:
        with self._lock:
            prompts = [
                p for p in self._all("prompts", Prompt)
                if p.tenant_id == tenant_id and (name is None or p.name == name)
            ]
        prompts.sort(key=lambda p: (p.name, p.created_at))
        return prompts

    # -----------------------------------------------------------------
    # Conversations, messages, tenant settings
    # -----------------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._lock:
            return self._read("conversations", conversation_id, Conversation)

    def save_conversation(self, conversation: Conversation) -> None:
        with self._lock:
            self._write("conversations", conversation.id, conversation)

    def list_recent_messages(self, conversation_id: str, limit: int = 10) -> list[Message]:
        with self._lock:
            messages = [
                m for m in self._all("messages", Message)
                if m.conversation_id == conversation_id
            ]
        messages.sort(key=lambda m: m.sent_at, reverse=True)
        return messages[:limit]

    def insert_message(self, message: Message) -> None:
        with self._lock:
            if self._read("messages", message.id, Message) is not None:
                return
            self._write("messages", message.id, message)

    def get_tenant_settings(self, tenant_id: str) -> TenantSettings | None:
        with self._lock:
            return self._read("tenant_settings", _key_hash(tenant_id), TenantSettings)

    def save_tenant_settings(self, settings: TenantSettings) -> None:
        with self._lock:
            self._write("tenant_settings", _key_hash(settings.tenant_id), settings)

    # -----------------------------------------------------------------
    # Generations and violations
    # -----------------------------------------------------------------

    def insert_generation(self, generation: Generation, violations: list[Violation]) -> None:
        with self._lock:
            self._write("generations", generation.id, generation)
            for violation in violations:
                self._write("violations", violation.id, violation)

    def get_generation(self, generation_id: str) -> Generation | None:
        with self._lock:
            return self._read("generations", generation_id, Generation)

    def update_generation(
        self,
        generation: Generation,
        expected_status: GenerationStatus | None = None,
    ) -> bool:
        with self._lock:
            if expected_status is not None:
                current = self._read("generations", generation.id, Generation)
                if current is None or current.status != expected_status:
                    return False
            self._write("generations", generation.id, generation)
            return True

    def list_generations(
        self,
        tenant_id: str,
        status: GenerationStatus | None = None,
        limit: int = 50,
    ) -> list[Generation]:
        with self._lock:
            generations = [
                g for g in self._all("generations", Generation)
                if g.tenant_id == tenant_id and (status is None or g.status == status)
            ]
        generations.sort(key=lambda g: g.created_at, reverse=True)
        return generations[:limit]

    def list_violations(self, generation_id: str) -> list[Violation]:
        with self._lock:
            violations = [
                v for v in self._all("violations", Violation)
                if v.generation_id == generation_id
            ]
        violations.sort(key=lambda v: v.created_at)
        return violations

    # -----------------------------------------------------------------
    # Opt-outs
    # -----------------------------------------------------------------

    def get_opt_out(self, tenant_id: str, phone: str) -> OptOut | None:
        with self._lock:
            return self._read("opt_outs", _key_hash(tenant_id, phone), OptOut)

    def save_opt_out(self, opt_out: OptOut) -> None:
        with self._lock:
            self._write("opt_outs", _key_hash(opt_out.tenant_id, opt_out.phone), opt_out)
