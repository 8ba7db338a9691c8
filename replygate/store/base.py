"""Persistent store contract (Protocol) for the reply pipeline.

Both ``FileStore`` and ``PostgresStore`` implement it. The pipeline never
talks to a database directly; everything goes through these methods.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

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


@runtime_checkable
class Store(Protocol):
    # -- jobs -------------------------------------------------------------
    def insert_job(self, job: Job) -> bool:
        """Insert a job. Returns False (and writes nothing) if its
        idempotency key already exists."""
        ...

    def get_job(self, job_id: str) -> Job | None: ...

    def next_job_candidate(self, now: datetime, skip: set[str] | None = None) -> Job | None:
        """Best pending, due job: priority desc, due time asc, created asc."""
        ...

    def claim_job(self, job_id: str, now: datetime) -> Job | None:
        """Atomically re-check that the job is still pending and due, then
        mark it processing. Returns None if another claimer won."""
        ...

    def update_job(self, job: Job) -> None: ...

    def delete_pending_job(self, job_id: str) -> bool:
        """Remove a job only while it is pending."""
        ...

    def count_jobs(self) -> dict[str, int]: ...

    def list_jobs(self, status: JobStatus, limit: int = 50) -> list[Job]: ...

    # -- prompts ----------------------------------------------------------
    def insert_prompt(self, prompt: Prompt) -> Prompt:
        """Raises DuplicatePromptError on an existing (tenant, name, version)."""
        ...

    def get_prompt(self, prompt_id: str) -> Prompt | None: ...

    def find_active_prompt(self, tenant_id: str | None, name: str) -> Prompt | None:
        """Active prompt scoped exactly to ``tenant_id`` (None = global)."""
        ...

    def activate_prompt(self, prompt_id: str, now: datetime) -> Prompt:
        """Deactivate all sibling versions and activate the target in one
        transaction. Raises NotFoundError."""
        ...

    def list_prompts(self, tenant_id: str | None, name: str | None = None) -> list[Prompt]: ...

    # -- conversations ----------------------------------------------------
    def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    def save_conversation(self, conversation: Conversation) -> None: ...

    def list_recent_messages(self, conversation_id: str, limit: int = 10) -> list[Message]:
        """Newest first."""
        ...

    def insert_message(self, message: Message) -> None:
        """Re-inserting an existing message id is a no-op."""
        ...

    def get_tenant_settings(self, tenant_id: str) -> TenantSettings | None: ...

    def save_tenant_settings(self, settings: TenantSettings) -> None: ...

    # -- generations ------------------------------------------------------
    def insert_generation(self, generation: Generation, violations: list[Violation]) -> None: ...

    def get_generation(self, generation_id: str) -> Generation | None: ...

    def update_generation(
        self,
        generation: Generation,
        expected_status: GenerationStatus | None = None,
    ) -> bool:
        """Write the generation. With ``expected_status``, only if the stored
        row still has that status; returns whether the write happened."""
        ...

    def list_generations(
        self,
        tenant_id: str,
        status: GenerationStatus | None = None,
        limit: int = 50,
    ) -> list[Generation]:
        """Newest first."""
        ...

    def list_violations(self, generation_id: str) -> list[Violation]: ...

    # -- opt-outs ---------------------------------------------------------
    def get_opt_out(self, tenant_id: str, phone: str) -> OptOut | None: ...

    def save_opt_out(self, opt_out: OptOut) -> None: ...
