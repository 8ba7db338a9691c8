"""Postgres store. Survives restarts and supports many worker processes.

Each thread gets its own connection so that transactions never interleave.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any

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

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS rg_jobs (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL,
        payload JSONB NOT NULL DEFAULT '{}',
        status TEXT NOT NULL,
        priority INT NOT NULL DEFAULT 0,
        attempts INT NOT NULL DEFAULT 0,
        max_attempts INT NOT NULL DEFAULT 3,
        last_error TEXT,
        idempotency_key TEXT UNIQUE,
        scheduled_for TIMESTAMPTZ,
        started_at TIMESTAMPTZ,
        completed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_rg_jobs_pending
    ON rg_jobs (status, priority DESC, COALESCE(scheduled_for, created_at), created_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_prompts (
        id TEXT PRIMARY KEY,
        tenant_id TEXT,
        name TEXT NOT NULL,
        version TEXT NOT NULL,
        system_prompt TEXT NOT NULL,
        user_prompt_template TEXT NOT NULL,
        variables JSONB NOT NULL DEFAULT '[]',
        model TEXT NOT NULL,
        temperature DOUBLE PRECISION NOT NULL,
        max_tokens INT NOT NULL,
        description TEXT,
        created_by TEXT,
        is_active BOOLEAN NOT NULL DEFAULT FALSE,
        activated_at TIMESTAMPTZ,
        deactivated_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_rg_prompts_version
    ON rg_prompts (COALESCE(tenant_id, ''), name, version)
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_rg_prompts_active
    ON rg_prompts (COALESCE(tenant_id, ''), name) WHERE is_active
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_conversations (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        whatsapp_number TEXT NOT NULL,
        lead JSONB NOT NULL DEFAULT '{}',
        last_message_at TIMESTAMPTZ,
        last_direction TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_messages (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL,
        direction TEXT NOT NULL,
        body TEXT NOT NULL,
        sender_id TEXT,
        provider_message_id TEXT,
        sent_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_rg_messages_conversation
    ON rg_messages (conversation_id, sent_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_tenant_settings (
        tenant_id TEXT PRIMARY KEY,
        data JSONB NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_generations (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        conversation_id TEXT NOT NULL,
        message_id TEXT,
        prompt_id TEXT NOT NULL,
        prompt_version TEXT NOT NULL,
        provider TEXT NOT NULL,
        model TEXT NOT NULL,
        input_tokens INT NOT NULL,
        output_tokens INT NOT NULL,
        total_tokens INT NOT NULL,
        estimated_cost_usd DOUBLE PRECISION NOT NULL,
        detected_intent TEXT,
        intent_confidence DOUBLE PRECISION,
        sentiment TEXT,
        urgency TEXT,
        draft_message TEXT NOT NULL,
        safety_passed BOOLEAN NOT NULL,
        risk_score INT NOT NULL,
        should_escalate BOOLEAN NOT NULL DEFAULT FALSE,
        violations JSONB NOT NULL DEFAULT '[]',
        status TEXT NOT NULL,
        approved_by TEXT,
        approved_at TIMESTAMPTZ,
        edited_message TEXT,
        sent_at TIMESTAMPTZ,
        outbound_message_id TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_rg_generations_tenant_status
    ON rg_generations (tenant_id, status, created_at DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_violations (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        generation_id TEXT NOT NULL,
        type TEXT NOT NULL,
        severity TEXT NOT NULL,
        detected_text TEXT NOT NULL,
        rule_matched TEXT NOT NULL,
        explanation TEXT NOT NULL,
        context TEXT,
        was_blocked BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rg_opt_outs (
        tenant_id TEXT NOT NULL,
        phone TEXT NOT NULL,
        reason TEXT,
        opted_out_at TIMESTAMPTZ NOT NULL,
        opted_in_at TIMESTAMPTZ,
        PRIMARY KEY (tenant_id, phone)
    )
    """,
]


def _row_values(record: BaseModel) -> dict[str, Any]:
    """Dump a model for SQL parameters; dicts and lists become JSONB."""
    from psycopg.types.json import Jsonb

    data = record.model_dump(mode="json")
    return {k: Jsonb(v) if isinstance(v, (dict, list)) else v for k, v in data.items()}


class PostgresStore:
    """Persist pipeline entities in Postgres tables prefixed ``rg_``."""

    def __init__(self, database_url: str):
        self._url = database_url
        self._local = threading.local()
        conn = self._conn
        for statement in _SCHEMA:
            conn.execute(statement)

    @property
    def _conn(self):
        conn = getattr(self._local, "conn", None)
        if conn is None or conn.closed:
            conn = self._connect()
            self._local.conn = conn
        return conn

    def _connect(self):
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError:
            raise ImportError(
                "psycopg required for Postgres store. pip install 'psycopg[binary]'"
            )
        return psycopg.connect(self._url, autocommit=True, row_factory=dict_row)

    def _insert(
        self,
        table: str,
        record: BaseModel,
        exclude: set[str] | None = None,
        on_conflict: str = "",
    ) -> None:
        values = _row_values(record)
        for key in exclude or ():
            values.pop(key, None)
        columns = ", ".join(values)
        placeholders = ", ".join(f"%({k})s" for k in values)
        self._conn.execute(f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) {on_conflict}", values)

    def _update(self, table: str, record: BaseModel, key: str = "id", where: str = "") -> int:
        values = _row_values(record)
        assignments = ", ".join(f"{k} = %({k})s" for k in values if k != key)
        cur = self._conn.execute(
            f"UPDATE {table} SET {assignments} WHERE {key} = %({key})s {where}", values
        )
        return cur.rowcount

    # -----------------------------------------------------------------
    # Jobs
    # -----------------------------------------------------------------

    def insert_job(self, job: Job) -> bool:
        values = _row_values(job)
        columns = ", ".join(values)
        placeholders = ", ".join(f"%({k})s" for k in values)
        cur = self._conn.execute(
            f"INSERT INTO rg_jobs ({columns}) VALUES ({placeholders}) "
            "ON CONFLICT (idempotency_key) DO NOTHING",
            values,
        )
        return cur.rowcount == 1

    def get_job(self, job_id: str) -> Job | None:
        row = self._conn.execute("SELECT * FROM rg_jobs WHERE id = %s", (job_id,)).fetchone()
        return Job.model_validate(row) if row else None

    def next_job_candidate(self, now: datetime, skip: set[str] | None = None) -> Job | None:
        row = self._conn.execute(
            """
            SELECT * FROM rg_jobs
            WHERE status = 'pending'
              AND (scheduled_for IS NULL OR scheduled_for <= %s)
              AND NOT (id = ANY(%s))
            ORDER BY priority DESC, COALESCE(scheduled_for, created_at) ASC, created_at ASC
            LIMIT 1
            """,
            (now, list(skip or ())),
        ).fetchone()
        return Job.model_validate(row) if row else None

    def claim_job(self, job_id: str, now: datetime) -> Job | None:
        conn = self._conn
        with conn.transaction():
            current = conn.execute(
                "SELECT status, scheduled_for FROM rg_jobs WHERE id = %s FOR UPDATE",
                (job_id,),
            ).fetchone()
            if not current or current["status"] != JobStatus.PENDING.value:
                return None
            if current["scheduled_for"] is not None and current["scheduled_for"] > now:
                return None
            row = conn.execute(
                """
                UPDATE rg_jobs SET status = 'processing', started_at = %s, updated_at = %s
                WHERE id = %s AND status = 'pending'
                RETURNING *
                """,
                (now, now, job_id),
            ).fetchone()
        return Job.model_validate(row) if row else None

    def update_job(self, job: Job) -> None:
        self._update("rg_jobs", job)

    def delete_pending_job(self, job_id: str) -> bool:
        cur = self._conn.execute(
            "DELETE FROM rg_jobs WHERE id = %s AND status = 'pending'", (job_id,)
        )
        return cur.rowcount == 1

    def count_jobs(self) -> dict[str, int]:
        counts = {s.value: 0 for s in JobStatus}
        for row in self._conn.execute(
            "SELECT status, COUNT(*) AS n FROM rg_jobs GROUP BY status"
        ).fetchall():
            counts[row["status"]] = row["n"]
        return counts

    def list_jobs(self, status: JobStatus, limit: int = 50) -> list[Job]:
        rows = self._conn.execute(
            "SELECT * FROM rg_jobs WHERE status = %s ORDER BY updated_at DESC LIMIT %s",
            (status.value, limit),
        ).fetchall()
        return [Job.model_validate(r) for r in rows]

    # -----------------------------------------------------------------
    # Prompts
    # -----------------------------------------------------------------

    def insert_prompt(self, prompt: Prompt) -> Prompt:
        import psycopg

        try:
            self._insert("rg_prompts", prompt)
        except psycopg.errors.UniqueViolation:
            raise DuplicatePromptError(
                f"Prompt {prompt.name} version {prompt.version} already exists"
            )
        return prompt

    def get_prompt(self, prompt_id: str) -> Prompt | None:
        row = self._conn.execute("SELECT * FROM rg_prompts WHERE id = %s", (prompt_id,)).fetchone()
        return Prompt.model_validate(row) if row else None

    def find_active_prompt(self, tenant_id: str | None, name: str) -> Prompt | None:
        row = self._conn.execute(
            """
            SELECT * FROM rg_prompts
            WHERE tenant_id IS NOT DISTINCT FROM %s AND name = %s AND is_active
            ORDER BY activated_at DESC NULLS LAST
            LIMIT 1
            """,
            (tenant_id, name),
        ).fetchone()
        return Prompt.model_validate(row) if row else None

    def activate_prompt(self, prompt_id: str, now: datetime) -> Prompt:
        conn = self._conn
        with conn.transaction():
            target = conn.execute(
                "SELECT tenant_id, name FROM rg_prompts WHERE id = %s FOR UPDATE", (prompt_id,)
            ).fetchone()
            if not target:
                raise NotFoundError(f"Prompt not found: {prompt_id}")
            conn.execute(
                """
                UPDATE rg_prompts SET is_active = FALSE, deactivated_at = %s
                WHERE tenant_id IS NOT DISTINCT FROM %s AND name = %s AND id <> %s AND is_active
                """,
                (now, target["tenant_id"], target["name"], prompt_id),
            )
            row = conn.execute(
                """
                UPDATE rg_prompts SET is_active = TRUE, activated_at = %s, deactivated_at = NULL
                WHERE id = %s
                RETURNING *
                """,
                (now, prompt_id),
            ).fetchone()
        return Prompt.model_validate(row)

    def list_prompts(self, tenant_id: str | None, name: str | None = None) -> list[Prompt]:
        rows = self._conn.execute(
            """
            SELECT * FROM rg_prompts
            WHERE tenant_id IS NOT DISTINCT FROM %s AND (%s::text IS NULL OR name = %s)
            ORDER BY name, created_at
            """,
            (tenant_id, name, name),
        ).fetchall()
        return [Prompt.model_validate(r) for r in rows]

    # -----------------------------------------------------------------
    # Conversations, messages, tenant settings
    # -----------------------------------------------------------------

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        row = self._conn.execute(
            "SELECT * FROM rg_conversations WHERE id = %s", (conversation_id,)
        ).fetchone()
        return Conversation.model_validate(row) if row else None

    def save_conversation(self, conversation: Conversation) -> None:
        if not self._update("rg_conversations", conversation):
            self._insert("rg_conversations", conversation)

    def list_recent_messages(self, conversation_id: str, limit: int = 10) -> list[Message]:
        rows = self._conn.execute(
            "SELECT * FROM rg_messages WHERE conversation_id = %s ORDER BY sent_at DESC LIMIT %s",
            (conversation_id, limit),
        ).fetchall()
        return [Message.model_validate(r) for r in rows]

    def insert_message(self, message: Message) -> None:
        self._insert("rg_messages", message, on_conflict="ON CONFLICT (id) DO NOTHING")

    def get_tenant_settings(self, tenant_id: str) -> TenantSettings | None:
        row = self._conn.execute(
            "SELECT data FROM rg_tenant_settings WHERE tenant_id = %s", (tenant_id,)
        ).fetchone()
        return TenantSettings.model_validate(row["data"]) if row else None

    def save_tenant_settings(self, settings: TenantSettings) -> None:
        from psycopg.types.json import Jsonb

        self._conn.execute(
            """
            INSERT INTO rg_tenant_settings (tenant_id, data) VALUES (%s, %s)
            ON CONFLICT (tenant_id) DO UPDATE SET data = EXCLUDED.data
            """,
            (settings.tenant_id, Jsonb(settings.model_dump(mode="json"))),
        )

    # -----------------------------------------------------------------
    # Generations and violations
    # -----------------------------------------------------------------

    def insert_generation(self, generation: Generation, violations: list[Violation]) -> None:
        with self._conn.transaction():
            self._insert("rg_generations", generation)
            for violation in violations:
                self._insert("rg_violations", violation)

    def get_generation(self, generation_id: str) -> Generation | None:
        row = self._conn.execute(
            "SELECT * FROM rg_generations WHERE id = %s", (generation_id,)
        ).fetchone()
        return Generation.model_validate(row) if row else None

    def update_generation(
        self,
        generation: Generation,
        expected_status: GenerationStatus | None = None,
    ) -> bool:
        if expected_status is None:
            return self._update("rg_generations", generation) == 1
        # Literal enum value; never user input
        where = f"AND status = '{expected_status.value}'"
        return self._update("rg_generations", generation, where=where) == 1

    def list_generations(
        self,
        tenant_id: str,
        status: GenerationStatus | None = None,
        limit: int = 50,
    ) -> list[Generation]:
        rows = self._conn.execute(
            """
            SELECT * FROM rg_generations
            WHERE tenant_id = %s AND (%s::text IS NULL OR status = %s)
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (tenant_id, status.value if status else None, status.value if status else None, limit),
        ).fetchall()
        return [Generation.model_validate(r) for r in rows]

    def list_violations(self, generation_id: str) -> list[Violation]:
        rows = self._conn.execute(
            "SELECT * FROM rg_violations WHERE generation_id = %s ORDER BY created_at",
            (generation_id,),
        ).fetchall()
        return [Violation.model_validate(r) for r in rows]

    # -----------------------------------------------------------------
    # Opt-outs
    # -----------------------------------------------------------------

    def get_opt_out(self, tenant_id: str, phone: str) -> OptOut | None:
        row = self._conn.execute(
            "SELECT * FROM rg_opt_outs WHERE tenant_id = %s AND phone = %s", (tenant_id, phone)
        ).fetchone()
        return OptOut.model_validate(row) if row else None

    def save_opt_out(self, opt_out: OptOut) -> None:
        values = _row_values(opt_out)
        self._conn.execute(
            """
            INSERT INTO rg_opt_outs (tenant_id, phone, reason, opted_out_at, opted_in_at)
            VALUES (%(tenant_id)s, %(phone)s, %(reason)s, %(opted_out_at)s, %(opted_in_at)s)
            ON CONFLICT (tenant_id, phone) DO UPDATE SET
                reason = EXCLUDED.reason,
                opted_out_at = EXCLUDED.opted_out_at,
                opted_in_at = EXCLUDED.opted_in_at
            """,
            values,
        )
