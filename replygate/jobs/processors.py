"""Job processors: one callable per job type."""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError

from replygate.errors import PermanentJobError
from replygate.generation.orchestrator import GenerationOrchestrator
from replygate.schemas import AiGenerationPayload, Job, JobType

logger = logging.getLogger(__name__)

Processor = Callable[[Job], None]


def ai_generation_processor(orchestrator: GenerationOrchestrator) -> Processor:
    def _process(job: Job) -> None:
        try:
            payload = AiGenerationPayload.model_validate(job.payload)
        except ValidationError as e:
            raise PermanentJobError(f"Malformed ai_generation payload: {e}") from e
        generation = orchestrator.generate_reply(
            payload.conversation_id,
            message_id=payload.message_id,
            tenant_id=payload.tenant_id,
        )
        logger.info("Job %s produced generation %s (%s)", job.id, generation.id, generation.status.value)

    return _process


def build_processors(orchestrator: GenerationOrchestrator) -> dict[JobType, Processor]:
    """Processors for the job types this service handles."""
    return {JobType.AI_GENERATION: ai_generation_processor(orchestrator)}
