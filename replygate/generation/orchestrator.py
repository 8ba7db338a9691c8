"""Draft, gate and approve AI replies.

``generate_reply`` turns the latest inbound message of a conversation into a
``Generation``: it resolves the tenant's active ``conversation_reply`` prompt,
calls the tenant's completion provider, classifies the intent, runs the
safety validator and decides the initial status. It never sends anything;
``auto_sent`` only means "cleared to send".

``approve_and_send`` is the human side: it moves a pending draft to
``approved`` / ``edited``, records the outbound message and hands it to the
messaging provider when one is configured.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from replygate.errors import (
    AiDisabledError,
    MessagingError,
    NoActivePromptError,
    NotFoundError,
    OptedOutError,
    ProviderError,
    StateConflictError,
)
from replygate.generation.intent import detect_intent
from replygate.generation.pricing import estimate_cost
from replygate.generation.template import render_template
from replygate.llm.base import Completion, LLMProvider
from replygate.messaging.base import MessagingProvider
from replygate.prompts.resolver import PromptResolver
from replygate.safety.validator import SafetyValidator
from replygate.schemas import (
    AiMode,
    Conversation,
    Direction,
    Generation,
    GenerationStatus,
    Message,
    Prompt,
    TenantSettings,
    Violation,
    utcnow,
)
from replygate.store.base import Store

logger = logging.getLogger(__name__)

REPLY_PROMPT_NAME = "conversation_reply"
HISTORY_IN_CONTEXT = 5


def build_context(
    conversation: Conversation,
    messages: list[Message],
    settings: TenantSettings,
) -> dict[str, Any]:
    """Template variables for the reply prompt. ``messages`` is newest first."""
    lead = conversation.lead
    history = messages[:HISTORY_IN_CONTEXT]
    return {
        "last_message": messages[0].body if messages else "",
        "lead_name": lead.name or "Customer",
        "lead_phone": conversation.whatsapp_number,
        "property_type": lead.property_type or "property",
        "location": lead.location or "Dubai",
        "budget": lead.budget or "not specified",
        "bedrooms": lead.bedrooms or "not specified",
        # Oldest first so the model reads the exchange in order
        "conversation_history": "\n".join(
            f"{m.direction.value}: {m.body}" for m in reversed(history)
        ),
        "tone": settings.tone or "professional",
        "language": settings.languages[0] if settings.languages else "en",
    }


class GenerationOrchestrator:
    def __init__(
        self,
        store: Store,
        resolver: PromptResolver,
        validator: SafetyValidator,
        provider_factory: Callable[[str], LLMProvider],
        messenger: MessagingProvider | None = None,
        history_limit: int = 10,
    ):
        self._store = store
        self._resolver = resolver
        self._validator = validator
        self._provider_factory = provider_factory
        self._messenger = messenger
        self._history_limit = history_limit

    # ------------------------------------------------------------------
    # Drafting
    # ------------------------------------------------------------------

    def generate_reply(
        self,
        conversation_id: str,
        message_id: str | None = None,
        tenant_id: str | None = None,
    ) -> Generation:
        conversation = self._store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        messages = self._store.list_recent_messages(conversation_id, limit=self._history_limit)

        tenant_id = tenant_id or conversation.tenant_id
        settings = self._store.get_tenant_settings(tenant_id)
        if settings is None or not settings.ai_enabled:
            raise AiDisabledError(f"AI is not enabled for tenant {tenant_id}")

        prompt = self._resolver.get_active_prompt(tenant_id, REPLY_PROMPT_NAME)
        if prompt is None:
            raise NoActivePromptError(f"No active prompt found for {REPLY_PROMPT_NAME}")

        context = build_context(conversation, messages, settings)
        user_prompt = render_template(prompt.user_prompt_template, context)

        provider = self._provider_factory(settings.ai_provider)
        completion = self._complete(provider, prompt, user_prompt)

        intent = detect_intent(context["last_message"])
        policy = settings.policy()
        safety = self._validator.validate(completion.text, intent.type, policy)
        cost = estimate_cost(
            provider.name, completion.model_used, completion.input_tokens, completion.output_tokens
        )

        if safety.should_block:
            status = GenerationStatus.BLOCKED
        elif (
            settings.ai_mode == AiMode.AUTOPILOT
            and intent.type in settings.auto_send_intents
            and intent.confidence >= settings.min_confidence
        ):
            status = GenerationStatus.AUTO_SENT
        else:
            status = GenerationStatus.PENDING_APPROVAL

        generation = Generation(
            tenant_id=tenant_id,
            conversation_id=conversation_id,
            message_id=message_id,
            prompt_id=prompt.id,
            prompt_version=prompt.version,
            provider=provider.name,
            model=completion.model_used,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            total_tokens=completion.input_tokens + completion.output_tokens,
            estimated_cost_usd=cost,
            detected_intent=intent.type,
            intent_confidence=intent.confidence,
            sentiment=intent.sentiment,
            urgency=intent.urgency,
            draft_message=completion.text,
            safety_passed=safety.passed,
            risk_score=safety.risk_score,
            should_escalate=safety.should_escalate,
            violations=safety.violations,
            status=status,
        )
        violations = [
            Violation(
                **v.model_dump(),
                tenant_id=tenant_id,
                generation_id=generation.id,
                was_blocked=safety.should_block,
            )
            for v in safety.violations
        ]
        self._store.insert_generation(generation, violations)

        logger.info(
            "Generated reply %s for %s: status=%s risk=%d intent=%s",
            generation.id,
            conversation_id,
            status.value,
            safety.risk_score,
            intent.type,
        )
        return generation

    def _complete(self, provider: LLMProvider, prompt: Prompt, user_prompt: str) -> Completion:
        try:
            return provider.complete(
                prompt.system_prompt,
                user_prompt,
                model=prompt.model,
                temperature=prompt.temperature,
                max_tokens=prompt.max_tokens,
            )
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(provider.name, str(e)) from e

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve_and_send(
        self,
        generation_id: str,
        approver_id: str,
        edited_message: str | None = None,
    ) -> Generation:
        generation = self._store.get_generation(generation_id)
        if generation is None:
            raise NotFoundError(f"Generation {generation_id} not found")
        if generation.status != GenerationStatus.PENDING_APPROVAL:
            raise StateConflictError(
                f"Cannot approve generation with status: {generation.status.value}"
            )
        conversation = self._store.get_conversation(generation.conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation {generation.conversation_id} not found")

        if self._validator.is_opted_out(conversation.tenant_id, conversation.whatsapp_number):
            raise OptedOutError(f"Cannot send to opted-out number {conversation.whatsapp_number}")

        final_text = edited_message or generation.draft_message
        now = utcnow()
        approved = generation.model_copy(
            update={
                "status": GenerationStatus.EDITED if edited_message else GenerationStatus.APPROVED,
                "approved_by": approver_id,
                "approved_at": now,
                "edited_message": edited_message or None,
                "sent_at": now,
            }
        )
        # Conditional write: a concurrent approver that got here first wins
        if not self._store.update_generation(approved, expected_status=GenerationStatus.PENDING_APPROVAL):
            raise StateConflictError(f"Generation {generation_id} was already handled")

        provider_message_id = None
        if self._messenger is not None:
            try:
                provider_message_id = self._messenger.send_text(conversation.whatsapp_number, final_text)
            except MessagingError as e:
                logger.error("Sending approved generation %s failed: %s", generation_id, e)
                # Hand the draft back to the approval queue so it can be approved again
                self._store.update_generation(generation, expected_status=approved.status)
                raise

        message = Message(
            conversation_id=conversation.id,
            direction=Direction.OUTBOUND,
            body=final_text,
            sender_id=approver_id,
            provider_message_id=provider_message_id,
            sent_at=now,
        )
        self._store.insert_message(message)

        approved = approved.model_copy(update={"outbound_message_id": message.id})
        self._store.update_generation(approved)
        self._store.save_conversation(
            conversation.model_copy(
                update={"last_message_at": now, "last_direction": Direction.OUTBOUND}
            )
        )

        logger.info(
            "Generation %s %s by %s (message %s)",
            generation_id,
            approved.status.value,
            approver_id,
            message.id,
        )
        return approved

    def list_pending_approvals(
        self,
        tenant_id: str,
        status: GenerationStatus | None = GenerationStatus.PENDING_APPROVAL,
        limit: int = 50,
    ) -> list[Generation]:
        """Drafts awaiting review, newest first."""
        return self._store.list_generations(tenant_id, status=status, limit=limit)
