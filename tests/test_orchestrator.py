"""End-to-end tests for drafting, gating and approving AI replies."""

import pytest

from replygate.errors import (
    AiDisabledError,
    MessagingError,
    NoActivePromptError,
    NotFoundError,
    OptedOutError,
    ProviderError,
    StateConflictError,
)
from replygate.safety import record_opt_out
from replygate.schemas import AiMode, Direction, GenerationStatus, PromptCreate, ViolationType

from conftest import LEAD_PHONE, SAFE_REPLY, TENANT_ID, FakeMessenger, FakeProvider, add_inbound


class TestGenerateReply:

    @pytest.mark.parametrize(
        "reply",
        [SAFE_REPLY, "Thanks for your interest! I'll check availability and confirm shortly."],
    )
    def test_copilot_draft_waits_for_approval(self, store, make_orchestrator, reply, reply_prompt, inbound, conversation):
        provider = FakeProvider(reply)
        generation = make_orchestrator(provider).generate_reply(conversation.id, inbound.id)

        assert generation.status == GenerationStatus.PENDING_APPROVAL
        assert generation.safety_passed is True
        assert generation.risk_score == 0
        assert generation.prompt_id == reply_prompt.id
        assert generation.prompt_version == "1.0"
        assert generation.detected_intent == "inquiry"
        assert generation.total_tokens == 160
        assert generation.estimated_cost_usd == pytest.approx(0.006)
        assert generation.draft_message == reply
        assert store.get_generation(generation.id) == generation

        call = provider.calls[0]
        assert call["system"] == reply_prompt.system_prompt
        assert call["user"] == (
            "Lead Sara (2 bed, Dubai Marina) wrote: "
            "Hi, I'm interested in a 2 bedroom apartment in the Marina"
        )
        assert call["temperature"] == 0.4
        assert call["max_tokens"] == 300
        assert call["model"] == "gpt-4-turbo"

    def test_price_and_availability_draft_is_blocked(self, store, make_orchestrator, reply_prompt, inbound, conversation):
        provider = FakeProvider("The apartment is AED 2,500,000, guaranteed available.")
        generation = make_orchestrator(provider).generate_reply(conversation.id, inbound.id)

        assert generation.status == GenerationStatus.BLOCKED
        assert generation.safety_passed is False
        assert generation.risk_score >= 70
        violations = store.list_violations(generation.id)
        assert len(violations) == 2
        assert {v.type for v in violations} == {ViolationType.PRICE_MENTION, ViolationType.AVAILABILITY_CLAIM}
        assert all(v.was_blocked for v in violations)
        assert all(v.tenant_id == TENANT_ID for v in violations)

    def test_autopilot_auto_sends_confident_allowed_intent(self, store, tenant, orchestrator, reply_prompt, conversation):
        store.save_tenant_settings(tenant.model_copy(update={"ai_mode": AiMode.AUTOPILOT}))
        add_inbound(store, conversation, "Can I visit for a viewing this weekend?")
        generation = orchestrator.generate_reply(conversation.id)
        assert generation.detected_intent == "viewing_request"
        assert generation.status == GenerationStatus.AUTO_SENT

    def test_autopilot_low_confidence_needs_approval(self, store, tenant, orchestrator, reply_prompt, conversation):
        store.save_tenant_settings(
            tenant.model_copy(update={"ai_mode": AiMode.AUTOPILOT, "min_confidence": 0.9})
        )
        add_inbound(store, conversation, "Can I visit?")
        generation = orchestrator.generate_reply(conversation.id)
        assert generation.status == GenerationStatus.PENDING_APPROVAL

    def test_autopilot_other_intent_needs_approval(self, store, tenant, orchestrator, reply_prompt, inbound, conversation):
        store.save_tenant_settings(tenant.model_copy(update={"ai_mode": AiMode.AUTOPILOT}))
        generation = orchestrator.generate_reply(conversation.id, inbound.id)
        assert generation.status == GenerationStatus.PENDING_APPROVAL

    def test_escalation_flag_kept(self, make_orchestrator, reply_prompt, inbound, conversation):
        provider = FakeProvider("I'll ask my manager to call you back.")
        generation = make_orchestrator(provider).generate_reply(conversation.id, inbound.id)
        assert generation.should_escalate is True

    def test_tenant_prompt_overrides_global(self, resolver, orchestrator, provider, reply_prompt, inbound, conversation):
        tenant_prompt = resolver.create_prompt(
            PromptCreate(
                tenant_id=TENANT_ID,
                name="conversation_reply",
                version="tenant-2",
                system_prompt="Tenant voice",
                user_prompt_template="{{last_message}} / {{missing}}",
            )
        )
        resolver.activate_prompt(tenant_prompt.id)
        generation = orchestrator.generate_reply(conversation.id)
        assert generation.prompt_id == tenant_prompt.id
        assert provider.calls[0]["user"].endswith(" / {{missing}}")

    def test_missing_conversation(self, orchestrator, reply_prompt):
        with pytest.raises(NotFoundError):
            orchestrator.generate_reply("conv_missing")

    def test_ai_disabled(self, store, tenant, orchestrator, reply_prompt, inbound, conversation):
        store.save_tenant_settings(tenant.model_copy(update={"ai_enabled": False}))
        with pytest.raises(AiDisabledError):
            orchestrator.generate_reply(conversation.id)

    def test_no_active_prompt(self, orchestrator, inbound, conversation):
        with pytest.raises(NoActivePromptError):
            orchestrator.generate_reply(conversation.id)

    def test_provider_failure_persists_nothing(self, store, make_orchestrator, reply_prompt, inbound, conversation):
        orchestrator = make_orchestrator(FakeProvider(error=TimeoutError("read timed out")))
        with pytest.raises(ProviderError):
            orchestrator.generate_reply(conversation.id)
        assert store.list_generations(TENANT_ID, status=None) == []


class TestApproveAndSend:

    @pytest.fixture
    def pending(self, orchestrator, reply_prompt, inbound, conversation):
        return orchestrator.generate_reply(conversation.id, inbound.id)

    def test_approve_records_outbound_message(self, store, orchestrator, pending, conversation):
        approved = orchestrator.approve_and_send(pending.id, "agent_7")

        assert approved.status == GenerationStatus.APPROVED
        assert approved.approved_by == "agent_7"
        assert approved.approved_at is not None
        assert approved.sent_at is not None
        latest = store.list_recent_messages(conversation.id)[0]
        assert latest.id == approved.outbound_message_id
        assert latest.direction == Direction.OUTBOUND
        assert latest.body == pending.draft_message
        assert store.get_conversation(conversation.id).last_direction == Direction.OUTBOUND
        assert store.get_generation(pending.id).status == GenerationStatus.APPROVED

    def test_edited_text_is_sent(self, store, orchestrator, pending, conversation):
        approved = orchestrator.approve_and_send(pending.id, "agent_7", "Edited reply text")
        assert approved.status == GenerationStatus.EDITED
        assert approved.edited_message == "Edited reply text"
        assert store.list_recent_messages(conversation.id)[0].body == "Edited reply text"

    def test_cannot_approve_twice(self, store, orchestrator, pending, conversation):
        orchestrator.approve_and_send(pending.id, "agent_7")
        messages_before = len(store.list_recent_messages(conversation.id))
        with pytest.raises(StateConflictError):
            orchestrator.approve_and_send(pending.id, "agent_8")
        assert len(store.list_recent_messages(conversation.id)) == messages_before

    def test_cannot_approve_blocked(self, make_orchestrator, reply_prompt, inbound, conversation):
        orchestrator = make_orchestrator(FakeProvider("Only AED 900,000!"))
        blocked = orchestrator.generate_reply(conversation.id, inbound.id)
        with pytest.raises(StateConflictError):
            orchestrator.approve_and_send(blocked.id, "agent_7")

    def test_missing_generation(self, orchestrator):
        with pytest.raises(NotFoundError):
            orchestrator.approve_and_send("gen_missing", "agent_7")

    def test_opted_out_number_is_refused(self, store, orchestrator, pending):
        record_opt_out(store, TENANT_ID, LEAD_PHONE, reason="keyword: stop")
        with pytest.raises(OptedOutError):
            orchestrator.approve_and_send(pending.id, "agent_7")
        assert store.get_generation(pending.id).status == GenerationStatus.PENDING_APPROVAL

    def test_messenger_delivers(self, store, make_orchestrator, provider, reply_prompt, inbound, conversation):
        messenger = FakeMessenger()
        orchestrator = make_orchestrator(provider, messenger)
        pending = orchestrator.generate_reply(conversation.id, inbound.id)
        approved = orchestrator.approve_and_send(pending.id, "agent_7")
        assert messenger.sent == [(LEAD_PHONE, pending.draft_message)]
        assert store.list_recent_messages(conversation.id)[0].provider_message_id == "wamid.1"
        assert approved.outbound_message_id is not None

    def test_messenger_failure_returns_draft_to_queue(self, store, make_orchestrator, provider, reply_prompt, inbound, conversation):
        messenger = FakeMessenger(fail=True)
        orchestrator = make_orchestrator(provider, messenger)
        pending = orchestrator.generate_reply(conversation.id, inbound.id)
        with pytest.raises(MessagingError):
            orchestrator.approve_and_send(pending.id, "agent_7", edited_message="Edited reply")

        stored = store.get_generation(pending.id)
        assert stored.status == GenerationStatus.PENDING_APPROVAL
        assert stored.approved_by is None
        assert stored.sent_at is None
        assert stored.edited_message is None
        outbound = [m for m in store.list_recent_messages(conversation.id) if m.direction == Direction.OUTBOUND]
        assert outbound == []

        messenger.fail = False
        approved = orchestrator.approve_and_send(pending.id, "agent_8")
        assert approved.status == GenerationStatus.APPROVED
        assert approved.approved_by == "agent_8"
        assert messenger.sent == [(LEAD_PHONE, pending.draft_message)]

    def test_list_pending_approvals(self, orchestrator, pending):
        assert [g.id for g in orchestrator.list_pending_approvals(TENANT_ID)] == [pending.id]
        orchestrator.approve_and_send(pending.id, "agent_7")
        assert orchestrator.list_pending_approvals(TENANT_ID) == []
