"""Pytest configuration and shared fixtures."""

from datetime import timedelta

import pytest

from replygate.errors import MessagingError
from replygate.generation import GenerationOrchestrator
from replygate.jobs import PollingQueueDriver
from replygate.llm import Completion
from replygate.prompts import PromptResolver
from replygate.safety import SafetyValidator
from replygate.schemas import (
    Conversation,
    Direction,
    Lead,
    Message,
    PromptCreate,
    TenantSettings,
    utcnow,
)
from replygate.store import FileStore

TENANT_ID = "tenant_acme"
LEAD_PHONE = "+971501234567"

SAFE_REPLY = "Thanks for reaching out! I'd be happy to arrange a time that suits you."


class FakeProvider:
    """Completion provider that returns canned text and records calls."""

    name = "openai"

    def __init__(self, text: str = SAFE_REPLY, error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list[dict] = []

    def complete(self, system_instruction, user_prompt, *, model=None, temperature=0.7, max_tokens=500):
        self.calls.append(
            {
                "system": system_instruction,
                "user": user_prompt,
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.error is not None:
            raise self.error
        return Completion(text=self.text, input_tokens=120, output_tokens=40, model_used=model or "gpt-4-turbo")


class FakeMessenger:
    name = "fake"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[str, str]] = []

    def send_text(self, to: str, text: str) -> str:
        if self.fail:
            raise MessagingError("provider down")
        self.sent.append((to, text))
        return f"wamid.{len(self.sent)}"


@pytest.fixture
def store(tmp_path):
    return FileStore(tmp_path / "store")


@pytest.fixture
def tenant(store):
    settings = TenantSettings(
        tenant_id=TENANT_ID,
        ai_enabled=True,
        allowed_intents=["viewing_request", "price_inquiry", "inquiry", "availability_check", "follow_up"],
        auto_send_intents=["viewing_request"],
        escalate_keywords=["complaint", "manager"],
    )
    store.save_tenant_settings(settings)
    return settings


def add_inbound(store, conversation, body: str, minutes_ago: int = 0) -> Message:
    message = Message(
        conversation_id=conversation.id,
        direction=Direction.INBOUND,
        body=body,
        sent_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    store.insert_message(message)
    return message


@pytest.fixture
def conversation(store, tenant):
    conv = Conversation(
        tenant_id=TENANT_ID,
        whatsapp_number=LEAD_PHONE,
        lead=Lead(name="Sara", phone=LEAD_PHONE, property_type="apartment", location="Dubai Marina", bedrooms="2"),
    )
    store.save_conversation(conv)
    return conv


@pytest.fixture
def inbound(store, conversation):
    return add_inbound(store, conversation, "Hi, I'm interested in a 2 bedroom apartment in the Marina")


@pytest.fixture
def resolver(store):
    return PromptResolver(store)


@pytest.fixture
def reply_prompt(resolver):
    prompt = resolver.create_prompt(
        PromptCreate(
            name="conversation_reply",
            version="1.0",
            system_prompt="You are a helpful real estate assistant. Never quote prices.",
            user_prompt_template="Lead {{lead_name}} ({{bedrooms}} bed, {{location}}) wrote: {{last_message}}",
            temperature=0.4,
            max_tokens=300,
        )
    )
    return resolver.activate_prompt(prompt.id)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_orchestrator(store, resolver):
    def _make(provider, messenger=None):
        return GenerationOrchestrator(
            store,
            resolver,
            SafetyValidator(store),
            lambda name: provider,
            messenger=messenger,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator, provider):
    return make_orchestrator(provider)


@pytest.fixture
def queue(store):
    return PollingQueueDriver(store)
