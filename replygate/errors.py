"""Error taxonomy for the reply pipeline."""


class ReplyGateError(Exception):
    """Base class for all pipeline errors."""


class NotFoundError(ReplyGateError):
    """A conversation, tenant, prompt, generation or job does not exist."""


class AiDisabledError(ReplyGateError):
    """The tenant has not enabled AI replies."""


class NoActivePromptError(ReplyGateError):
    """No active prompt version exists for the requested name."""


class ProviderError(ReplyGateError):
    """The AI completion provider failed or timed out."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class SafetyValidationError(ReplyGateError):
    """A safety rule could not be evaluated. Always treated as blocked."""


class StateConflictError(ReplyGateError):
    """The entity is not in a state that allows the requested transition."""


class OptedOutError(ReplyGateError):
    """The destination phone number has opted out of messages."""


class DuplicatePromptError(ReplyGateError):
    """A prompt with the same (tenant, name, version) already exists."""


class MessagingError(ReplyGateError):
    """The messaging provider rejected or failed to deliver a message."""


class PermanentJobError(ReplyGateError):
    """A job can never succeed (e.g. malformed payload); do not retry it."""
