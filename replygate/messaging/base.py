"""Outbound messaging provider protocol."""

from typing import Protocol


class MessagingProvider(Protocol):
    """Delivers approved replies to the customer's channel."""

    name: str

    def send_text(self, to: str, text: str) -> str:
        """Send a text message and return the provider's message id.

        Raises MessagingError if the provider rejects or cannot be reached.
        """
        ...
