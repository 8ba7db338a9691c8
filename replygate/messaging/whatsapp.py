"""WhatsApp Cloud API (Meta Graph) text sender."""

from __future__ import annotations

import logging

import httpx

from replygate.errors import MessagingError

logger = logging.getLogger(__name__)


class WhatsAppCloudProvider:
    """POST ``/{phone_number_id}/messages`` with a bearer access token."""

    name = "whatsapp_cloud"

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_base: str = "https://graph.facebook.com/v19.0",
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._url = f"{api_base.rstrip('/')}/{phone_number_id}/messages"
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._timeout = timeout
        self._transport = transport

    def send_text(self, to: str, text: str) -> str:
        body = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to.lstrip("+"),
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self._url, json=body, headers=self._headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:300]
            raise MessagingError(f"WhatsApp API error {e.response.status_code}: {detail}") from e
        except httpx.HTTPError as e:
            raise MessagingError(f"WhatsApp API unreachable: {e}") from e

        messages = data.get("messages") or []
        if not messages or not messages[0].get("id"):
            raise MessagingError("WhatsApp API response has no message id")
        message_id = messages[0]["id"]
        logger.info("Sent WhatsApp message %s to %s", message_id, to)
        return message_id
