"""Outbound messaging: protocol and WhatsApp Cloud API backend."""

from replygate.config import Settings
from replygate.messaging.base import MessagingProvider
from replygate.messaging.whatsapp import WhatsAppCloudProvider


def get_messenger(settings: Settings) -> MessagingProvider | None:
    """WhatsApp Cloud sender when credentials are configured, else None."""
    if not settings.whatsapp_access_token or not settings.whatsapp_phone_number_id:
        return None
    return WhatsAppCloudProvider(
        access_token=settings.whatsapp_access_token,
        phone_number_id=settings.whatsapp_phone_number_id,
        api_base=settings.whatsapp_api_base,
    )


__all__ = ["MessagingProvider", "WhatsAppCloudProvider", "get_messenger"]
