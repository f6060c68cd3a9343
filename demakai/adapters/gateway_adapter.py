"""WhatsApp gateway channel adapter.

Maps gateway webhook events to `UnifiedMessage` and sends replies through
`WhatsAppGatewayClient`. Gateway builds disagree on field names, so the
message body may sit under ``message`` or ``data``, the sender under
``from`` or ``remoteJid`` and the text under ``text``, ``body`` or
``conversation``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from demakai.adapters.base_channel_adapter import ChannelAdapter
from demakai.clients.wa_gateway_client import WhatsAppGatewayClient
from demakai.models.unified_message import MessageType, UnifiedMessage

logger = logging.getLogger(__name__)

_MEDIA_TYPES = {
    "image": MessageType.IMAGE,
    "imagemessage": MessageType.IMAGE,
    "audio": MessageType.AUDIO,
    "ptt": MessageType.AUDIO,
    "audiomessage": MessageType.AUDIO,
    "document": MessageType.DOCUMENT,
    "documentmessage": MessageType.DOCUMENT,
    "video": MessageType.VIDEO,
    "videomessage": MessageType.VIDEO,
    "sticker": MessageType.STICKER,
    "stickermessage": MessageType.STICKER,
}


class InvalidPayloadError(ValueError):
    """The webhook body is not a gateway event at all."""


class WhatsAppGatewayAdapter(ChannelAdapter):
    """Adapter for WhatsApp via the Baileys HTTP gateway."""

    def __init__(self, client: WhatsAppGatewayClient):
        self.client = client

    def can_handle(self, raw: Dict[str, Any]) -> bool:
        return isinstance(raw, dict) and bool(raw.get("type"))

    def parse_incoming(self, raw: Dict[str, Any]) -> Optional[UnifiedMessage]:
        """Normalizes one webhook event.

        Returns None for non-message events.

        Raises:
            InvalidPayloadError: The event has no type, no message body, or
                a message without sender or content.
        """
        if not self.can_handle(raw):
            raise InvalidPayloadError("Invalid payload")
        if raw["type"] != "message":
            return None

        message = raw.get("message") or raw.get("data")
        if not isinstance(message, dict):
            raise InvalidPayloadError("No message data")

        user_id = message.get("from") or message.get("remoteJid") or ""
        text = message.get("text") or message.get("body") or message.get("conversation") or ""
        if not isinstance(text, str):
            text = ""

        media_type = _MEDIA_TYPES.get(str(message.get("type") or "").lower())
        if media_type is None and message.get("hasMedia"):
            media_type = MessageType.DOCUMENT

        if not user_id or (not text.strip() and media_type is None):
            raise InvalidPayloadError("Missing from/text")

        return UnifiedMessage(
            channel="whatsapp",
            user_id=str(user_id),
            message_type=media_type or MessageType.TEXT,
            content=text.strip(),
            from_me=bool(message.get("fromMe")),
            is_group=str(user_id).endswith("@g.us"),
            metadata={"id": message.get("id"), "timestamp": message.get("timestamp")},
        )

    async def send_outgoing(self, user_id: str, message: str) -> bool:
        try:
            await self.client.send_message(user_id, message)
            return True
        except httpx.HTTPError as e:
            logger.error(f"[WA] Failed to send message to {user_id}: {e}")
            return False
