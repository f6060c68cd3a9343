"""Unified inbound message model.

Gateway payloads arrive in several shapes (``text``, ``body`` or
``conversation`` fields, ``from`` or ``remoteJid`` senders). Adapters map
them once into `UnifiedMessage` so the core pipeline only sees one type.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class MessageType(Enum):
    """Supported message types from the WhatsApp gateway."""
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    DOCUMENT = "document"
    VIDEO = "video"
    STICKER = "sticker"


@dataclass
class UnifiedMessage:
    """Normalized message container used by the core pipeline.

    Attributes:
        channel: Logical channel identifier (always 'whatsapp' for now).
        user_id: WhatsApp JID of the sender (e.g. '62812...@s.whatsapp.net').
        message_type: One of MessageType values describing the content.
        content: Text content (empty string for pure media messages).
        from_me: True when the gateway echoes a message sent by the bot itself.
        is_group: True for group chats ('@g.us' JIDs).
        metadata: Raw gateway fields preserved for logging.
    """
    channel: str
    user_id: str
    message_type: MessageType
    content: str
    from_me: bool = False
    is_group: bool = False
    metadata: Optional[Dict[str, Any]] = None

    @property
    def phone_number(self) -> str:
        return self.user_id.split("@", 1)[0]
