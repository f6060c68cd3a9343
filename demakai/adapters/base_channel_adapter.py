"""Abstract base interface for channel adapters.

Adapters normalize provider-specific payloads to the unified message model
and provide a uniform API for sending responses back through that channel.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from demakai.models.unified_message import UnifiedMessage


class ChannelAdapter(ABC):
    """Base adapter contract for all channels."""

    @abstractmethod
    def parse_incoming(self, raw: Dict[str, Any]) -> Optional[UnifiedMessage]:
        """Parse a channel-specific webhook payload into a `UnifiedMessage`.

        Return None for payloads that are not actionable (e.g. status events).
        """
        raise NotImplementedError

    @abstractmethod
    async def send_outgoing(self, user_id: str, message: str) -> bool:
        """Send a text back to the user via the channel.

        Returns:
            True if accepted by the channel, False otherwise.
        """
        raise NotImplementedError

    @abstractmethod
    def can_handle(self, raw: Dict[str, Any]) -> bool:
        """Quick predicate to check if this adapter can handle the payload."""
        raise NotImplementedError
