"""
Inbound message processing.

Runs one normalized WhatsApp message through the bot: filtering, rate
limiting, session bookkeeping, the mode-aware handler and the outbound
send. Called from the webhook as a background task, so every failure is
logged here and answered with an apology when sending is still possible.
"""
import logging

import httpx

from . import config, lexicon
from .adapters.gateway_adapter import WhatsAppGatewayAdapter
from .handlers import MessageHandler
from .models.unified_message import MessageType, UnifiedMessage
from .rate_limiter import RATE_LIMIT_REPLY, RateLimiter
from .session_store import SessionStore
from .utils.message_splitter import needs_splitting, split_message

logger = logging.getLogger(__name__)

MEDIA_NOT_SUPPORTED_REPLY = "Maaf, saat ini saya hanya bisa memproses pesan teks."
PROCESSING_ERROR_REPLY = "😅 Maaf, ada kendala teknis. Coba lagi dalam beberapa saat ya!"


class MessageProcessor:
    def __init__(
        self,
        handler: MessageHandler,
        session_store: SessionStore,
        adapter: WhatsAppGatewayAdapter,
        rate_limiter: RateLimiter,
        max_message_length: int = config.MAX_MESSAGE_LENGTH,    ):
        self.handler = handler
        self.session_store = session_store
        self.adapter = adapter
        self.rate_limiter = rate_limiter
        self.max_message_length = max_message_length

    def should_ignore(self, message: UnifiedMessage) -> bool:
        if message.from_me:
            return True
        if message.is_group:
            logger.info(f"[WEBHOOK] Group message ignored: {message.user_id}")
            return True
        if message.user_id in lexicon.BOT_BLACKLIST:
            logger.info(f"[WEBHOOK] Message from blacklisted bot ignored: {message.user_id}")
            return True
        return False

    async def process(self, message: UnifiedMessage):
        user_id = message.user_id
        if self.should_ignore(message):
            return

        try:
            if message.message_type is not MessageType.TEXT:
                logger.info(f"[WEBHOOK] {message.message_type.value} message from {user_id} (not supported)")
                await self.adapter.client.send_message(user_id, MEDIA_NOT_SUPPORTED_REPLY)
                return

            logger.info(f"[WEBHOOK] Message from {user_id}: {message.content[:100]}")

            if not self.rate_limiter.allow(user_id):
                await self.adapter.client.send_message(user_id, RATE_LIMIT_REPLY)
                return

            self.session_store.upsert_session(
                user_id, phone_number=message.phone_number, last_message=message.content
            )
            await self.adapter.client.send_typing(user_id)

            response = await self.handler.handle_message(user_id, message.content)
            await self.send_reply(user_id, response)

            self.session_store.increment_message_count(user_id)
            logger.info(f"[WEBHOOK] Response sent to {user_id}")

        except Exception as e:
            logger.exception(f"[WEBHOOK] Error processing message from {user_id}: {e}")
            try:
                await self.adapter.client.send_message(user_id, PROCESSING_ERROR_REPLY)
            except httpx.HTTPError as send_error:
                logger.error(f"[WEBHOOK] Failed to send error message to {user_id}: {send_error}")

    async def send_reply(self, user_id: str, response: str):
        """Sends the reply, split into parts, each preceded by typing presence."""
        if not needs_splitting(response, self.max_message_length):
            await self.adapter.client.send_message_with_typing(user_id, response)
            return

        chunks = split_message(response, self.max_message_length)
        logger.info(f"[WEBHOOK] Splitting reply to {user_id} into {len(chunks)} parts")
        for chunk in chunks:
            await self.adapter.client.send_message_with_typing(user_id, chunk)

