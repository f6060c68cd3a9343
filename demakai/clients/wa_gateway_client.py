"""
HTTP client for the Baileys-based WhatsApp gateway.

The gateway exposes one WhatsApp session under ``/session/{id}``. This
client starts the session, waits for it to connect, sends text and typing
presence, registers our webhook and watches the connection. Polling and
reconnection are bounded and stop as soon as the shutdown event is set.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .. import config

logger = logging.getLogger(__name__)

STATUS_TIMEOUT = 5.0
START_TIMEOUT = 10.0
SEND_TIMEOUT = 10.0


class GatewayError(Exception):
    """The WhatsApp gateway could not complete a session operation."""


def to_phone_number(user_id: str) -> str:
    """Strips the WhatsApp JID suffix: '628123@s.whatsapp.net' -> '628123'."""
    return user_id.replace("@s.whatsapp.net", "")


async def _wait(stop_event: Optional[asyncio.Event], seconds: float) -> bool:
    """Sleeps up to ``seconds``; returns True when the stop event fired."""
    if stop_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


class WhatsAppGatewayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        session_id: str = config.WA_SESSION_ID,
        http_client: Optional[httpx.AsyncClient] = None,
        typing_delay: float = config.TYPING_DELAY_SECONDS,
    ):
        self.base_url = (base_url or config.WA_API_BASE_URL or "").rstrip("/")
        self.session_id = session_id
        self.typing_delay = typing_delay
        self.is_ready = False
        self._http_client = http_client

    async def _request(self, method: str, path: str, timeout: float, json: Optional[dict] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._http_client is not None:
            response = await self._http_client.request(method, url, json=json, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(method, url, json=json)
        response.raise_for_status()
        return response

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def get_session_status(self) -> Dict[str, Any]:
        try:
            response = await self._request("GET", f"/session/{self.session_id}/status", STATUS_TIMEOUT)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return {"state": "not_found"}
            raise
        return response.json()

    async def start_session(self) -> Optional[Dict[str, Any]]:
        payload = {"sessionId": self.session_id, "options": {"printQRInTerminal": True}}
        try:
            response = await self._request("POST", "/session/start", START_TIMEOUT, json=payload)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 409:
                logger.info(f"[WA] Session {self.session_id} already exists")
                return None
            raise
        logger.info("[WA] Session started. Scan the QR code to connect.")
        return response.json()

    async def wait_for_connection(
        self,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        """Polls the session status until it is open.

        Raises:
            GatewayError: The session did not open within ``timeout`` seconds,
                or the stop event was set first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        logger.info("[WA] Waiting for WhatsApp connection...")

        while loop.time() < deadline:
            try:
                status = await self.get_session_status()
                if status.get("state") == "open":
                    return True
                logger.info(f"[WA] Status: {status.get('state') or 'connecting'}...")
            except httpx.HTTPError as e:
                logger.warning(f"[WA] Error checking status: {e}")
            if await _wait(stop_event, poll_interval):
                raise GatewayError("Stopped while waiting for WhatsApp connection")

        raise GatewayError("Connection timeout - QR code not scanned")

    async def initialize(self, stop_event: Optional[asyncio.Event] = None):
        status = await self.get_session_status()
        if status.get("state") == "open":
            logger.info("[WA] WhatsApp session already active")
            self.is_ready = True
            return

        await self.start_session()
        await self.wait_for_connection(stop_event=stop_event)
        self.is_ready = True
        logger.info("[WA] WhatsApp session initialized")

    async def setup_webhook(self, webhook_url: str) -> Optional[Dict[str, Any]]:
        """Registers ``webhook_url`` for message events. Failure is logged only."""
        logger.info(f"[WA] Setting up webhook: {webhook_url}")
        try:
            response = await self._request(
                "POST",
                f"/session/{self.session_id}/webhook",
                STATUS_TIMEOUT,
                json={"url": webhook_url, "events": ["message"]},
            )
        except httpx.HTTPError as e:
            logger.warning(f"[WA] Webhook setup failed, configure it manually on the gateway: {e}")
            return None
        logger.info("[WA] Webhook configured")
        return response.json()

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, to: str, text: str) -> Dict[str, Any]:
        phone_number = to_phone_number(to)
        response = await self._request(
            "POST",
            f"/session/{self.session_id}/send-message",
            SEND_TIMEOUT,
            json={"to": phone_number, "text": text},
        )
        logger.info(f"[WA] Message sent to {phone_number}")
        return response.json()

    async def send_typing(self, to: str):
        try:
            await self._request(
                "POST",
                f"/session/{self.session_id}/send-presence",
                STATUS_TIMEOUT,
                json={"to": to_phone_number(to), "presence": "composing"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"[WA] Failed to send typing indicator: {e}")

    async def send_message_with_typing(self, to: str, text: str) -> Dict[str, Any]:
        await self.send_typing(to)
        await asyncio.sleep(self.typing_delay)
        return await self.send_message(to, text)

    # ------------------------------------------------------------------
    # Connection monitor
    # ------------------------------------------------------------------

    async def reconnect(
        self,
        max_retries: int = 5,
        base_delay: float = 5.0,
        stop_event: Optional[asyncio.Event] = None,
    ) -> bool:
        """Re-initializes the session with exponential backoff.

        Returns True once connected, False when attempts run out or the stop
        event is set.
        """
        for attempt in range(1, max_retries + 1):
            delay = base_delay * (2 ** (attempt - 1))
            logger.info(f"[WA] Reconnection attempt {attempt}/{max_retries} in {delay:.0f}s")
            if await _wait(stop_event, delay):
                return False
            try:
                await self.initialize(stop_event=stop_event)
                return True
            except (httpx.HTTPError, GatewayError) as e:
                logger.error(f"[WA] Reconnection failed: {e}")
        logger.error("[WA] Max reconnection attempts reached. Manual intervention needed.")
        return False

    async def monitor_connection(
        self,
        stop_event: asyncio.Event,
        interval: float = 30.0,
        max_retries: int = 5,
    ):
        """Checks the session every ``interval`` seconds until ``stop_event`` is set."""
        while not await _wait(stop_event, interval):
            try:
                status = await self.get_session_status()
            except httpx.HTTPError as e:
                logger.error(f"[WA] Health check failed: {e}")
                continue
            if status.get("state") != "open" and self.is_ready:
                logger.warning("[WA] WhatsApp disconnected, attempting reconnect")
                self.is_ready = False
                await self.reconnect(max_retries=max_retries, stop_event=stop_event)
