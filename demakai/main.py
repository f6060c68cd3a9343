# Entry point for the FastAPI app
from fastapi import FastAPI, Request, BackgroundTasks
from fastapi.responses import JSONResponse
import asyncio
import logging

from . import config
from .adapters.gateway_adapter import InvalidPayloadError, WhatsAppGatewayAdapter
from .classification_store import ClassificationStore
from .clients.wa_gateway_client import GatewayError, WhatsAppGatewayClient
from .document_store import DocumentStore
from .handlers import MessageHandler
from .llm_client import LLMClient
from .message_processor import MessageProcessor
from .rag.embedder import EmbeddingService
from .rag.retriever import RetrievalEngine
from .rag.synthesis import AnswerSynthesizer
from .rate_limiter import RateLimiter
from .session_store import SessionStore

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="DemakAI")

CLEANUP_INTERVAL_SECONDS = 60 * 60

default_message = {
    "name": "DemakAI WhatsApp Bot",
    "status": "running",
    "endpoints": {"webhook": "POST /webhook", "health": "GET /health"},
}


def build_processor(db_path: str = None) -> MessageProcessor:
    """Wires stores, RAG services, handler and gateway into one processor."""
    session_store = SessionStore(db_path)
    classification_store = ClassificationStore(db_path)
    document_store = DocumentStore(db_path)
    for store in (session_store, classification_store, document_store):
        store.init_db()

    embedder = EmbeddingService()
    llm_client = LLMClient()
    gateway = WhatsAppGatewayClient()
    adapter = WhatsAppGatewayAdapter(gateway)

    handler = MessageHandler(
        session_store=session_store,
        retriever=RetrievalEngine(classification_store, document_store, embedder),
        synthesizer=AnswerSynthesizer(llm_client, session_store),
        embedder=embedder,
        notifier=adapter.send_outgoing,
    )
    return MessageProcessor(handler, session_store, adapter, RateLimiter())


async def periodic_session_cleanup(session_store: SessionStore, stop_event: asyncio.Event):
    """Prunes stale sessions and histories every hour until shutdown."""
    while True:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=CLEANUP_INTERVAL_SECONDS)
            return
        except asyncio.TimeoutError:
            pass
        try:
            session_store.cleanup_old_sessions(config.SESSION_RETENTION_DAYS)
            session_store.cleanup_old_histories(config.HISTORY_RETENTION_HOURS)
        except Exception as e:
            logger.exception(f"[CLEANUP] Error in periodic cleanup: {e}")


async def connect_gateway(gateway: WhatsAppGatewayClient, stop_event: asyncio.Event):
    """Brings the WhatsApp session up, registers the webhook, then watches it."""
    try:
        await gateway.initialize(stop_event=stop_event)
        await gateway.setup_webhook(config.WEBHOOK_URL)
    except (httpx.HTTPError, GatewayError) as e:
        logger.error(f"[WA] Failed to initialize WhatsApp: {e}")
    await gateway.monitor_connection(stop_event)


@app.on_event("startup")
async def startup_event():
    if not hasattr(app.state, "processor"):
        app.state.processor = build_processor()
    processor = app.state.processor

    app.state.stop_event = asyncio.Event()
    app.state.background_tasks = [
        asyncio.create_task(periodic_session_cleanup(processor.session_store, app.state.stop_event)),
    ]
    if config.WA_API_BASE_URL:
        app.state.background_tasks.append(
            asyncio.create_task(connect_gateway(processor.adapter.client, app.state.stop_event))
        )
    else:
        logger.warning("[STARTUP] WA_API_BASE_URL not set, WhatsApp gateway disabled")
    logger.info("[STARTUP] Initialization complete")


@app.on_event("shutdown")
async def shutdown_event():
    app.state.stop_event.set()
    for task in app.state.background_tasks:
        task.cancel()
    await asyncio.gather(*app.state.background_tasks, return_exceptions=True)
    logger.info("[SHUTDOWN] Background tasks stopped")


@app.get("/")
def root():
    return default_message


@app.get("/health")
async def health():
    processor: MessageProcessor = app.state.processor
    return {
        "status": "ok",
        "whatsapp_ready": processor.adapter.client.is_ready,
        "llm_provider": processor.handler.synthesizer.llm_client.provider,
        "embedding_cache": processor.handler.embedder.cache_stats(),
    }


@app.post("/webhook")
async def webhook(request: Request, background_tasks: BackgroundTasks):
    """WhatsApp gateway webhook.

    - Validates and normalizes the event
    - Ignores non-message events and the bot's own messages
    - Acknowledges immediately and processes the message in the background
    """
    processor: MessageProcessor = app.state.processor
    try:
        data = await request.json()
    except ValueError:
        logger.warning("[WEBHOOK] Could not parse request body as JSON")
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    try:
        message = processor.adapter.parse_incoming(data)
    except InvalidPayloadError as e:
        logger.warning(f"[WEBHOOK] {e}")
        return JSONResponse(status_code=400, content={"error": str(e)})

    if message is None:
        return {"status": "ignored"}
    if message.from_me:
        return {"status": "ignored_own_message"}

    background_tasks.add_task(processor.process, message)
    return {"status": "received"}
