"""
Message handler: the per-user mode state machine.

Routes one inbound text to natural conversation, KBLI/KBJI lookup or
publication lookup, based on hash triggers (#kbli, #kbji, #publikasi),
slash commands and the mode stored in the user's session.
"""

import logging
import re
from typing import Awaitable, Callable, Optional

from . import lexicon
from .classification_store import ClassificationStore
from .document_store import DocumentStore
from .models.records import EntryKind, Mode
from .rag.embedder import EmbeddingService
from .rag.retriever import RetrievalEngine
from .rag.synthesis import AnswerSynthesizer
from .session_store import SessionStore

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], Awaitable[None]]

TRIGGER_PATTERN = re.compile(r"^#(kbli|kbji|publikasi)\s*(.*)", re.IGNORECASE | re.DOTALL)
TRIGGER_MODES = {
    "kbli": Mode.CODE_LOOKUP,
    "kbji": Mode.CODE_LOOKUP,
    "publikasi": Mode.PUBLICATION,
}

EMPTY_MESSAGE_REPLY = "Maaf, saya tidak menerima pesan kosong."
IDLE_RESET_NOTICE = (
    "✨ Karena sudah 15 menit berlalu, kita kembali ke mode natural ya!!, "
    "silakan tanya apa saja.. 😊"
)
TIMEOUT_APOLOGY = "⏱️ Sistem sedang lambat. Coba lagi dalam beberapa saat."
CONNECTION_APOLOGY = "🔌 Tidak bisa terhubung ke server. Hubungi admin."
GENERIC_APOLOGY = "😅 Ada kendala teknis. Coba lagi atau hubungi admin."

NATURAL_BANNER = (
    f"{lexicon.MODE_INDICATORS[Mode.NATURAL.value]} Mode Natural aktif!\n\n"
    "Kamu bisa ngobrol santai dengan saya atau gunakan:\n"
    "• #kbli atau #kbji untuk mencari kode KBLI/KBJI\n"
    "• #publikasi untuk mencari data/publikasi"
)

NATURAL_FOOTER = (
    "───────────────\n"
    "Saya DemakAI 🤖, asisten statistik Kabupaten Demak.\n"
    "Ketik:\n"
    "• #kbli / #kbji → cari klasifikasi usaha/jabatan\n"
    "• #publikasi → cari data & publikasi\n"
    "/home → kembali ke mode awal"
)

FOOTERS = {
    Mode.NATURAL: NATURAL_FOOTER,
    Mode.CODE_LOOKUP: "───────────────\nKetik\n/home untuk mode natural\n/help untuk bantuan\n#publikasi untuk publikasi",
    Mode.PUBLICATION: "───────────────\nKetik\n/home untuk mode natural\n/help untuk bantuan\n#kbli untuk KBLI/KBJI",
}

HELP_MESSAGE = """📋 **DemakAI - Panduan Penggunaan**

**Mode System:**
• #kbli atau #kbji - Cari kode KBLI/KBJI
• #publikasi - Cari data/publikasi
• /home - Kembali ke mode natural

**Commands:**
• /help - Panduan ini
• /clear - Hapus riwayat percakapan
• /stats - Statistik sistem
• /health - Status server

**Contoh:**
#kbli usaha warung makan
#publikasi data kemiskinan 2023
/home"""


def format_reply(answer: str, mode: Mode) -> str:
    """Prefixes the mode glyph and appends the mode footer."""
    glyph = lexicon.MODE_INDICATORS.get(mode.value, lexicon.MODE_INDICATORS[Mode.NATURAL.value])
    return f"{glyph} {answer}\n\n{FOOTERS[mode]}"


def activation_message(mode: Mode) -> str:
    glyph = lexicon.MODE_INDICATORS[mode.value]
    if mode is Mode.CODE_LOOKUP:
        body = (
            "Mode KBLI/KBJI aktif!\n\n"
            "Sekarang kirim query dengan format:\n"
            "#kbli [pertanyaan] atau #kbji [pertanyaan]\n\n"
            "Contoh:\n#kbli usaha warung makan\n#kbji kerja sebagai programmer\n\n"
            "Setelah dapat hasil, kamu bisa lanjut ngobrol natural untuk pertanyaan lanjutan."
        )
    else:
        body = (
            "Mode Publikasi aktif!\n\n"
            "Kirim pertanyaan diawali # untuk mencari di database publikasi.\n\n"
            "Contoh:\n#data kemiskinan 2023\n#apa saja publikasi yang tersedia"
        )
    return f"{glyph} {body}\n\n{FOOTERS[mode]}"


def error_reply(error: Exception) -> str:
    """Maps an unexpected error to a user-facing apology."""
    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return TIMEOUT_APOLOGY
    if "econnrefused" in message or "connection refused" in message:
        return CONNECTION_APOLOGY
    return GENERIC_APOLOGY


class MessageHandler:
    """Turns one inbound text into one reply, updating the session.

    Args:
        session_store: Per-user mode and history.
        retriever: KBLI/KBJI and publication search.
        synthesizer: LLM answer layer with deterministic fallback.
        embedder: Used for /stats and /health.
        notifier: Optional coroutine ``(user_id, text)`` used for the
            idle auto-reset notice. Failures are logged and ignored.
    """

    def __init__(
        self,
        session_store: SessionStore,
        retriever: RetrievalEngine,
        synthesizer: AnswerSynthesizer,
        embedder: EmbeddingService,
        notifier: Optional[Notifier] = None,
    ):
        self.session_store = session_store
        self.retriever = retriever
        self.synthesizer = synthesizer
        self.embedder = embedder
        self.notifier = notifier

    @property
    def classification_store(self) -> ClassificationStore:
        return self.retriever.classification_store

    @property
    def document_store(self) -> DocumentStore:
        return self.retriever.document_store

    async def handle_message(self, user_id: str, text) -> str:
        if not isinstance(text, str) or not text.strip():
            return EMPTY_MESSAGE_REPLY

        trimmed = text.strip()
        try:
            if trimmed.lower() == "/home":
                self.session_store.reset_mode(user_id)
                return NATURAL_BANNER

            if trimmed.startswith("/"):
                return await self.handle_command(trimmed, user_id)

            match = TRIGGER_PATTERN.match(trimmed)
            if match:
                mode = TRIGGER_MODES[match.group(1).lower()]
                query = match.group(2).strip()
                if not query:
                    self.session_store.set_mode(user_id, mode, None)
                    return activation_message(mode)

                self.session_store.set_mode(user_id, mode, query)
                logger.info(f"[HANDLER] Mode switched to {mode.value} for {user_id}")
                answer = await self.answer(query, mode, user_id)
                return format_reply(answer, mode)

            session = self.session_store.get_session(user_id)
            current_mode = session.current_mode if session else Mode.NATURAL
            logger.info(f"[HANDLER] {user_id} in {current_mode.value}: {trimmed[:80]}")

            if session is not None and session.auto_reset:
                await self._notify(user_id, IDLE_RESET_NOTICE)

            if current_mode is Mode.NATURAL:
                answer = await self.synthesizer.converse(trimmed, user_id)
                return format_reply(answer, Mode.NATURAL)

            if trimmed.startswith("#"):
                query = trimmed.lstrip("#").strip()
                if not query:
                    self.session_store.set_mode(user_id, current_mode, None)
                    return activation_message(current_mode)
                answer = await self.answer(query, current_mode, user_id)
                self.session_store.set_mode(user_id, current_mode, trimmed)
                return format_reply(answer, current_mode)

            answer = await self.synthesizer.converse(trimmed, user_id)
            self.session_store.set_mode(user_id, current_mode, session.last_query)
            return format_reply(answer, current_mode)

        except Exception as e:
            logger.exception(f"[HANDLER] Error handling message from {user_id}: {e}")
            return error_reply(e)

    async def answer(self, query: str, mode: Mode, user_id: str) -> str:
        """Runs retrieval and synthesis for a lookup query."""
        if mode is Mode.CODE_LOOKUP:
            candidates = self.retriever.search_codes(query)
            return await self.synthesizer.synthesize(query, candidates, mode, user_id)

        if mode is Mode.PUBLICATION:
            if self.retriever.is_listing_query(query):
                logger.info("[HANDLER] Listing query, returning catalog")
                return self.retriever.render_catalog()
            candidates = await self.retriever.search_publications(query)
            return await self.synthesizer.synthesize(query, candidates, mode, user_id)

        return await self.synthesizer.converse(query, user_id)

    async def _notify(self, user_id: str, text: str):
        if self.notifier is None:
            return
        try:
            await self.notifier(user_id, text)
        except Exception as e:
            logger.warning(f"[HANDLER] Could not deliver notice to {user_id}: {e}")

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    async def handle_command(self, command: str, user_id: str) -> str:
        cmd = command.split()[0].lower()

        if cmd == "/help":
            return HELP_MESSAGE

        if cmd == "/clear":
            self.session_store.clear_history(user_id)
            return "✅ Riwayat percakapan sudah dihapus."

        if cmd == "/stats":
            return self._render_stats()

        if cmd == "/health":
            return await self._render_health()

        return f"❌ Perintah tidak dikenali: {cmd}\nKetik /help untuk bantuan."

    def _render_stats(self) -> str:
        sessions = self.session_store.get_stats()
        cache = self.embedder.cache_stats()
        return (
            "📊 **Statistik Sistem**\n\n"
            "**Database:**\n"
            f"• KBLI: {self.classification_store.count(EntryKind.BUSINESS):,}\n"
            f"• KBJI: {self.classification_store.count(EntryKind.OCCUPATION):,}\n"
            f"• Publikasi: {self.document_store.count()}\n"
            f"• Users: {sessions['sessions']}\n\n"
            "**Activity:**\n"
            f"• Active (24h): {sessions['active_users_24h']}\n"
            f"• Total Messages: {sessions['total_messages']:,}\n\n"
            "**Cache:**\n"
            f"• Embeddings: {cache['size']}/{cache['max_size']} ({cache['usage']})"
        )

    async def _render_health(self) -> str:
        health = await self.embedder.health_check()
        available = health.get("available", False)
        lines = [
            "🏥 **System Health**",
            "",
            "**Ollama:**",
            f"{'✅ Online' if available else '❌ Offline'}",
            "",
            "**Models:**",
            f"• Embedding: {'✅' if health.get('embedding_model_loaded') else '⚠️'} {self.embedder.model}",
            f"• LLM: {'✅' if health.get('llm_model_loaded') else '⚠️'} {self.synthesizer.llm_client.model}",
            f"• Provider: {self.synthesizer.llm_client.provider}",
        ]
        if not available:
            lines += ["", "⚠️ Perlu check koneksi ke Ollama!"]
        return "\n".join(lines)
