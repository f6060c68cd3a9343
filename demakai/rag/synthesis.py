"""
Answer synthesis: turns retrieval candidates into the reply text.

The LLM acts as a correction layer over raw search hits. When it cannot be
reached, a deterministic renderer builds the answer straight from the
candidates so the user always receives something usable.
"""

import logging
from typing import List

from .. import lexicon
from ..llm_client import LLMClient
from ..models.records import EntryKind, Mode, SearchCandidate
from ..session_store import SessionStore
from .prompts import NATURAL_SYSTEM_PROMPT, WELCOME_MESSAGE, build_system_prompt, build_user_prompt

logger = logging.getLogger(__name__)

CODE_FALLBACK_HINT = "💡 Gunakan kata kunci lain bila hasil kurang sesuai."
PUBLICATION_FALLBACK_HINT = "💡 Jika data belum muncul lengkap, coba kata kunci lain."
CODE_NOT_FOUND = "Maaf, kode KBLI/KBJI yang sesuai belum ditemukan."
PUBLICATION_NOT_FOUND = "Maaf, publikasi yang sesuai belum ditemukan."
CONVERSATION_ERROR_MESSAGE = "Maaf, ada kendala teknis. Coba lagi ya!"

_CODE_SECTION_TITLES = {
    EntryKind.BUSINESS: "KBLI (usaha/kegiatan):",
    EntryKind.OCCUPATION: "KBJI (pekerjaan/okupasi):",
}


def render_code_fallback(candidates: List[SearchCandidate]) -> str:
    """Two-section KBLI/KBJI listing, at most three entries per kind."""
    if not candidates:
        return f"{CODE_NOT_FOUND}\n\n{CODE_FALLBACK_HINT}"

    out = "Berikut kemungkinan yang paling relevan:\n\n"
    for kind, section_title in _CODE_SECTION_TITLES.items():
        entries = [c for c in candidates if c.kind is kind][:lexicon.PROMPT_MAX_PER_KIND]
        if not entries:
            continue
        out += section_title + "\n"
        for i, c in enumerate(entries, 1):
            description = c.description[:lexicon.FALLBACK_DESCRIPTION_CHARS] or "-"
            out += f"{i}. [{c.code}] {c.title}\n   {description}\n\n"
    out += CODE_FALLBACK_HINT
    return out.strip()


def render_publication_fallback(candidates: List[SearchCandidate]) -> str:
    """Numbered publication listing, at most five entries."""
    if not candidates:
        return f"{PUBLICATION_NOT_FOUND}\n\n{PUBLICATION_FALLBACK_HINT}"

    out = "📚 Publikasi terkait yang berhasil ditemukan:\n\n"
    for i, c in enumerate(candidates[:lexicon.PROMPT_MAX_PUBLICATIONS], 1):
        description = c.description[:lexicon.DESCRIPTION_MAX_CHARS] or "-"
        out += f"{i}. {c.title} ({c.year or 'n/a'})\n   {description}\n\n"
    out += PUBLICATION_FALLBACK_HINT
    return out.strip()


def is_greeting(text: str) -> bool:
    stripped = text.strip().lower()
    return any(pattern.search(stripped) for pattern in lexicon.GREETING_PATTERNS)


class AnswerSynthesizer:
    """Builds replies with the LLM and keeps the conversation history.

    Args:
        llm_client: Chat completion client.
        session_store: Source and sink of the conversation history.
        context_window: History turns sent with each prompt.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        session_store: SessionStore,
        context_window: int = lexicon.CONTEXT_WINDOW,
    ):
        self.llm_client = llm_client
        self.session_store = session_store
        self.context_window = context_window

    async def synthesize(
        self, query: str, candidates: List[SearchCandidate], mode: Mode, user_id: str
    ) -> str:
        """LLM-corrected answer for a lookup, or the deterministic fallback.

        History is only written when the LLM call succeeds.
        """
        system_prompt = build_system_prompt(mode)
        user_prompt = build_user_prompt(query, candidates, mode)
        try:
            history = self.session_store.get_history(user_id, limit=self.context_window)
            reply = await self.llm_client.complete(system_prompt, user_prompt, history)
            self.session_store.append_history(user_id, [
                {"role": "user", "content": query},
                {"role": "assistant", "content": reply},
            ])
        except Exception as e:
            logger.warning(f"[SYNTHESIS] LLM failed, falling back to direct rendering: {type(e).__name__}: {e}")
            if mode is Mode.PUBLICATION:
                return render_publication_fallback(candidates)
            return render_code_fallback(candidates)

        logger.info(f"[SYNTHESIS] {mode.value} answer for {user_id} ({len(candidates)} candidates)")
        return reply

    async def converse(self, message: str, user_id: str) -> str:
        """Free-form conversation in natural mode."""
        try:
            history = self.session_store.get_history(user_id, limit=self.context_window)
            if not history and is_greeting(message):
                logger.info(f"[SYNTHESIS] First greeting from {user_id}, sending welcome message")
                return WELCOME_MESSAGE

            reply = await self.llm_client.complete(NATURAL_SYSTEM_PROMPT, message, history)
            self.session_store.append_history(user_id, [
                {"role": "user", "content": message},
                {"role": "assistant", "content": reply},
            ])
            return reply
        except Exception as e:
            logger.error(f"[SYNTHESIS] Natural conversation failed for {user_id}: {e}")
            return CONVERSATION_ERROR_MESSAGE
