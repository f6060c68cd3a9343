"""
Tests for answer synthesis: LLM-corrected answers, history bookkeeping and
the deterministic fallbacks used when the LLM is unavailable
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from demakai import llm_client
from demakai.llm_client import LLMClient, LLMError
from demakai.models.records import EntryKind, Mode, SearchCandidate
from demakai.rag.prompts import WELCOME_MESSAGE
from demakai.rag.synthesis import (
    CODE_FALLBACK_HINT,
    CODE_NOT_FOUND,
    CONVERSATION_ERROR_MESSAGE,
    PUBLICATION_FALLBACK_HINT,
    PUBLICATION_NOT_FOUND,
    AnswerSynthesizer,
    is_greeting,
    render_code_fallback,
    render_publication_fallback,
)
from demakai.session_store import SessionStore

USER = "6281234567890@s.whatsapp.net"


def kbli(code, title, description=""):
    return SearchCandidate(code=code, title=title, description=description, kind=EntryKind.BUSINESS)


def kbji(code, title, description=""):
    return SearchCandidate(code=code, title=title, description=description, kind=EntryKind.OCCUPATION)


@pytest.fixture
def session_store(tmp_path):
    store = SessionStore(str(tmp_path / "demakai.db"))
    store.init_db()
    return store


@pytest.fixture
def llm():
    client = MagicMock()
    client.complete = AsyncMock(return_value="KBLI 82192 - Kegiatan Fotokopi")
    return client


# ---------------------------------------------------------------------------
# Fallback rendering
# ---------------------------------------------------------------------------

def test_code_fallback_sections_and_limits():
    candidates = [kbli(f"8219{i}", f"Usaha {i}", "d" * 250) for i in range(5)]
    candidates.append(kbji("4131", "Operator Mesin Fotokopi"))

    text = render_code_fallback(candidates)

    assert text.startswith("Berikut kemungkinan yang paling relevan:")
    assert "KBLI (usaha/kegiatan):" in text
    assert "KBJI (pekerjaan/okupasi):" in text
    assert "3. [82192] Usaha 2" in text
    assert "[82193]" not in text
    assert "   " + "d" * 180 + "\n" in text
    assert "d" * 181 not in text
    assert "1. [4131] Operator Mesin Fotokopi\n   -" in text
    assert text.endswith(CODE_FALLBACK_HINT)


def test_code_fallback_single_kind_has_one_section():
    text = render_code_fallback([kbli("82192", "Kegiatan Fotokopi", "Jasa fotokopi")])
    assert "KBJI" not in text
    assert "1. [82192] Kegiatan Fotokopi\n   Jasa fotokopi" in text


def test_publication_fallback_limits_and_missing_year():
    candidates = [
        SearchCandidate(title=f"Publikasi {i}", description=f"Ringkasan {i}", year="2023")
        for i in range(7)
    ]
    candidates[0] = SearchCandidate(title="Tanpa Tahun", description="")

    text = render_publication_fallback(candidates)

    assert text.startswith("📚 Publikasi terkait yang berhasil ditemukan:")
    assert "1. Tanpa Tahun (n/a)\n   -" in text
    assert "5. Publikasi 4 (2023)" in text
    assert "Publikasi 5" not in text
    assert text.endswith(PUBLICATION_FALLBACK_HINT)


def test_empty_fallbacks():
    assert render_code_fallback([]) == f"{CODE_NOT_FOUND}\n\n{CODE_FALLBACK_HINT}"
    assert render_publication_fallback([]) == f"{PUBLICATION_NOT_FOUND}\n\n{PUBLICATION_FALLBACK_HINT}"


def test_is_greeting():
    assert is_greeting("Halo kak")
    assert is_greeting("  selamat pagi")
    assert not is_greeting("berapa inflasi demak")


# ---------------------------------------------------------------------------
# synthesize
# ---------------------------------------------------------------------------

def test_synthesize_returns_llm_answer_and_records_history(session_store, llm):
    synthesizer = AnswerSynthesizer(llm, session_store)
    candidates = [kbli("82192", "Kegiatan Fotokopi", "Jasa fotokopi")]

    reply = asyncio.run(synthesizer.synthesize("usaha fotokopi", candidates, Mode.CODE_LOOKUP, USER))

    assert reply == "KBLI 82192 - Kegiatan Fotokopi"
    system_prompt, user_prompt, history = llm.complete.await_args.args
    assert "82192" in user_prompt
    assert history == []
    assert session_store.get_history(USER) == [
        {"role": "user", "content": "usaha fotokopi"},
        {"role": "assistant", "content": "KBLI 82192 - Kegiatan Fotokopi"},
    ]


def test_synthesize_sends_only_recent_history(session_store, llm):
    session_store.append_history(USER, [
        {"role": "user" if i % 2 == 0 else "assistant", "content": f"pesan {i}"} for i in range(8)
    ])
    synthesizer = AnswerSynthesizer(llm, session_store, context_window=5)

    asyncio.run(synthesizer.synthesize("warung", [], Mode.CODE_LOOKUP, USER))

    history = llm.complete.await_args.args[2]
    assert [h["content"] for h in history] == [f"pesan {i}" for i in range(3, 8)]


def test_llm_failure_falls_back_without_touching_history(session_store, llm):
    llm.complete.side_effect = LLMError("Ollama timeout: read timed out")
    synthesizer = AnswerSynthesizer(llm, session_store)
    candidates = [SearchCandidate(title="Demak Dalam Angka", description="Ringkasan", year="2023")]

    reply = asyncio.run(synthesizer.synthesize("data penduduk", candidates, Mode.PUBLICATION, USER))

    assert reply.startswith("📚 Publikasi terkait yang berhasil ditemukan:")
    assert "1. Demak Dalam Angka (2023)" in reply
    assert session_store.get_history(USER) == []


def test_llm_failure_in_code_mode_uses_code_fallback(session_store, llm):
    llm.complete.side_effect = LLMError("All Gemini API keys failed")
    synthesizer = AnswerSynthesizer(llm, session_store)

    reply = asyncio.run(synthesizer.synthesize("astronot", [], Mode.CODE_LOOKUP, USER))
    assert reply == f"{CODE_NOT_FOUND}\n\n{CODE_FALLBACK_HINT}"


# ---------------------------------------------------------------------------
# converse
# ---------------------------------------------------------------------------

def test_first_greeting_gets_welcome_without_llm(session_store, llm):
    synthesizer = AnswerSynthesizer(llm, session_store)

    assert asyncio.run(synthesizer.converse("Halo", USER)) == WELCOME_MESSAGE
    llm.complete.assert_not_called()


def test_greeting_with_history_goes_to_llm(session_store, llm):
    session_store.append_history(USER, [{"role": "user", "content": "hai"}])
    llm.complete.return_value = "Halo lagi!"
    synthesizer = AnswerSynthesizer(llm, session_store)

    assert asyncio.run(synthesizer.converse("Halo", USER)) == "Halo lagi!"
    assert len(session_store.get_history(USER)) == 3


def test_converse_failure_returns_apology(session_store, llm):
    llm.complete.side_effect = LLMError("Ollama connection refused: ECONNREFUSED")
    synthesizer = AnswerSynthesizer(llm, session_store)

    assert asyncio.run(synthesizer.converse("berapa jumlah penduduk demak?", USER)) == CONVERSATION_ERROR_MESSAGE
    assert session_store.get_history(USER) == []


# ---------------------------------------------------------------------------
# Determinism and failures outside LLMError
# ---------------------------------------------------------------------------

def test_fallbacks_are_deterministic():
    codes = [kbli("82192", "Kegiatan Fotokopi", "Jasa fotokopi"), kbji("4131", "Operator Mesin Fotokopi")]
    publications = [SearchCandidate(title="Demak Dalam Angka", description="Ringkasan", year="2023")]

    assert render_code_fallback(codes) == render_code_fallback(list(codes))
    assert render_publication_fallback(publications) == render_publication_fallback(list(publications))


def test_unexpected_llm_exception_still_falls_back(session_store, llm):
    llm.complete.side_effect = RuntimeError("socket closed")
    synthesizer = AnswerSynthesizer(llm, session_store)
    candidates = [kbli("82192", "Kegiatan Fotokopi", "Jasa fotokopi")]

    reply = asyncio.run(synthesizer.synthesize("usaha fotokopi", candidates, Mode.CODE_LOOKUP, USER))

    assert reply == render_code_fallback(candidates)
    assert session_store.get_history(USER) == []


def test_non_json_ollama_reply_falls_back_to_listing(session_store, monkeypatch):
    monkeypatch.setattr(llm_client, "OLLAMA_RETRY_DELAY_SECONDS", 0)

    def handler(request):
        if request.url.path == "/api/chat":
            return httpx.Response(200, text="<html>Bad Gateway page</html>")
        return httpx.Response(200, json={})

    client = LLMClient(
        base_url="http://localhost:11434",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    synthesizer = AnswerSynthesizer(client, session_store)
    candidates = [kbli("82192", "Kegiatan Fotokopi", "Jasa fotokopi")]

    reply = asyncio.run(synthesizer.synthesize("usaha fotokopi", candidates, Mode.CODE_LOOKUP, USER))

    assert reply.startswith("Berikut kemungkinan yang paling relevan:")
    assert "1. [82192] Kegiatan Fotokopi" in reply


def test_converse_survives_unexpected_exception(session_store, llm):
    llm.complete.side_effect = ValueError("bad payload")
    synthesizer = AnswerSynthesizer(llm, session_store)

    assert asyncio.run(synthesizer.converse("berapa inflasi?", USER)) == CONVERSATION_ERROR_MESSAGE
