"""
Tests for the embedding service: mode gating, caching, retry policy and
batch embedding against a mocked Ollama endpoint
"""
import asyncio

import httpx
import pytest

from demakai.models.records import Mode
from demakai.rag.embedder import EmbeddingError, EmbeddingService, cache_key, normalize_text


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_service(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    defaults = dict(
        base_url="http://ollama.test",
        model="bge-m3",
        dimension=4,
        max_retries=3,
        retry_base_delay=0,
        http_client=client,
    )
    defaults.update(kwargs)
    return EmbeddingService(**defaults)


def embedding_ok(calls):
    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3, 0.4]})
    return handler


def test_normalize_and_cache_key():
    assert normalize_text("  Data   KEMISKINAN\n2023 ") == "data kemiskinan 2023"
    assert len(normalize_text("x" * 5000)) == 2000
    assert len(cache_key("data")) == 16


def test_repeated_text_hits_the_network_once():
    calls = []
    service = make_service(embedding_ok(calls))

    first = asyncio.run(service.embed("data kemiskinan 2023", mode=Mode.PUBLICATION))
    second = asyncio.run(service.embed("Data  Kemiskinan 2023", mode=Mode.PUBLICATION))

    assert first == second == [0.1, 0.2, 0.3, 0.4]
    assert len(calls) == 1
    assert calls[0].url.path == "/api/embeddings"
    assert service.cache_stats()["size"] == 1


def test_code_lookup_mode_never_embeds():
    calls = []
    service = make_service(embedding_ok(calls))
    assert asyncio.run(service.embed("usaha fotokopi", mode=Mode.CODE_LOOKUP)) is None
    assert calls == []


def test_empty_text_returns_zero_vector():
    calls = []
    service = make_service(embedding_ok(calls))
    assert asyncio.run(service.embed("   ")) == [0.0, 0.0, 0.0, 0.0]
    assert calls == []


def test_bad_request_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, json={"error": "model not found"})

    service = make_service(handler)
    with pytest.raises(EmbeddingError) as excinfo:
        asyncio.run(service.embed("data"))
    assert excinfo.value.status_code == 404
    assert len(calls) == 1


def test_server_error_is_retried_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(500, json={"error": "busy"})
        return httpx.Response(200, json={"embedding": [1.0, 0.0, 0.0, 0.0]})

    service = make_service(handler)
    assert asyncio.run(service.embed("inflasi")) == [1.0, 0.0, 0.0, 0.0]
    assert len(calls) == 2


def test_exhausted_retries_raise_embedding_error():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("Connection refused", request=request)

    service = make_service(handler)
    with pytest.raises(EmbeddingError):
        asyncio.run(service.embed("inflasi"))
    assert len(calls) == 3
    assert service.cache_stats()["size"] == 0


def test_missing_embedding_field_is_an_error():
    service = make_service(lambda request: httpx.Response(200, json={}), max_retries=1)
    with pytest.raises(EmbeddingError):
        asyncio.run(service.embed("inflasi"))


def test_cache_entries_expire_and_evict_fifo():
    calls = []
    clock = FakeClock()
    service = make_service(embedding_ok(calls), cache_max_size=2, cache_ttl=100, clock=clock)

    asyncio.run(service.embed("satu"))
    asyncio.run(service.embed("dua"))
    asyncio.run(service.embed("tiga"))   # evicts "satu"
    assert service.cache_stats()["size"] == 2
    asyncio.run(service.embed("satu"))
    assert len(calls) == 4

    clock.now += 101
    asyncio.run(service.embed("satu"))
    assert len(calls) == 5

    service.clear_cache()
    assert service.cache_stats()["size"] == 0


def test_embed_batch_marks_failures_as_none():
    progress = []

    def handler(request):
        if b"rusak" in request.content:
            return httpx.Response(400, json={"error": "bad input"})
        return httpx.Response(200, json={"embedding": [0.5, 0.5, 0.5, 0.5]})

    service = make_service(handler)
    results = asyncio.run(service.embed_batch(
        ["pdrb", "rusak", "inflasi"],
        batch_size=2,
        delay_between_batches=0,
        on_progress=lambda done, total: progress.append((done, total)),
    ))

    assert results == [[0.5, 0.5, 0.5, 0.5], None, [0.5, 0.5, 0.5, 0.5]]
    assert sorted(progress) == [(1, 3), (2, 3), (3, 3)]


def test_health_check_reports_loaded_models():
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "bge-m3:latest"}]})

    service = make_service(handler, llm_model="llama3.1:8b")
    health = asyncio.run(service.health_check())
    assert health["available"] is True
    assert health["embedding_model_loaded"] is True
    assert health["llm_model_loaded"] is False


def test_health_check_when_server_is_down():
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    health = asyncio.run(make_service(handler).health_check())
    assert health["available"] is False
    assert health["status"] == "unhealthy"
