"""
Tests for the FastAPI surface: webhook validation and normalization, the
background hand-off to the processor, and the status endpoints
"""
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from demakai import config
from demakai.adapters.gateway_adapter import WhatsAppGatewayAdapter
from demakai.main import app
from demakai.models.unified_message import MessageType

USER = "6281234567890@s.whatsapp.net"


@pytest.fixture
def processed():
    return []


@pytest.fixture
def client(monkeypatch, processed):
    monkeypatch.setattr(config, "WA_API_BASE_URL", None)

    gateway = MagicMock()
    gateway.is_ready = False

    async def fake_process(message):
        processed.append(message)

    processor = MagicMock()
    processor.adapter = WhatsAppGatewayAdapter(gateway)
    processor.process = fake_process
    processor.handler.synthesizer.llm_client.provider = "ollama"
    processor.handler.embedder.cache_stats.return_value = {"size": 0, "max_size": 1000, "usage": "0.0%"}

    app.state.processor = processor
    with TestClient(app) as test_client:
        yield test_client
    del app.state.processor


def test_root(client):
    body = client.get("/").json()
    assert body["status"] == "running"
    assert body["endpoints"]["webhook"] == "POST /webhook"


def test_health(client):
    body = client.get("/health").json()
    assert body == {
        "status": "ok",
        "whatsapp_ready": False,
        "llm_provider": "ollama",
        "embedding_cache": {"size": 0, "max_size": 1000, "usage": "0.0%"},
    }


def test_text_message_is_accepted_and_processed(client, processed):
    response = client.post("/webhook", json={
        "type": "message",
        "message": {"from": USER, "text": "  #kbli usaha fotokopi ", "id": "ABC", "timestamp": 1714550400},
    })

    assert response.status_code == 200
    assert response.json() == {"status": "received"}
    assert len(processed) == 1
    message = processed[0]
    assert message.user_id == USER
    assert message.content == "#kbli usaha fotokopi"
    assert message.message_type is MessageType.TEXT
    assert message.phone_number == "6281234567890"
    assert message.metadata["id"] == "ABC"


def test_alternate_field_names_are_normalized(client, processed):
    response = client.post("/webhook", json={
        "type": "message",
        "data": {"remoteJid": USER, "conversation": "halo"},
    })

    assert response.json() == {"status": "received"}
    assert processed[0].user_id == USER
    assert processed[0].content == "halo"


def test_media_message_is_forwarded_as_media(client, processed):
    client.post("/webhook", json={
        "type": "message",
        "message": {"from": USER, "type": "imageMessage"},
    })
    assert processed[0].message_type is MessageType.IMAGE


def test_non_message_event_is_ignored(client, processed):
    response = client.post("/webhook", json={"type": "connection.update", "data": {"state": "open"}})
    assert response.json() == {"status": "ignored"}
    assert processed == []


def test_own_message_is_ignored(client, processed):
    response = client.post("/webhook", json={
        "type": "message",
        "message": {"from": USER, "text": "balasan bot", "fromMe": True},
    })
    assert response.json() == {"status": "ignored_own_message"}
    assert processed == []


@pytest.mark.parametrize("payload, error", [
    ({"message": {"from": USER, "text": "halo"}}, "Invalid payload"),
    ({"type": "message"}, "No message data"),
    ({"type": "message", "message": {"from": USER, "text": "   "}}, "Missing from/text"),
    ({"type": "message", "message": {"text": "halo"}}, "Missing from/text"),
])
def test_invalid_payloads_are_rejected(client, processed, payload, error):
    response = client.post("/webhook", json=payload)
    assert response.status_code == 400
    assert response.json() == {"error": error}
    assert processed == []


def test_non_json_body_is_rejected(client):
    response = client.post("/webhook", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid payload"}
