"""
HTTP surface tests (FastAPI TestClient).

The app is built with a temporary datastore and injected chat/e-mail
clients; no network or audio device is touched.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from core.config import AppSettings
from core.errors import SpeechProviderError
from voice.token import AgentToken


HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def chat_client():
    client = MagicMock()
    message = SimpleNamespace(content="You have no invoices yet.", tool_calls=None)
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)])
    )
    return client


@pytest.fixture
def client(settings, store, chat_client):
    app = create_app(settings=settings, store=store, chat_client=chat_client)
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["storage"] == "up"

    def test_probes(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_metrics_reflect_tool_calls(self, client):
        client.post("/tools/getInvoices", json={}, headers=HEADERS)
        body = client.get("/metrics").json()
        assert body["tools"]["invoked"] == 1
        assert body["tools"]["by_tool"]["getInvoices"] == {"success": 1}


class TestTools:

    def test_identity_required(self, client):
        assert client.post("/tools/getInvoices", json={}).status_code == 401
        assert client.post("/tools/getInvoices", json={}, headers={"X-User-Id": "  "}).status_code == 401

    def test_list_tools(self, client):
        tools = {t["name"]: t for t in client.get("/tools").json()}
        assert tools["addIncome"]["mutating"] is True
        assert tools["getInvoices"]["mutating"] is False
        assert "amount" in tools["addIncome"]["parameters"]["properties"]

    def test_invoke_preview_then_apply(self, client, store):
        body = {"name": "Acme Corp", "userId": "someone-else"}

        preview = client.post("/tools/addClient", json=body, headers=HEADERS).json()
        assert preview["status"] == "preview"

        applied = client.post("/tools/addClient", json={**body, "confirmed": True}, headers=HEADERS).json()
        assert applied["status"] == "applied"
        assert store.count("clients", "user-1") == 1
        assert store.count("clients", "someone-else") == 0

    def test_tool_errors_are_200_payloads(self, client):
        response = client.post("/tools/launchRocket", json={}, headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["status"] == "not_found"

    def test_empty_body(self, client):
        response = client.post("/tools/getOverdueInvoices", headers=HEADERS)
        assert response.json()["status"] == "success"


class TestVoiceAgentRoutes:

    def test_function_name_required(self, client):
        response = client.post("/voice-agent/function", json={"parameters": {}}, headers=HEADERS)
        assert response.status_code == 400
        assert response.json()["detail"] == "Function name required"

    def test_function_relay(self, client, store):
        store.insert("clients", {"user_id": "user-1", "name": "Acme Corp"})

        response = client.post(
            "/voice-agent/function",
            json={"functionName": "searchClients", "parameters": {"searchTerm": "Acme"}, "functionCallId": "fc-1"},
            headers=HEADERS,
        )

        body = response.json()
        assert body["functionCallId"] == "fc-1"
        assert body["result"]["result"]["matches"][0]["name"] == "Acme Corp"

    def test_config_without_key(self, client):
        with patch("api.routes.voice_agent.grant_agent_token", AsyncMock(side_effect=SpeechProviderError("Voice agent not configured"))):
            response = client.get("/voice-agent/config", headers=HEADERS)
        assert response.status_code == 500
        assert response.json()["detail"] == "Voice agent not configured"

    def test_config(self, client):
        token = AgentToken(value="temp-123", temporary=True, expires_in=600)
        with patch("api.routes.voice_agent.grant_agent_token", AsyncMock(return_value=token)):
            response = client.get("/voice-agent/config", headers=HEADERS)

        body = response.json()
        assert body["token"] == "temp-123"
        assert body["userId"] == "user-1"
        assert body["wsUrl"].startswith("wss://")
        assert body["config"]["type"] == "Settings"


class TestChat:

    def test_chat_reply(self, client, chat_client):
        response = client.post("/chat", json={"messages": [{"role": "user", "content": "any invoices?"}]}, headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["reply"] == "You have no invoices yet."
        assert body["rounds"] == 1
        assert body["toolCalls"] == []
        sent = chat_client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0]["role"] == "system"
        assert sent[1] == {"role": "user", "content": "any invoices?"}

    def test_last_message_must_be_user(self, client):
        response = client.post("/chat", json={"messages": [{"role": "assistant", "content": "hi"}]}, headers=HEADERS)
        assert response.status_code == 400

    def test_model_unavailable(self, settings, store):
        app = create_app(settings=AppSettings(db_path=settings.db_path), store=store)
        with TestClient(app) as test_client:
            response = test_client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]}, headers=HEADERS)
        assert response.status_code == 502
