"""
HTTP tests for the chat and data-services endpoints.
"""

from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from stopover_chat.application.exceptions import AuthenticationError, RateLimitError
from stopover_chat.core.config import Settings
from stopover_chat.infrastructure.store.conversation_actor import ConversationNamespace
from stopover_chat.infrastructure.store.memory_store import MemoryConversationStorage
from stopover_chat.main import create_app
from stopover_chat.wiring.dependencies import build_context
from tests.fakes import ScriptedCompletion, text_turn, tool_turn


def _settings(**overrides) -> Settings:
    values = {
        "ENV": "test",
        "STREAMING_ENABLED": False,
        "REDIS_URL": "",
        "CONVERSATION_STORE": "memory",
        "PERSISTENCE_RETRY_DELAY": 0.0,
        "DEFAULT_MODEL": "model-a",
        "FALLBACK_MODELS": "model-b",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def port() -> ScriptedCompletion:
    return ScriptedCompletion()


@pytest.fixture
def client(port) -> TestClient:
    settings = _settings()
    return TestClient(create_app(settings, context=build_context(settings, completion=port)))


def _user(text: str) -> dict:
    return {"messages": [{"role": "user", "content": text}]}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_chat_returns_camel_case_turn(client, port):
    port.queue(tool_turn("show_stopover_categories"))

    response = client.post("/chat?stream=false", json=_user("Show me stopover options"))

    assert response.status_code == 200
    body = response.json()
    assert body["currentStep"] == "category-selection"
    assert body["uiComponent"]["type"] == "categories"
    assert body["widget"]["widget"] == "category-carousel"
    assert body["sessionId"] and body["conversationId"]
    assert body["model"] == "model-a"
    assert body["toolResults"][0]["toolName"] == "show_stopover_categories"


def test_chat_continues_session(client, port):
    port.queue(tool_turn("show_stopover_categories"), tool_turn("select_stopover_category", categoryId="premium"))

    first = client.post("/chat", json=_user("Show me options")).json()
    second = client.post(
        "/chat",
        json={**_user("Premium please"), "sessionId": first["sessionId"]},
    ).json()

    assert second["currentStep"] == "hotel-selection"
    assert second["conversationId"] == first["conversationId"]
    assert second["uiComponent"]["type"] == "hotels"


def test_chat_interaction_becomes_user_message(client, port):
    port.queue(text_turn("Sure."))

    client.post("/chat", json={"interaction": {"action": "category-select", "data": {"id": "premium", "name": "Premium"}}})

    assert port.requests[0].messages[-1] == {"role": "user", "content": "I'd like the Premium stopover category"}


def test_chat_uses_supplied_customer_context(client, port):
    port.queue(text_turn("Welcome back."))

    client.post(
        "/chat",
        json={
            **_user("Hi"),
            "conversationContext": {
                "customer": {"name": "Sam Lee", "loyaltyBalance": 5000},
                "booking": {"pnr": "ZZ9PL", "passengers": 1, "route": {"origin": "CDG", "destination": "SYD"}},
            },
        },
    )

    prompt = port.requests[0].messages[0]["content"]
    assert "Sam Lee" in prompt
    assert "ZZ9PL" in prompt


@pytest.mark.parametrize(
    "payload",
    [
        {"messages": []},
        {"messages": [{"role": "assistant", "content": "Hello"}]},
        {"messages": [{"role": "robot", "content": "beep"}]},
    ],
)
def test_chat_rejects_invalid_messages(client, payload):
    response = client.post("/chat", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["type"] == "ValidationError"
    assert body["retryable"] is False
    assert body["details"]


def test_chat_rejects_zero_passengers(client):
    response = client.post(
        "/chat",
        json={**_user("Hi"), "conversationContext": {"booking": {"pnr": "X4HG8", "passengers": 0}}},
    )

    assert response.status_code == 400


def test_chat_without_api_key_outside_dev():
    settings = _settings(ENV="production", OPENROUTER_API_KEY="")
    client = TestClient(create_app(settings, context=build_context(settings)))

    response = client.post("/chat", json=_user("Hi"))

    assert response.status_code == 500
    assert response.json() == {
        "error": "Server configuration error",
        "type": "ConfigurationError",
        "retryable": False,
        "details": "OPENROUTER_API_KEY missing",
    }
    # Session services keep working without a model
    assert client.get("/data-services?action=health").status_code == 200


def test_chat_rate_limited_on_every_model(client, port):
    port.queue(RateLimitError("429"), RateLimitError("429"), RateLimitError("429"))

    response = client.post("/chat", json=_user("Hi"))

    assert response.status_code == 429
    body = response.json()
    assert body["type"] == "AllModelsFailedError"
    assert body["retryable"] is True
    assert "try again" in body["error"]


def test_chat_stream_ndjson(client, port):
    port.queue(tool_turn("show_stopover_categories"))

    response = client.post("/chat?stream=true", json=_user("Show me"))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    events = [json.loads(line) for line in response.text.splitlines() if line]
    assert [e["type"] for e in events] == ["session", "tool-result", "done"]
    assert events[-1]["currentStep"] == "category-selection"
    assert events[-1]["widget"]["widget"] == "category-carousel"


@pytest.mark.parametrize(
    ("errors", "status", "error_type"),
    [
        ([RateLimitError("429")] * 3, 429, "AllModelsFailedError"),
        ([AuthenticationError("Invalid API key")], 401, "AuthenticationError"),
    ],
)
def test_chat_stream_maps_provider_errors_to_status(client, port, errors, status, error_type):
    port.queue(*errors)

    response = client.post("/chat?stream=true", json=_user("Hi"))

    assert response.status_code == status
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["type"] == error_type


def test_stream_default_follows_settings(port):
    settings = _settings(STREAMING_ENABLED=True)
    client = TestClient(create_app(settings, context=build_context(settings, completion=port)))
    port.queue(text_turn("Hello there"))

    response = client.post("/chat", json=_user("Hi"))

    events = [json.loads(line) for line in response.text.splitlines() if line]
    assert events[-1]["type"] == "done"
    assert events[-1]["message"] == "Hello there"


def test_data_services_session_lifecycle(client):
    created = client.post(
        "/data-services",
        json={"action": "init-session", "customerId": "alex-johnson", "bookingRef": "X4HG8", "entryPoint": "mmb"},
    ).json()

    assert created["success"] is True
    session_id = created["sessionId"]
    assert created["session"]["metadata"]["entryPoint"] == "mmb"

    updated = client.post(
        "/data-services",
        json={"action": "update-session", "sessionId": session_id, "state": {"currentStep": "hotel-selection"}},
    )
    assert updated.json() == {"success": True}

    fetched = client.post("/data-services", json={"action": "get-session", "sessionId": session_id}).json()
    assert fetched["session"]["state"]["currentStep"] == "hotel-selection"


def test_data_services_validation_and_missing_session(client):
    assert client.post("/data-services", json={"action": "init-session", "customerId": "alex"}).status_code == 400
    assert client.post("/data-services", json={"action": "get-session"}).status_code == 400

    missing = client.post("/data-services", json={"action": "get-session", "sessionId": "nope"})
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Session not found"}


def test_data_services_unknown_action(client):
    assert client.post("/data-services", json={"action": "explode"}).status_code == 400
    assert client.get("/data-services?action=explode").status_code == 400
    assert client.get("/data-services").status_code == 400


def test_data_services_health_and_assets(client):
    health = client.post("/data-services", json={"action": "health-check"})
    assets = client.get("/data-services?action=asset-urls").json()

    assert health.status_code == 200
    assert health.json()["health"]["kv"] is True
    assert assets["success"] is True
    assert assets["cdn"] is False
    assert assets["assets"]["hotels"]["millenium_hotel.webp"] == "/assets/images/millenium_hotel.webp"


def test_configured_night_bound_reaches_the_model(port):
    settings = _settings(MAX_STOPOVER_NIGHTS=2)
    client = TestClient(create_app(settings, context=build_context(settings, completion=port)))
    port.queue(text_turn("Hello"))

    client.post("/chat", json=_user("Hi"))

    timing = next(t for t in port.requests[0].tools if t["function"]["name"] == "select_timing_and_duration")
    assert timing["function"]["parameters"]["properties"]["duration"]["maximum"] == 2


def test_requests_sweep_idle_conversations_and_their_locks(port):
    now = [0.0]
    settings = _settings(CONVERSATION_SWEEP_INTERVAL_SECONDS=300)
    context = build_context(settings, completion=port)
    context.conversations = ConversationNamespace(
        MemoryConversationStorage(), idle_ttl_seconds=60, clock=lambda: now[0]
    )
    context.conversations.send("conv-idle", "init", {})
    context.chat._get_lock("conv-idle")
    client = TestClient(create_app(settings, context=context))

    now[0] = 299
    client.post("/data-services", json={"action": "health-check"})
    assert "conv-idle" in context.chat._locks

    now[0] = 300
    client.post("/data-services", json={"action": "health-check"})
    assert "conv-idle" not in context.chat._locks
    assert context.conversations.send("conv-idle", "state").status == 404


def test_asset_urls_post_returns_full_map(client):
    response = client.post("/data-services", json={"action": "get-asset-urls", "keys": ["hotels"]})

    assert response.status_code == 200
    body = response.json()
    assert set(body["assets"]) >= {"hotels"}
    assert "keys" not in body
