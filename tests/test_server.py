"""Tests for the aiohttp relay in sophron/server.py. No real API calls."""

import json
from unittest.mock import AsyncMock

import pytest
from aiohttp import test_utils

from sophron.models import SOURCE_SEP, SOURCE_WIKIPEDIA, ConversationMode, ReferenceRecord
from sophron.prompts import compose_system_instruction
from sophron.providers.base import (
    NotConfiguredError,
    RateLimitedError,
    UnauthorizedError,
    UnavailableError,
)
from sophron.references import ReferenceLookupError
from sophron.server import create_app
from tests.conftest import MockProvider, StubSource, make_response

_FREE_WILL = ReferenceRecord(
    title="Free will",
    definition="Free will is the capacity or ability to choose between different possible courses of action.",
    source_kind=SOURCE_WIKIPEDIA,
    related_concepts=["Philosophical concept"],
    key_points=["Free will is closely linked to moral responsibility"],
    source_url="https://en.wikipedia.org/wiki/Free_will",
)
_SEP_FREE_WILL = ReferenceRecord(
    title="Free Will",
    definition="The term free will has emerged over the past two millennia.",
    source_kind=SOURCE_SEP,
    related_concepts=["Compatibilism", "Incompatibilism"],
    further_reading=["Stanford Encyclopedia of Philosophy: Free Will"],
    source_url="https://plato.stanford.edu/entries/freewill/",
)

_CHAT_BODY = {
    "messages": [
        {"text": "What belief or claim would you like to debate?", "sender": "bot"},
        {"text": "Free will does not exist", "sender": "user"},
    ],
    "detectFallacies": False,
    "steelManningMode": False,
    "isStrengtheningPhase": False,
    "selectedStyle": "socratic",
    "isDebateMode": False,
}


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider(response_content="Consider the role of determinism.")


@pytest.fixture
def sources():
    return {
        SOURCE_WIKIPEDIA: StubSource(SOURCE_WIKIPEDIA, {"free will": _FREE_WILL}),
        SOURCE_SEP: StubSource(SOURCE_SEP, {"free will": _SEP_FREE_WILL}),
    }


async def _client(app):
    client = test_utils.TestClient(test_utils.TestServer(app))
    await client.start_server()
    return client


@pytest.fixture
async def client(provider, sources):
    client = await _client(create_app(provider, sources))
    yield client
    await client.close()


@pytest.fixture
async def unconfigured_client(sources):
    app = create_app(NotConfiguredError("openai", "OPENAI_API_KEY is not set"), sources)
    client = await _client(app)
    yield client
    await client.close()


async def test_chat_returns_reply(client, provider):
    resp = await client.post("/api/chat", json=_CHAT_BODY)
    assert resp.status == 200
    assert await resp.json() == {"message": "Consider the role of determinism."}

    messages = provider.generate.call_args.args[0]
    assert messages[0]["role"] == "system"
    assert messages[0]["content"] == compose_system_instruction(ConversationMode(debate_style="socratic"))
    assert [m["role"] for m in messages[1:]] == ["assistant", "user"]
    assert provider.generate.call_args.kwargs == {"temperature": 0.7, "max_tokens": 1000}


async def test_chat_sets_cors_header(client):
    resp = await client.post("/api/chat", json=_CHAT_BODY)
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


async def test_chat_requires_messages_array(client, provider):
    resp = await client.post("/api/chat", json={"messages": "nope"})
    assert resp.status == 400
    assert await resp.json() == {"error": "Messages array is required"}
    provider.generate.assert_not_awaited()


async def test_chat_rejects_non_json_body(client):
    resp = await client.post("/api/chat", data="not json", headers={"Content-Type": "application/json"})
    assert resp.status == 400
    assert "error" in await resp.json()


async def test_chat_unknown_style_is_treated_as_none(client, provider):
    body = {**_CHAT_BODY, "selectedStyle": "stoic"}
    resp = await client.post("/api/chat", json=body)
    assert resp.status == 200
    plain = {**_CHAT_BODY, "selectedStyle": "none"}
    await client.post("/api/chat", json=plain)
    first, second = provider.generate.call_args_list
    assert first.args[0][0] == second.args[0][0]


async def test_chat_without_api_key(unconfigured_client):
    resp = await unconfigured_client.post("/api/chat", json=_CHAT_BODY)
    assert resp.status == 500
    assert (await resp.json())["error"].startswith("OpenAI API key not configured")


async def test_chat_maps_rate_limit(client, provider):
    provider.generate = AsyncMock(side_effect=RateLimitedError("openai", "429"))
    resp = await client.post("/api/chat", json=_CHAT_BODY)
    assert resp.status == 429
    assert await resp.json() == {"error": "Rate limit exceeded. Please try again later."}


async def test_chat_maps_invalid_key(client, provider):
    provider.generate = AsyncMock(side_effect=UnauthorizedError("openai", "401"))
    resp = await client.post("/api/chat", json=_CHAT_BODY)
    assert resp.status == 401
    assert await resp.json() == {"error": "Invalid OpenAI API key"}


async def test_get_on_chat_is_json_405(client):
    resp = await client.get("/api/chat")
    assert resp.status == 405
    assert await resp.json() == {"error": "Method not allowed"}


async def test_options_preflight(client):
    resp = await client.options("/api/chat")
    assert resp.status == 204
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "POST" in resp.headers["Access-Control-Allow-Methods"]


async def test_detect_fallacies(client, provider):
    provider.generate = AsyncMock(
        return_value=make_response(
            json.dumps(
                {
                    "hasFallacies": True,
                    "fallacies": [
                        {
                            "name": "Ad Hominem",
                            "explanation": "Attacks the person instead of the argument.",
                            "suggestion": "Address the claim itself.",
                        }
                    ],
                }
            )
        )
    )
    resp = await client.post(
        "/api/detect-fallacies", json={"userMessage": "You're wrong because you're stupid"}
    )
    assert resp.status == 200
    data = await resp.json()
    assert data["hasFallacies"] is True
    assert data["fallacies"][0]["name"] == "Ad Hominem"
    assert provider.generate.call_args.kwargs == {"temperature": 0.1, "max_tokens": 500}


async def test_detect_fallacies_unparseable_reply_is_empty_report(client, provider):
    provider.generate = AsyncMock(return_value=make_response("I cannot answer in JSON."))
    resp = await client.post("/api/detect-fallacies", json={"userMessage": "Claim"})
    assert resp.status == 200
    assert await resp.json() == {"hasFallacies": False, "fallacies": []}


async def test_detect_fallacies_requires_user_message(client):
    resp = await client.post("/api/detect-fallacies", json={"userMessage": "   "})
    assert resp.status == 400
    assert await resp.json() == {"error": "User message is required"}


async def test_steel_man(client, provider):
    provider.generate = AsyncMock(
        return_value=make_response(
            "```json\n"
            + json.dumps(
                {
                    "hasImprovements": True,
                    "improvements": [
                        {
                            "category": "Clarity",
                            "suggestion": "Define what you mean by free will.",
                            "reason": "The term is ambiguous.",
                        }
                    ],
                }
            )
            + "\n```"
        )
    )
    resp = await client.post("/api/steel-man", json={"userMessage": "Free will does not exist"})
    assert resp.status == 200
    data = await resp.json()
    assert data["hasImprovements"] is True
    assert data["improvements"][0]["category"] == "Clarity"
    assert "example" not in data["improvements"][0]
    assert provider.generate.call_args.kwargs == {"temperature": 0.2, "max_tokens": 600}


async def test_steel_man_without_api_key(unconfigured_client):
    resp = await unconfigured_client.post("/api/steel-man", json={"userMessage": "Claim"})
    assert resp.status == 500


async def test_analyze_chat(client, provider):
    provider.generate = AsyncMock(
        return_value=make_response(
            json.dumps(
                {
                    "concepts": [{"name": "Free will", "mentions": 2, "relevance": 0.9}],
                    "philosophers": [{"id": "kant", "name": "Immanuel Kant", "mentions": 1, "relevance": 1.5}],
                    "schools": [],
                    "fallacies": [],
                }
            )
        )
    )
    resp = await client.post("/api/analyze-chat", json={"messages": _CHAT_BODY["messages"]})
    assert resp.status == 200
    data = await resp.json()
    assert data["concepts"][0]["id"] == "free-will"
    assert data["philosophers"][0]["relevance"] == 1.0
    assert data["schools"] == []


async def test_wikipedia_lookup(client):
    resp = await client.get("/api/wikipedia/free will")
    assert resp.status == 200
    data = await resp.json()
    assert data["title"] == "Free will"
    assert data["source"] == "wikipedia"
    assert data["keyPoints"] == ["Free will is closely linked to moral responsibility"]
    assert data["url"] == "https://en.wikipedia.org/wiki/Free_will"


async def test_wikipedia_not_found(client):
    resp = await client.get("/api/wikipedia/qwertyuiop")
    assert resp.status == 404
    assert await resp.json() == {"error": "Wikipedia entry not found"}


async def test_sep_lookup(client):
    resp = await client.get("/api/sep/free will")
    assert resp.status == 200
    data = await resp.json()
    assert data["source"] == "sep"
    assert data["furtherReading"] == ["Stanford Encyclopedia of Philosophy: Free Will"]
    assert "keyPoints" not in data


async def test_sep_not_found(client):
    resp = await client.get("/api/sep/qwertyuiop")
    assert resp.status == 404
    assert await resp.json() == {"error": "SEP entry not found"}


async def test_lookup_upstream_failure_is_500(client, sources):
    sources[SOURCE_SEP].fetch = AsyncMock(side_effect=ReferenceLookupError("SEP returned 503"))
    resp = await client.get("/api/sep/free will")
    assert resp.status == 500
    assert await resp.json() == {"error": "Failed to fetch SEP content"}


async def test_health_reports_key(client, unconfigured_client):
    resp = await client.get("/api/health")
    data = await resp.json()
    assert data["status"] == "OK"
    assert data["hasApiKey"] is True

    resp = await unconfigured_client.get("/api/health")
    assert (await resp.json())["hasApiKey"] is False


async def test_root_lists_endpoints(client):
    resp = await client.get("/")
    data = await resp.json()
    assert any("/api/chat" in e for e in data["endpoints"])


async def test_unknown_route_is_json_404(client):
    resp = await client.get("/api/nowhere")
    assert resp.status == 404
    assert await resp.json() == {"error": "Not found"}


@pytest.mark.parametrize("style", [5, ["socratic"], {"name": "formal"}])
async def test_chat_rejects_non_string_style(client, provider, style):
    resp = await client.post("/api/chat", json={**_CHAT_BODY, "selectedStyle": style})
    assert resp.status == 400
    assert await resp.json() == {"error": "selectedStyle must be a string"}
    provider.generate.assert_not_awaited()


async def test_chat_accepts_null_style(client):
    resp = await client.post("/api/chat", json={**_CHAT_BODY, "selectedStyle": None})
    assert resp.status == 200


@pytest.mark.parametrize("flag", ["steelManningMode", "isStrengtheningPhase", "detectFallacies", "isDebateMode"])
async def test_chat_rejects_non_boolean_flag(client, provider, flag):
    resp = await client.post("/api/chat", json={**_CHAT_BODY, flag: "false"})
    assert resp.status == 400
    assert await resp.json() == {"error": f"{flag} must be a boolean"}
    provider.generate.assert_not_awaited()


async def test_health_sets_cors_header(client):
    resp = await client.get("/api/health")
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


async def test_detect_fallacies_upstream_failure_message(client, provider):
    provider.generate = AsyncMock(side_effect=UnavailableError("openai", "upstream 503"))
    resp = await client.post("/api/detect-fallacies", json={"userMessage": "Claim"})
    assert resp.status == 500
    assert await resp.json() == {"error": "Failed to detect fallacies. Please try again."}


async def test_steel_man_upstream_failure_message(client, provider):
    provider.generate = AsyncMock(side_effect=UnavailableError("openai", "upstream 503"))
    resp = await client.post("/api/steel-man", json={"userMessage": "Claim"})
    assert resp.status == 500
    assert await resp.json() == {"error": "Failed to analyze argument. Please try again."}


async def test_steel_man_rate_limit_keeps_its_message(client, provider):
    provider.generate = AsyncMock(side_effect=RateLimitedError("openai", "429"))
    resp = await client.post("/api/steel-man", json={"userMessage": "Claim"})
    assert resp.status == 429
    assert await resp.json() == {"error": "Rate limit exceeded. Please try again later."}
