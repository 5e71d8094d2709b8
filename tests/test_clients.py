"""Tests for the completion and retrieval HTTP clients (httpx.MockTransport, no network)."""
import json

import httpx
import pytest

from folio.services.completion_client import CompletionClient
from folio.services.errors import CompletionError
from folio.services.retrieval import (
    Passage,
    RetrievalClient,
    dedupe_passages,
    format_passages_for_prompt,
)

MESSAGES = [{"role": "system", "content": "You write plans."}, {"role": "user", "content": "Summary please."}]


def _completion_client(handler) -> CompletionClient:
    return CompletionClient(
        base_url="http://llm.test/",
        api_key="secret",
        model="test-model",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# Completion client
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_complete_returns_message_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Hello"}}]})

    text = await _completion_client(handler).complete(MESSAGES, temperature=0.1, max_tokens=50)

    assert text == "Hello"
    assert seen["url"] == "http://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"
    assert seen["payload"]["model"] == "test-model"
    assert seen["payload"]["max_tokens"] == 50
    assert seen["payload"]["stream"] is False


@pytest.mark.asyncio
async def test_complete_non_200_raises_with_status():
    client = _completion_client(lambda request: httpx.Response(429, text="rate limited"))
    with pytest.raises(CompletionError) as info:
        await client.complete(MESSAGES)
    assert info.value.status_code == 429


@pytest.mark.asyncio
async def test_complete_malformed_envelope_raises():
    client = _completion_client(lambda request: httpx.Response(200, json={"choices": []}))
    with pytest.raises(CompletionError):
        await client.complete(MESSAGES)


@pytest.mark.asyncio
async def test_complete_connection_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CompletionError):
        await _completion_client(handler).complete(MESSAGES)


@pytest.mark.asyncio
async def test_unconfigured_client_raises_without_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = CompletionClient(base_url="http://llm.test", api_key="", transport=httpx.MockTransport(handler))
    assert not client.is_configured
    with pytest.raises(CompletionError):
        await client.complete(MESSAGES)


# ---------------------------------------------------------------------------
# Retrieval client
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_without_proxy_is_empty():
    result = await RetrievalClient(proxy_url="").search("dairy market")
    assert result.empty
    assert result.sources == []


@pytest.mark.asyncio
async def test_search_parses_and_filters_by_score():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={
            "sources": [{"id": "doc-1"}, "junk"],
            "passages": [
                {"title": "Survey", "text": "Demand grows.", "ref": "p.2", "score": 0.9},
                {"title": "Blog", "text": "Weak match.", "score": 0.1},
                {"title": "Empty", "text": "  "},
            ],
        })

    client = RetrievalClient(proxy_url="http://search.test/query", transport=httpx.MockTransport(handler))
    result = await client.search("dairy", limit=3, filter={"country": "Senegal"}, score_threshold=0.5)

    assert seen["payload"] == {"query": "dairy", "limit": 3, "filter": {"country": "Senegal"}, "score_threshold": 0.5}
    assert result.sources == [{"id": "doc-1"}]
    assert [p.title for p in result.passages] == ["Survey"]


@pytest.mark.asyncio
async def test_search_failure_is_empty():
    client = RetrievalClient(
        proxy_url="http://search.test/query",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    assert (await client.search("dairy")).empty


def test_dedupe_and_format_passages():
    passages = [
        Passage("Survey", "Demand grows.", "p.2"),
        Passage("Survey", "Demand grows.", "p.2"),
        Passage("Brief", "Cold chain matters."),
    ]
    unique = dedupe_passages(passages)
    assert len(unique) == 2
    assert format_passages_for_prompt(unique) == "(1) Survey [p.2]\nDemand grows.\n\n(2) Brief\nCold chain matters."
