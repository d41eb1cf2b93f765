from __future__ import annotations

import json

import httpx
import pytest

from antigravity_gateway.services.antigravity.gateway import AntigravityGateway
from antigravity_gateway.services.antigravity.signature_cache import SignatureCache
from antigravity_gateway.services.antigravity.transport import (
    AntigravityCredentials,
    AntigravityTransport,
)

CREDENTIALS = AntigravityCredentials(access_token="ya29.token", project_id="proj-1")
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-pro:generateContent"


def _gateway() -> AntigravityGateway:
    return AntigravityGateway(signature_cache=SignatureCache(), session_id="-1000000000000000002")


@pytest.mark.asyncio
async def test_intercepted_call_is_rewritten_and_normalized() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"response": {"candidates": [], "usageMetadata": {"totalTokenCount": 9}}},
        )

    transport = AntigravityTransport(
        CREDENTIALS,
        gateway=_gateway(),
        transport=httpx.MockTransport(handler),
    )
    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.post(GEMINI_URL, json={"contents": []}, headers={"x-goog-api-key": "k"})

    assert len(seen) == 1
    outbound = seen[0]
    assert outbound.url.path == "/v1internal:generateContent"
    assert outbound.headers["authorization"] == "Bearer ya29.token"
    assert "x-goog-api-key" not in outbound.headers
    assert json.loads(outbound.content)["project"] == "proj-1"

    assert resp.status_code == 200
    assert resp.json() == {"candidates": [], "usageMetadata": {"totalTokenCount": 9}}
    assert resp.headers["x-gemini-total-token-count"] == "9"


@pytest.mark.asyncio
async def test_other_hosts_skip_credentials() -> None:
    calls = 0

    async def provider() -> AntigravityCredentials:
        nonlocal calls
        calls += 1
        return CREDENTIALS

    def handler(request: httpx.Request) -> httpx.Response:
        assert "authorization" not in request.headers
        return httpx.Response(200, text="ok")

    transport = AntigravityTransport(
        provider,
        gateway=_gateway(),
        transport=httpx.MockTransport(handler),
    )
    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.get("https://example.com/health")

    assert resp.text == "ok"
    assert calls == 0


@pytest.mark.asyncio
async def test_async_credentials_provider_is_awaited() -> None:
    async def provider() -> AntigravityCredentials:
        return AntigravityCredentials(access_token="fresh", project_id="proj-2")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer fresh"
        assert json.loads(request.content)["project"] == "proj-2"
        return httpx.Response(200, json={"response": {}})

    transport = AntigravityTransport(
        provider,
        gateway=_gateway(),
        transport=httpx.MockTransport(handler),
    )
    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.post(GEMINI_URL, json={"contents": []})

    assert resp.json() == {}


@pytest.mark.asyncio
async def test_streaming_call_returns_flattened_sse() -> None:
    sse = 'data: {"response": {"candidates": [{"index": 0}]}}\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["alt"] == "sse"
        assert request.headers["accept"] == "text/event-stream"
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=sse.encode())

    transport = AntigravityTransport(
        lambda: CREDENTIALS,
        gateway=_gateway(),
        transport=httpx.MockTransport(handler),
    )
    url = GEMINI_URL.replace(":generateContent", ":streamGenerateContent?alt=sse")
    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.post(url, json={"contents": []})

    assert resp.text == 'data: {"candidates":[{"index":0}]}\n\n'


@pytest.mark.asyncio
async def test_binary_response_is_not_buffered_or_rewritten() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "application/octet-stream"}, content=b"\x00\x01")

    transport = AntigravityTransport(
        CREDENTIALS,
        gateway=_gateway(),
        transport=httpx.MockTransport(handler),
    )
    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.post(GEMINI_URL, json={"contents": []})

    assert resp.content == b"\x00\x01"
