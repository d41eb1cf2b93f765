from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from antigravity_gateway.core.exceptions import ResponseNormalizeError
from antigravity_gateway.services.antigravity.constants import PREVIEW_ACCESS_LINK
from antigravity_gateway.services.antigravity.request_helpers import UsageMetadata
from antigravity_gateway.services.antigravity.response import (
    ResponseOutcome,
    normalize_response,
    transform_streaming_payload,
)

SSE_HEADERS = {"content-type": "text/event-stream"}
JSON_HEADERS = {"content-type": "application/json; charset=UTF-8"}


def _json_response(status: int, body: object, **kwargs: object) -> httpx.Response:
    return httpx.Response(status, headers=JSON_HEADERS, content=json.dumps(body).encode(), **kwargs)


@pytest.mark.asyncio
async def test_non_json_response_passes_through() -> None:
    response = httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG")
    normalized = await normalize_response(response, streaming=False)

    assert normalized.outcome is ResponseOutcome.PASSTHROUGH
    assert normalized.response is response


@pytest.mark.asyncio
async def test_json_envelope_is_unwrapped() -> None:
    body = {"response": {"candidates": [{"content": {"parts": [{"text": "hi"}]}}]}}
    normalized = await normalize_response(_json_response(200, body), streaming=False)

    assert normalized.outcome is ResponseOutcome.NORMALIZED
    assert normalized.response.status_code == 200
    assert normalized.response.json() == body["response"]
    assert normalized.response.headers["content-length"] == str(len(normalized.response.content))


@pytest.mark.asyncio
async def test_unwrapped_json_is_returned_verbatim() -> None:
    raw = '{"candidates": [], "usageMetadata": {"totalTokenCount": 3}}'
    response = httpx.Response(200, headers=JSON_HEADERS, content=raw.encode())
    normalized = await normalize_response(response, streaming=False)

    assert normalized.response.text == raw
    assert normalized.response.headers["x-gemini-total-token-count"] == "3"


@pytest.mark.asyncio
async def test_array_body_uses_first_object() -> None:
    body = [{"response": {"candidates": [1]}}, {"response": {"candidates": [2]}}]
    normalized = await normalize_response(_json_response(200, body), streaming=False)
    assert normalized.response.json() == {"candidates": [1]}


@pytest.mark.asyncio
async def test_usage_headers_only_for_present_counts() -> None:
    body = {"response": {"usageMetadata": {"promptTokenCount": 10, "totalTokenCount": 12}}}
    normalized = await normalize_response(_json_response(200, body), streaming=False)

    headers = normalized.response.headers
    assert headers["x-gemini-prompt-token-count"] == "10"
    assert headers["x-gemini-total-token-count"] == "12"
    assert "x-gemini-candidates-token-count" not in headers
    assert "x-gemini-cached-content-token-count" not in headers
    assert normalized.usage == UsageMetadata(prompt_token_count=10, total_token_count=12)


@pytest.mark.asyncio
async def test_retry_info_sets_retry_headers() -> None:
    body = {
        "error": {
            "code": 429,
            "message": "Resource exhausted",
            "details": [
                {"@type": "type.googleapis.com/google.rpc.ErrorInfo", "reason": "RATE_LIMIT"},
                {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "12.5s"},
            ],
        }
    }
    normalized = await normalize_response(_json_response(429, body), streaming=False)

    assert normalized.response.status_code == 429
    assert normalized.response.headers["retry-after"] == "13"
    assert normalized.response.headers["retry-after-ms"] == "12500"
    assert normalized.response.json() == body


@pytest.mark.asyncio
@pytest.mark.parametrize("delay", ["0s", "soon", "1.2.3s", "500ms", 5])
async def test_invalid_retry_delay_is_ignored(delay: object) -> None:
    body = {"error": {"details": [{"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": delay}]}}
    normalized = await normalize_response(_json_response(503, body), streaming=False)

    assert normalized.outcome is ResponseOutcome.NORMALIZED
    assert "retry-after" not in normalized.response.headers
    assert "retry-after-ms" not in normalized.response.headers


@pytest.mark.asyncio
async def test_preview_access_404_is_rewritten() -> None:
    body = {"error": {"code": 404, "message": "Requested entity was not found.", "status": "NOT_FOUND"}}
    normalized = await normalize_response(
        _json_response(404, body),
        streaming=False,
        requested_model="gemini-3-pro-preview",
    )

    assert normalized.response.status_code == 404
    message = normalized.response.json()["error"]["message"]
    assert "gemini-3-pro-preview" in message
    assert PREVIEW_ACCESS_LINK in message


@pytest.mark.asyncio
async def test_other_404_is_untouched() -> None:
    raw = '{"error": {"code": 404, "message": "not found"}}'
    response = httpx.Response(404, headers=JSON_HEADERS, content=raw.encode())
    normalized = await normalize_response(response, streaming=False, requested_model="gemini-2.5-pro")
    assert normalized.response.text == raw


@pytest.mark.asyncio
async def test_streaming_payload_is_flattened_with_last_usage() -> None:
    payload = "\n".join(
        [
            'data: {"response": {"candidates": [{"index": 0}]}}',
            "",
            'data: {"response": {"usageMetadata": {"promptTokenCount": 8}}}',
            "",
            'data: {"response": {"candidates": [], "usageMetadata": {"promptTokenCount": 8, "cachedContentTokenCount": 40}}}',
            "",
        ]
    )
    response = httpx.Response(200, headers=SSE_HEADERS, content=payload.encode())
    normalized = await normalize_response(response, streaming=True)

    lines = normalized.response.text.split("\n")
    assert lines[0] == 'data: {"candidates":[{"index":0}]}'
    assert lines[1] == ""
    assert lines[4] == 'data: {"candidates":[],"usageMetadata":{"promptTokenCount":8,"cachedContentTokenCount":40}}'
    assert normalized.response.headers["x-gemini-cached-content-token-count"] == "40"
    assert normalized.response.headers["x-gemini-prompt-token-count"] == "8"
    assert normalized.response.headers["content-type"] == "text/event-stream"


def test_transform_streaming_payload_keeps_other_lines() -> None:
    payload = 'event: ping\ndata: [DONE]\ndata: {"other": 1}\ndata:\n: comment'
    assert transform_streaming_payload(payload) == payload


@pytest.mark.asyncio
async def test_stale_encoding_headers_are_dropped() -> None:
    body = json.dumps({"response": {"candidates": []}}).encode()
    response = httpx.Response(
        200,
        headers={**JSON_HEADERS, "content-length": str(len(body)), "transfer-encoding": "chunked"},
        content=body,
    )
    normalized = await normalize_response(response, streaming=False)

    assert "transfer-encoding" not in normalized.response.headers
    assert normalized.response.headers["content-length"] == str(len(normalized.response.content))


@pytest.mark.asyncio
async def test_request_is_carried_over() -> None:
    request = httpx.Request("POST", "https://example.com/v1internal:generateContent")
    response = _json_response(200, {"response": {}}, request=request)
    normalized = await normalize_response(response, streaming=False)
    assert normalized.response.request is request


@pytest.mark.asyncio
async def test_failure_degrades_to_original_response() -> None:
    response = _json_response(200, {"response": {}})
    with patch(
        "antigravity_gateway.services.antigravity.response._normalize_body",
        side_effect=RuntimeError("boom"),
    ):
        normalized = await normalize_response(response, streaming=False)

    assert normalized.outcome is ResponseOutcome.DEGRADED
    assert normalized.response is response
    assert isinstance(normalized.error, ResponseNormalizeError)
