"""Antigravity response normalization.

v1internal wraps every payload in ``{"response": ...}`` (SSE: one envelope per
``data:`` line). This module unwraps it back to the public GeminiResponse shape
and annotates the response with retry hints and token-usage headers.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from antigravity_gateway.config.settings import Config, config
from antigravity_gateway.core.exceptions import ResponseNormalizeError
from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.constants import (
    RETRY_AFTER_MS_HEADER,
    RETRY_INFO_TYPE,
    USAGE_HEADERS,
)
from antigravity_gateway.services.antigravity.debug import DebugContext, log_debug_response
from antigravity_gateway.services.antigravity.envelope import unwrap_v1internal_response
from antigravity_gateway.services.antigravity.request_helpers import (
    UsageMetadata,
    dumps_json,
    extract_usage_from_sse_payload,
    extract_usage_metadata,
    parse_gemini_api_body,
    rewrite_preview_access_error,
)

_RETRY_DELAY_RE = re.compile(r"^([\d.]+)s$")

# 响应体被重新编码后失效
_STALE_RESPONSE_HEADERS = ("Content-Length", "Content-Encoding", "Transfer-Encoding")


class ResponseOutcome(str, Enum):
    PASSTHROUGH = "passthrough"  # 非 JSON / SSE，未读取 body
    NORMALIZED = "normalized"
    DEGRADED = "degraded"  # 归一化失败，返回原始响应


@dataclass(frozen=True, slots=True)
class NormalizedResponse:
    response: httpx.Response
    outcome: ResponseOutcome
    usage: UsageMetadata | None = None
    error: Exception | None = None


# ---------------------------------------------------------------------------
# SSE
# ---------------------------------------------------------------------------


def transform_streaming_payload(payload: str) -> str:
    """Unwrap every ``data:`` line carrying an envelope; other lines pass through."""
    lines = []
    for line in payload.split("\n"):
        if not line.startswith("data:"):
            lines.append(line)
            continue
        json_text = line[5:].strip()
        if not json_text:
            lines.append(line)
            continue
        try:
            parsed = json.loads(json_text)
        except ValueError:
            lines.append(line)
            continue
        if isinstance(parsed, dict) and "response" in parsed:
            lines.append(f"data: {dumps_json(unwrap_v1internal_response(parsed))}")
        else:
            lines.append(line)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Headers
# ---------------------------------------------------------------------------


def _parse_retry_delay(text: str) -> float | None:
    try:
        body = json.loads(text)
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    details = error.get("details") if isinstance(error, dict) else None
    if not isinstance(details, list):
        return None

    retry_info = next(
        (d for d in details if isinstance(d, dict) and d.get("@type") == RETRY_INFO_TYPE),
        None,
    )
    if retry_info is None:
        return None
    delay = retry_info.get("retryDelay")
    if not isinstance(delay, str):
        return None

    match = _RETRY_DELAY_RE.match(delay)
    if not match:
        return None
    try:
        seconds = float(match.group(1))
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds


def apply_retry_headers(headers: httpx.Headers, text: str) -> None:
    """Copy a RetryInfo ``retryDelay`` from an error body into retry headers."""
    seconds = _parse_retry_delay(text)
    if seconds is None:
        return
    headers["Retry-After"] = str(math.ceil(seconds))
    headers[RETRY_AFTER_MS_HEADER] = str(math.ceil(seconds * 1000))


def apply_usage_headers(headers: httpx.Headers, usage: UsageMetadata) -> None:
    for field_name, header_name in USAGE_HEADERS.items():
        value = getattr(usage, field_name)
        if value is not None:
            headers[header_name] = str(value)


def _rebuild_response(response: httpx.Response, headers: httpx.Headers, text: str) -> httpx.Response:
    for name in _STALE_RESPONSE_HEADERS:
        headers.pop(name, None)

    try:
        request: httpx.Request | None = response.request
    except RuntimeError:
        request = None

    extensions = {
        key: response.extensions[key]
        for key in ("http_version", "reason_phrase")
        if key in response.extensions
    }
    return httpx.Response(
        response.status_code,
        headers=headers,
        content=text.encode("utf-8"),
        request=request,
        extensions=extensions,
    )


# ---------------------------------------------------------------------------
# Normalize
# ---------------------------------------------------------------------------


def _normalize_body(
    text: str,
    *,
    status_code: int,
    streaming: bool,
    event_stream: bool,
    requested_model: str | None,
    preview_pattern: str,
) -> tuple[str, UsageMetadata | None]:
    if streaming and event_stream:
        usage = extract_usage_from_sse_payload(text)
        if 200 <= status_code < 300:
            return transform_streaming_payload(text), usage
        return text, usage

    parsed = parse_gemini_api_body(text)
    if parsed is None:
        return text, None

    patched = rewrite_preview_access_error(
        parsed,
        status_code,
        requested_model,
        pattern=preview_pattern,
    )
    effective: dict[str, Any] = patched if patched is not None else parsed
    usage = extract_usage_metadata(effective)

    if "response" in effective:
        return dumps_json(effective["response"]), usage
    if patched is not None:
        return dumps_json(patched), usage
    return text, usage


async def normalize_response(
    response: httpx.Response,
    *,
    streaming: bool,
    requested_model: str | None = None,
    settings: Config | None = None,
    debug: DebugContext | None = None,
) -> NormalizedResponse:
    """Unwrap a v1internal response into the public GeminiResponse shape.

    Streaming bodies are buffered in full before rewriting. Any failure is
    logged and reported as DEGRADED with the original response.
    """
    settings = settings or config

    content_type = response.headers.get("content-type", "")
    is_json = "application/json" in content_type
    is_event_stream = "text/event-stream" in content_type

    if not is_json and not is_event_stream:
        log_debug_response(debug, response, note="Non-JSON response (body omitted)")
        return NormalizedResponse(response=response, outcome=ResponseOutcome.PASSTHROUGH)

    try:
        await response.aread()
        text = response.text

        headers = httpx.Headers(response.headers)
        if response.is_error and text:
            apply_retry_headers(headers, text)

        body, usage = _normalize_body(
            text,
            status_code=response.status_code,
            streaming=streaming,
            event_stream=is_event_stream,
            requested_model=requested_model,
            preview_pattern=settings.preview_model_pattern,
        )
        if usage is not None:
            apply_usage_headers(headers, usage)

        log_debug_response(
            debug,
            response,
            note="Streaming SSE payload" if streaming else None,
            body=text,
            headers=headers,
        )
        return NormalizedResponse(
            response=_rebuild_response(response, headers, body),
            outcome=ResponseOutcome.NORMALIZED,
            usage=usage,
        )
    except Exception as e:
        logger.warning("[Antigravity] 响应归一化失败，返回原始响应: status={}, error={}", response.status_code, e)
        log_debug_response(debug, response, error=e, note="Failed to transform Antigravity response")
        return NormalizedResponse(
            response=response,
            outcome=ResponseOutcome.DEGRADED,
            error=ResponseNormalizeError("response normalize failed", detail=repr(e)),
        )


__all__ = [
    "NormalizedResponse",
    "ResponseOutcome",
    "apply_retry_headers",
    "apply_usage_headers",
    "normalize_response",
    "transform_streaming_payload",
]
