"""Antigravity v1internal request/response envelope helpers.

The backend speaks the Gemini wire format wrapped in an extra envelope:
- Request: ``{project, model, userAgent, requestId, request: GeminiRequest}``
- Response: ``{response: GeminiResponse}`` (or one such object per SSE event)

Request bodies are classified exactly once here, at the gateway boundary;
the transformers never re-sniff the shape.
"""

from __future__ import annotations

import json
from typing import Any

from antigravity_gateway.core.exceptions import RequestTransformError
from antigravity_gateway.services.antigravity.constants import REQUEST_USER_AGENT
from antigravity_gateway.services.antigravity.request_helpers import generate_request_id
from antigravity_gateway.services.antigravity.transform.types import (
    CanonicalRequestBody,
    ParsedRequestBody,
    TransformContext,
    WrappedRequestBody,
)


def parse_request_body(raw: str | bytes) -> ParsedRequestBody:
    """Classify an outbound body as pre-wrapped or canonical.

    Raises RequestTransformError for anything that is not a JSON object.
    """
    try:
        parsed = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise RequestTransformError("request body is not valid JSON", detail=str(e)) from e

    if not isinstance(parsed, dict):
        raise RequestTransformError(
            "request body is not a JSON object", detail=type(parsed).__name__
        )

    if isinstance(parsed.get("project"), str) and "request" in parsed:
        return WrappedRequestBody(parsed)
    return CanonicalRequestBody(parsed)


def wrap_v1internal_request(
    inner_request: dict[str, Any],
    context: TransformContext,
) -> dict[str, Any]:
    """Wrap a transformed GeminiRequest into a V1InternalRequest.

    The model lives at the top level; the nested request must not carry it again.
    """
    inner_request.pop("model", None)
    inner_request["sessionId"] = context.session_id

    return {
        "project": context.project_id,
        "model": context.model,
        "userAgent": REQUEST_USER_AGENT,
        "requestId": context.request_id,
        "request": inner_request,
    }


def refresh_wrapped_request(
    wrapped: dict[str, Any],
    *,
    model: str,
    session_id: str,
) -> dict[str, Any]:
    """Refresh the routing fields of a body the caller already wrapped."""
    refreshed = {
        **wrapped,
        "model": model,
        "userAgent": REQUEST_USER_AGENT,
        "requestId": generate_request_id(),
    }
    inner = refreshed.get("request")
    if isinstance(inner, dict):
        refreshed["request"] = {**inner, "sessionId": session_id}
    return refreshed


def unwrap_v1internal_response(response: Any) -> Any:
    """Return the inner GeminiResponse when ``response`` is an envelope."""
    if isinstance(response, dict) and "response" in response:
        return response["response"]
    return response


__all__ = [
    "parse_request_body",
    "refresh_wrapped_request",
    "unwrap_v1internal_response",
    "wrap_v1internal_request",
]
