"""Pure payload helpers shared by the gateway, transformers and normalizer.

Nothing here touches the network or the signature cache.
"""

from __future__ import annotations

import json
import math
import re
import secrets
import uuid
from dataclasses import dataclass
from typing import Any

from antigravity_gateway.services.antigravity.constants import PREVIEW_ACCESS_LINK

DEFAULT_PREVIEW_MODEL_PATTERN = r"gemini[\s-]?3"

# ---------------------------------------------------------------------------
# Request / session id
# ---------------------------------------------------------------------------


def generate_request_id() -> str:
    return f"agent-{uuid.uuid4()}"


def new_session_id() -> str:
    """Session id in the Antigravity client format (a negative-looking 19 digit number)."""
    return f"-{10**18 + secrets.randbelow(9 * 10**18)}"


# 每次进程启动生成一个固定 session ID
_PROCESS_SESSION_ID = new_session_id()


def get_session_id() -> str:
    return _PROCESS_SESSION_ID


# ---------------------------------------------------------------------------
# Thinking config
# ---------------------------------------------------------------------------


def _as_number(value: Any) -> int | float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return int(value)
    return value


def normalize_thinking_config(config: Any) -> dict[str, Any] | None:
    """Normalize a thinking config into the backend's camelCase shape.

    Accepts camelCase and snake_case keys. ``includeThoughts`` is only kept
    true when thinking is actually enabled (positive budget or an explicit
    level); otherwise it is forced to false. Returns None when nothing
    thinking-related was requested.
    """
    if not isinstance(config, dict):
        return None

    budget_raw = config.get("thinkingBudget", config.get("thinking_budget"))
    include_raw = config.get("includeThoughts", config.get("include_thoughts"))
    level_raw = config.get("thinkingLevel", config.get("thinking_level"))

    budget = _as_number(budget_raw)
    include = include_raw if isinstance(include_raw, bool) else None
    level = level_raw.strip().lower() if isinstance(level_raw, str) and level_raw.strip() else None

    if budget is None and include is None and level is None:
        return None

    enabled = (budget is not None and budget > 0) or level is not None
    normalized: dict[str, Any] = {}
    if budget is not None:
        normalized["thinkingBudget"] = budget
    if level is not None:
        normalized["thinkingLevel"] = level
    normalized["includeThoughts"] = bool(include) if enabled else False
    return normalized


# ---------------------------------------------------------------------------
# Response body parsing / usage
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UsageMetadata:
    prompt_token_count: int | None = None
    candidates_token_count: int | None = None
    cached_content_token_count: int | None = None
    total_token_count: int | None = None

    def is_empty(self) -> bool:
        return (
            self.prompt_token_count is None
            and self.candidates_token_count is None
            and self.cached_content_token_count is None
            and self.total_token_count is None
        )


def parse_gemini_api_body(text: str) -> dict[str, Any] | None:
    """Parse a backend payload: a JSON object, or the first object of a JSON array."""
    try:
        parsed = json.loads(text)
    except ValueError:
        return None

    if isinstance(parsed, list):
        return next((item for item in parsed if isinstance(item, dict)), None)
    if isinstance(parsed, dict):
        return parsed
    return None


def _usage_from_dict(usage: Any) -> UsageMetadata | None:
    if not isinstance(usage, dict):
        return None

    def _count(key: str) -> int | None:
        value = _as_number(usage.get(key))
        return int(value) if value is not None else None

    result = UsageMetadata(
        prompt_token_count=_count("promptTokenCount"),
        candidates_token_count=_count("candidatesTokenCount"),
        cached_content_token_count=_count("cachedContentTokenCount"),
        total_token_count=_count("totalTokenCount"),
    )
    return None if result.is_empty() else result


def extract_usage_metadata(body: dict[str, Any]) -> UsageMetadata | None:
    """Usage from an enveloped (``response.usageMetadata``) or bare payload."""
    inner = body.get("response")
    if isinstance(inner, dict):
        usage = _usage_from_dict(inner.get("usageMetadata"))
        if usage is not None:
            return usage
    return _usage_from_dict(body.get("usageMetadata"))


def extract_usage_from_sse_payload(payload: str) -> UsageMetadata | None:
    """Scan a buffered SSE stream; the last event carrying usage wins."""
    found: UsageMetadata | None = None
    for line in payload.split("\n"):
        if not line.startswith("data:"):
            continue
        json_text = line[5:].strip()
        if not json_text:
            continue
        try:
            parsed = json.loads(json_text)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            usage = extract_usage_metadata(parsed)
            if usage is not None:
                found = usage
    return found


# ---------------------------------------------------------------------------
# Preview access 404 rewrite
# ---------------------------------------------------------------------------


def _matches_preview_model(target: str | None, pattern: str) -> bool:
    if not target:
        return False
    return re.search(pattern, target, re.IGNORECASE) is not None


def rewrite_preview_access_error(
    body: dict[str, Any],
    status: int,
    requested_model: str | None = None,
    *,
    pattern: str = DEFAULT_PREVIEW_MODEL_PATTERN,
) -> dict[str, Any] | None:
    """Rewrite the backend's "model requires preview access" 404 into an actionable message.

    Returns a patched copy of ``body`` or None when the error does not match.
    """
    if status != 404:
        return None

    error = body.get("error")
    error = dict(error) if isinstance(error, dict) else {}
    message = error.get("message")
    message = message.strip() if isinstance(message, str) else ""

    if not (
        _matches_preview_model(requested_model, pattern)
        or _matches_preview_model(message, pattern)
    ):
        return None

    prefix = message.rstrip(".") if message else "Requested entity was not found"
    model_label = f"'{requested_model}'" if requested_model else "This preview model"
    error["message"] = (
        f"{prefix}. {model_label} requires preview access for your account. "
        f"Enable preview features at {PREVIEW_ACCESS_LINK}, or pick a generally available model."
    )
    return {**body, "error": error}


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def dumps_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


__all__ = [
    "DEFAULT_PREVIEW_MODEL_PATTERN",
    "UsageMetadata",
    "dumps_json",
    "extract_usage_from_sse_payload",
    "extract_usage_metadata",
    "generate_request_id",
    "get_session_id",
    "new_session_id",
    "normalize_thinking_config",
    "parse_gemini_api_body",
    "rewrite_preview_access_error",
]
