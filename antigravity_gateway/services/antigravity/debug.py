"""Request/response debug tracing (ANTIGRAVITY_DEBUG=1).

Sensitive headers are masked and bodies are truncated before logging.
"""

from __future__ import annotations

import itertools
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import httpx

from antigravity_gateway.config.settings import config
from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.constants import (
    DEBUG_BODY_PREVIEW_CHARS,
    SENSITIVE_HEADERS,
)

_request_counter = itertools.count(1)


@dataclass(frozen=True, slots=True)
class DebugContext:
    id: str
    streaming: bool
    started_at: float


def mask_headers(headers: Mapping[str, str] | Iterable[tuple[str, str]] | None) -> dict[str, str]:
    if headers is None:
        return {}
    items = headers.items() if isinstance(headers, Mapping) else headers
    masked: dict[str, str] = {}
    for key, value in items:
        masked[key] = "[redacted]" if key.lower() in SENSITIVE_HEADERS else value
    return masked


def format_body_preview(body: str | bytes | None) -> str | None:
    if not body:
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if len(body) <= DEBUG_BODY_PREVIEW_CHARS:
        return body
    return f"{body[:DEBUG_BODY_PREVIEW_CHARS]}... (truncated {len(body) - DEBUG_BODY_PREVIEW_CHARS} chars)"


def start_debug_request(
    *,
    original_url: str,
    resolved_url: str,
    method: str,
    headers: Mapping[str, str] | None,
    body: str | bytes | None,
    streaming: bool,
    project_id: str | None = None,
    session_id: str | None = None,
    enabled: bool | None = None,
) -> DebugContext | None:
    if not (config.debug if enabled is None else enabled):
        return None

    ctx = DebugContext(
        id=f"ANTIGRAVITY-{next(_request_counter)}",
        streaming=streaming,
        started_at=time.monotonic(),
    )
    log = logger.bind(debug_id=ctx.id)
    log.debug("[Antigravity Debug {}] {} {}", ctx.id, method, resolved_url)
    if original_url and original_url != resolved_url:
        log.debug("[Antigravity Debug {}] Original URL: {}", ctx.id, original_url)
    if project_id:
        log.debug("[Antigravity Debug {}] Project: {}", ctx.id, project_id)
    if session_id:
        log.debug("[Antigravity Debug {}] Session: {}", ctx.id, session_id)
    log.debug("[Antigravity Debug {}] Streaming: {}", ctx.id, "yes" if streaming else "no")
    log.debug("[Antigravity Debug {}] Headers: {}", ctx.id, mask_headers(headers))
    preview = format_body_preview(body)
    if preview:
        log.debug("[Antigravity Debug {}] Body Preview: {}", ctx.id, preview)
    return ctx


def log_debug_response(
    ctx: DebugContext | None,
    response: httpx.Response,
    *,
    note: str | None = None,
    body: str | None = None,
    error: BaseException | None = None,
    headers: Mapping[str, str] | None = None,
) -> None:
    if ctx is None:
        return

    log = logger.bind(debug_id=ctx.id)
    duration_ms = int((time.monotonic() - ctx.started_at) * 1000)
    log.debug(
        "[Antigravity Debug {}] Response {} {} ({}ms)",
        ctx.id,
        response.status_code,
        response.reason_phrase,
        duration_ms,
    )
    log.debug(
        "[Antigravity Debug {}] Response Headers: {}",
        ctx.id,
        mask_headers(headers if headers is not None else response.headers),
    )
    if note:
        log.debug("[Antigravity Debug {}] Note: {}", ctx.id, note)
    if error is not None:
        log.debug("[Antigravity Debug {}] Error: {!r}", ctx.id, error)
    preview = format_body_preview(body)
    if preview:
        log.debug("[Antigravity Debug {}] Response Body Preview: {}", ctx.id, preview)


__all__ = [
    "DebugContext",
    "format_body_preview",
    "log_debug_response",
    "mask_headers",
    "start_debug_request",
]
