"""Antigravity translation gateway.

Rewrites outbound public Gemini API calls (``generativelanguage.googleapis.com``)
into Antigravity v1internal calls, and normalizes the backend's responses
back into the public shape.

One ``AntigravityGateway`` instance is one session: it owns the session id
stamped into every request and the signature cache shared by all calls of
that session. Failures never propagate; they are reported through the
``outcome`` / ``error`` fields of the returned result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

import httpx

from antigravity_gateway.config.settings import Config, config
from antigravity_gateway.core.exceptions import RequestTransformError
from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.constants import (
    API_KEY_HEADERS,
    CLAUDE_MODEL_KEYWORD,
    CLIENT_METADATA,
    GENERATIVE_LANGUAGE_HOST,
    GOOG_API_CLIENT,
    HTTP_USER_AGENT,
    MODEL_ACTION_PATTERN,
    STREAM_ACTION,
    V1INTERNAL_PATH_TEMPLATE,
)
from antigravity_gateway.services.antigravity.debug import DebugContext
from antigravity_gateway.services.antigravity.envelope import (
    parse_request_body,
    refresh_wrapped_request,
)
from antigravity_gateway.services.antigravity.models import ModelResolver
from antigravity_gateway.services.antigravity.request_helpers import (
    dumps_json,
    generate_request_id,
    new_session_id,
)
from antigravity_gateway.services.antigravity.response import (
    NormalizedResponse,
    normalize_response,
)
from antigravity_gateway.services.antigravity.signature_cache import SignatureCache
from antigravity_gateway.services.antigravity.transform.claude import transform_claude_request
from antigravity_gateway.services.antigravity.transform.gemini import transform_gemini_request
from antigravity_gateway.services.antigravity.transform.types import (
    TransformContext,
    TransformDebugInfo,
    WrappedRequestBody,
)

_MODEL_ACTION_RE = re.compile(MODEL_ACTION_PATTERN)

# 改写 URL / body 后由 httpx 重新计算
_STALE_REQUEST_HEADERS = ("Host", "Content-Length", "Transfer-Encoding")


class RequestOutcome(str, Enum):
    """What the gateway did with an outbound call."""

    PASSTHROUGH = "passthrough"  # 非目标请求，原样转发
    ROUTED = "routed"  # URL / header 已改写，body 为空
    REFRESHED = "refreshed"  # 调用方已自行封装信封，仅刷新路由字段
    TRANSFORMED = "transformed"  # 经 Gemini / Claude transform 封装
    DEGRADED = "degraded"  # body 转换失败，原始 body 转发


@dataclass(frozen=True, slots=True)
class PreparedRequest:
    request: httpx.Request
    streaming: bool = False
    requested_model: str | None = None
    outcome: RequestOutcome = RequestOutcome.PASSTHROUGH
    transform: TransformDebugInfo | None = None
    error: Exception | None = None

    @property
    def intercepted(self) -> bool:
        return self.outcome is not RequestOutcome.PASSTHROUGH


def is_generative_language_request(url: str | httpx.URL) -> bool:
    return GENERATIVE_LANGUAGE_HOST in str(url)


def _read_body(request: httpx.Request) -> bytes:
    try:
        return request.content
    except httpx.RequestNotRead:
        return request.read()


def _rebuild_request(
    request: httpx.Request,
    url: str,
    headers: httpx.Headers,
    body: bytes,
) -> httpx.Request:
    for name in _STALE_REQUEST_HEADERS:
        headers.pop(name, None)
    return httpx.Request(
        request.method,
        url,
        headers=headers,
        content=body,
        extensions=request.extensions,
    )


class AntigravityGateway:
    """Session-scoped request router and response normalizer."""

    def __init__(
        self,
        *,
        settings: Config | None = None,
        signature_cache: SignatureCache | None = None,
        model_resolver: ModelResolver | None = None,
        session_id: str | None = None,
    ) -> None:
        self.settings = settings or config
        if signature_cache is None:
            signature_cache = SignatureCache(
                max_sessions=self.settings.signature_cache_max_sessions,
                max_entries_per_session=self.settings.signature_cache_max_entries,
            )
        if model_resolver is None:
            model_resolver = (
                ModelResolver.from_file(self.settings.model_tables_file)
                if self.settings.model_tables_file
                else ModelResolver()
            )
        self.signature_cache = signature_cache
        self.model_resolver = model_resolver
        self.session_id = session_id or new_session_id()

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def prepare_request(
        self,
        request: httpx.Request,
        *,
        access_token: str,
        project_id: str,
    ) -> PreparedRequest:
        """Rewrite an outbound public Gemini API call for the v1internal backend.

        Non-matching calls come back as PASSTHROUGH. Body transform failures
        come back as DEGRADED: URL and headers are rewritten, the original
        body is forwarded as-is and ``error`` holds the cause.
        """
        url = str(request.url)
        if not is_generative_language_request(url):
            return PreparedRequest(request=request)

        headers = httpx.Headers(request.headers)
        headers["Authorization"] = f"Bearer {access_token}"
        for name in API_KEY_HEADERS:
            headers.pop(name, None)

        body = _read_body(request)

        match = _MODEL_ACTION_RE.search(url)
        if not match:
            return PreparedRequest(request=_rebuild_request(request, url, headers, body))

        raw_model, action = match.group(1), match.group(2)
        effective_model = self.model_resolver.resolve(raw_model)
        streaming = action == STREAM_ACTION

        target_url = f"{self.settings.endpoint}{V1INTERNAL_PATH_TEMPLATE.format(action=action)}"
        if streaming:
            target_url = f"{target_url}?alt=sse"

        outcome, new_body, debug_info, error = self._rewrite_body(
            body,
            model=effective_model,
            project_id=project_id,
            streaming=streaming,
        )

        if streaming:
            headers["Accept"] = "text/event-stream"
        headers["User-Agent"] = HTTP_USER_AGENT
        headers["X-Goog-Api-Client"] = GOOG_API_CLIENT
        headers["Client-Metadata"] = CLIENT_METADATA

        if debug_info is not None:
            logger.debug(
                "[Antigravity] {} -> {} via {} transformer (tools={})",
                raw_model,
                effective_model,
                debug_info.transformer,
                debug_info.tool_count,
            )

        return PreparedRequest(
            request=_rebuild_request(request, target_url, headers, new_body),
            streaming=streaming,
            requested_model=raw_model,
            outcome=outcome,
            transform=debug_info,
            error=error,
        )

    def _rewrite_body(
        self,
        body: bytes,
        *,
        model: str,
        project_id: str,
        streaming: bool,
    ) -> tuple[RequestOutcome, bytes, TransformDebugInfo | None, Exception | None]:
        if not body:
            return RequestOutcome.ROUTED, body, None, None

        try:
            parsed = parse_request_body(body)
            if isinstance(parsed, WrappedRequestBody):
                refreshed = refresh_wrapped_request(
                    parsed.payload,
                    model=model,
                    session_id=self.session_id,
                )
                return RequestOutcome.REFRESHED, dumps_json(refreshed).encode("utf-8"), None, None

            context = TransformContext(
                model=model,
                project_id=project_id,
                streaming=streaming,
                request_id=generate_request_id(),
                session_id=self.session_id,
            )
            transform = (
                transform_claude_request
                if CLAUDE_MODEL_KEYWORD in model.lower()
                else transform_gemini_request
            )
            result = transform(
                context,
                parsed.payload,
                signature_cache=self.signature_cache,
                min_signature_length=self.settings.min_signature_length,
            )
        except Exception as e:
            logger.warning("[Antigravity] 请求体转换失败，按原始 body 转发: model={}, error={}", model, e)
            error = (
                e
                if isinstance(e, RequestTransformError)
                else RequestTransformError("request transform failed", detail=repr(e))
            )
            return RequestOutcome.DEGRADED, body, None, error

        return RequestOutcome.TRANSFORMED, result.body.encode("utf-8"), result.debug_info, None

    # ------------------------------------------------------------------
    # Response
    # ------------------------------------------------------------------

    async def normalize_response(
        self,
        response: httpx.Response,
        *,
        streaming: bool,
        requested_model: str | None = None,
        debug: DebugContext | None = None,
    ) -> NormalizedResponse:
        return await normalize_response(
            response,
            streaming=streaming,
            requested_model=requested_model,
            settings=self.settings,
            debug=debug,
        )


__all__ = [
    "AntigravityGateway",
    "PreparedRequest",
    "RequestOutcome",
    "is_generative_language_request",
]
