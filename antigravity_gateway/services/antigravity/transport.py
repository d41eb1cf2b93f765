"""httpx transport that routes public Gemini API calls through Antigravity.

用法::

    transport = AntigravityTransport(credentials=get_credentials)
    async with httpx.AsyncClient(transport=transport) as client:
        resp = await client.post(
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-pro:generateContent",
            json=payload,
        )

非 ``generativelanguage.googleapis.com`` 的请求直接交给内层 transport，
不会获取 OAuth 凭证。
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Union

import httpx

from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.debug import start_debug_request
from antigravity_gateway.services.antigravity.gateway import (
    AntigravityGateway,
    is_generative_language_request,
)


@dataclass(frozen=True, slots=True)
class AntigravityCredentials:
    access_token: str
    project_id: str


CredentialsProvider = Callable[
    [], Union[AntigravityCredentials, Awaitable[AntigravityCredentials]]
]


class AntigravityTransport(httpx.AsyncBaseTransport):
    """Wrap an inner async transport with the Antigravity gateway."""

    def __init__(
        self,
        credentials: AntigravityCredentials | CredentialsProvider,
        *,
        gateway: AntigravityGateway | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self.gateway = gateway or AntigravityGateway()
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def _resolve_credentials(self) -> AntigravityCredentials:
        if isinstance(self._credentials, AntigravityCredentials):
            return self._credentials
        result = self._credentials()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not is_generative_language_request(request.url):
            return await self._transport.handle_async_request(request)

        await request.aread()
        credentials = await self._resolve_credentials()

        prepared = self.gateway.prepare_request(
            request,
            access_token=credentials.access_token,
            project_id=credentials.project_id,
        )
        if not prepared.intercepted:
            return await self._transport.handle_async_request(prepared.request)

        if prepared.error is not None:
            logger.warning("[Antigravity] 请求以原始 body 转发: {}", prepared.error)

        outbound = prepared.request
        debug = start_debug_request(
            original_url=str(request.url),
            resolved_url=str(outbound.url),
            method=outbound.method,
            headers=outbound.headers,
            body=outbound.content,
            streaming=prepared.streaming,
            project_id=credentials.project_id,
            session_id=self.gateway.session_id,
            enabled=self.gateway.settings.debug,
        )

        response = await self._transport.handle_async_request(outbound)
        # handle_async_request 返回的 response 未绑定 request
        response.request = outbound

        normalized = await self.gateway.normalize_response(
            response,
            streaming=prepared.streaming,
            requested_model=prepared.requested_model,
            debug=debug,
        )
        # 原始 response 的 stream 已被读完，释放底层连接
        if normalized.response is not response:
            await response.aclose()
        return normalized.response

    async def aclose(self) -> None:
        await self._transport.aclose()


__all__ = ["AntigravityCredentials", "AntigravityTransport", "CredentialsProvider"]
