"""
Antigravity 翻译网关

把公共 Gemini API 请求改写为 v1internal 请求，并把响应还原为公共格式。
"""

from antigravity_gateway.services.antigravity.gateway import (
    AntigravityGateway,
    PreparedRequest,
    RequestOutcome,
    is_generative_language_request,
)
from antigravity_gateway.services.antigravity.response import (
    NormalizedResponse,
    ResponseOutcome,
    normalize_response,
)
from antigravity_gateway.services.antigravity.signature_cache import SignatureCache
from antigravity_gateway.services.antigravity.transport import (
    AntigravityCredentials,
    AntigravityTransport,
)

__all__ = [
    "AntigravityCredentials",
    "AntigravityGateway",
    "AntigravityTransport",
    "NormalizedResponse",
    "PreparedRequest",
    "RequestOutcome",
    "ResponseOutcome",
    "SignatureCache",
    "is_generative_language_request",
    "normalize_response",
]
