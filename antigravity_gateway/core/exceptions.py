"""
网关异常定义

这些异常不会抛出到调用方：gateway / normalizer 捕获后记录到结果对象的
``error`` 字段（DEGRADED 变体），请求照常以原始内容继续。
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for translation gateway errors."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class RequestTransformError(GatewayError):
    """Outbound body could not be parsed or rewritten."""


class ResponseNormalizeError(GatewayError):
    """Backend response could not be unwrapped or annotated."""


__all__ = ["GatewayError", "RequestTransformError", "ResponseNormalizeError"]
