"""Request transform for native Gemini models.

Gemini 家族的 v1internal 接受 dummy thoughtSignature，所以 model 轮次里的
thinking / functionCall parts 一律改写为 bypass 签名。真实签名在覆盖前写入
SignatureCache，以便同一 session 后续切换到 Claude 时还能恢复。
"""

from __future__ import annotations

from typing import Any

from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.constants import (
    DUMMY_THOUGHT_SIGNATURE,
    GOOGLE_SEARCH_FUNCTION_NAME,
    MIN_SIGNATURE_LENGTH,
    NATIVE_SEARCH_TOOL_KEYS,
    RETAINED_NATIVE_TOOL_KEYS,
    SEARCH_EXCLUSIVE_MODEL_KEYWORDS,
)
from antigravity_gateway.services.antigravity.signature_cache import SignatureCache
from antigravity_gateway.services.antigravity.transform.common import (
    FamilyPolicy,
    is_authentic_signature,
    run_transform,
)
from antigravity_gateway.services.antigravity.transform.types import (
    TransformContext,
    TransformResult,
)

# ---------------------------------------------------------------------------
# Google Search (grounding) 归一化
# ---------------------------------------------------------------------------


def _is_search_declaration(decl: Any) -> bool:
    return isinstance(decl, dict) and decl.get("name") == GOOGLE_SEARCH_FUNCTION_NAME


def _requests_google_search(tools: list[Any]) -> bool:
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        if any(key in tool for key in NATIVE_SEARCH_TOOL_KEYS):
            return True
        decls = tool.get("functionDeclarations")
        if isinstance(decls, list) and any(_is_search_declaration(d) for d in decls):
            return True
    return False


def is_search_exclusive_model(model: str) -> bool:
    """Models on which googleSearch cannot be combined with function declarations."""
    lower_model = model.lower()
    return any(kw in lower_model for kw in SEARCH_EXCLUSIVE_MODEL_KEYWORDS)


def normalize_search_tools(tools: list[Any]) -> list[dict[str, Any]]:
    """Convert google_search declarations to a single native googleSearch entry.

    The native entry takes the position of the first search request. Tools
    left without declarations or a retained native entry are dropped.
    """
    result: list[dict[str, Any]] = []
    search_index: int | None = None

    for tool in tools:
        if not isinstance(tool, dict):
            continue
        tool = dict(tool)
        has_search = False

        for key in NATIVE_SEARCH_TOOL_KEYS:
            if key in tool:
                tool.pop(key)
                has_search = True

        decls = tool.get("functionDeclarations")
        if isinstance(decls, list):
            kept = [d for d in decls if not _is_search_declaration(d)]
            if len(kept) != len(decls):
                has_search = True
            if kept:
                tool["functionDeclarations"] = kept
            else:
                tool.pop("functionDeclarations")

        if has_search and search_index is None:
            search_index = len(result)

        if tool.get("functionDeclarations") or any(k in tool for k in RETAINED_NATIVE_TOOL_KEYS):
            result.append(tool)

    if search_index is not None:
        result.insert(search_index, {"googleSearch": {}})
    return result


class GeminiFamilyPolicy(FamilyPolicy):
    name = "gemini"

    def normalize_tools(self, payload: dict[str, Any], context: TransformContext) -> None:
        tools = payload.get("tools")
        if not isinstance(tools, list) or not _requests_google_search(tools):
            return

        if is_search_exclusive_model(context.model):
            # flash 系列不支持 googleSearch 与 functionDeclarations 混用：搜索独占
            logger.debug("[Antigravity Transform] googleSearch 独占 tools: model={}", context.model)
            payload["tools"] = [{"googleSearch": {}}]
            return

        payload["tools"] = normalize_search_tools(tools)

    def rewrite_model_parts(
        self,
        parts: list[Any],
        *,
        session_id: str,
        signature_cache: SignatureCache,
        min_signature_length: int,
    ) -> list[Any]:
        for part in parts:
            if not isinstance(part, dict):
                continue
            if not (
                part.get("thought") is True
                or "thoughtSignature" in part
                or "functionCall" in part
            ):
                continue

            signature = part.get("thoughtSignature")
            text = part.get("text")
            if is_authentic_signature(signature, min_signature_length) and isinstance(text, str) and text:
                signature_cache.put(session_id, text, signature)

            part["thoughtSignature"] = DUMMY_THOUGHT_SIGNATURE
        return parts


GEMINI_POLICY = GeminiFamilyPolicy()


def transform_gemini_request(
    context: TransformContext,
    payload: dict[str, Any],
    *,
    signature_cache: SignatureCache,
    min_signature_length: int = MIN_SIGNATURE_LENGTH,
) -> TransformResult:
    return run_transform(
        context,
        payload,
        GEMINI_POLICY,
        signature_cache=signature_cache,
        min_signature_length=min_signature_length,
    )


__all__ = [
    "GEMINI_POLICY",
    "GeminiFamilyPolicy",
    "is_search_exclusive_model",
    "normalize_search_tools",
    "transform_gemini_request",
]
