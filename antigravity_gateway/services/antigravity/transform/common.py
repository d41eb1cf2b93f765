"""Shared request transform pipeline for both model families.

The Gemini and Claude-proxy transforms share every normalization step and
differ only at the points a ``FamilyPolicy`` covers:

- tool normalization (Google Search handling)
- thinking signature policy for model-authored parts
- generation config finishing (Claude output budget)

处理流程：
1. 移除 safetySettings（上游自行管理）
2. snake_case → camelCase（system_instruction / generation_config / tool_config）
3. toolConfig.functionCallingConfig.mode = VALIDATED
4. thinkingConfig 归一化
5. cachedContent 多来源合并
6. 移除 model（由信封顶层携带）
7. policy: tools / generationConfig / model parts 签名
8. 注入 sessionId 并构建 v1internal 信封
"""

from __future__ import annotations

import copy
from typing import Any

from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.constants import (
    DUMMY_THOUGHT_SIGNATURE,
    FUNCTION_CALLING_MODE,
    MIN_SIGNATURE_LENGTH,
)
from antigravity_gateway.services.antigravity.envelope import wrap_v1internal_request
from antigravity_gateway.services.antigravity.request_helpers import (
    dumps_json,
    normalize_thinking_config,
)
from antigravity_gateway.services.antigravity.signature_cache import SignatureCache
from antigravity_gateway.services.antigravity.transform.types import (
    TransformContext,
    TransformDebugInfo,
    TransformResult,
)

_TOP_LEVEL_KEY_RENAMES: dict[str, str] = {
    "system_instruction": "systemInstruction",
    "generation_config": "generationConfig",
    "tool_config": "toolConfig",
}

MODEL_ROLE = "model"


class FamilyPolicy:
    """Per-family divergence points. Defaults are no-ops."""

    name = "base"

    def normalize_tools(self, payload: dict[str, Any], context: TransformContext) -> None:
        return None

    def finish_generation_config(self, payload: dict[str, Any], context: TransformContext) -> None:
        return None

    def rewrite_model_parts(
        self,
        parts: list[Any],
        *,
        session_id: str,
        signature_cache: SignatureCache,
        min_signature_length: int,
    ) -> list[Any]:
        return parts


# ---------------------------------------------------------------------------
# Signature helpers
# ---------------------------------------------------------------------------


def is_authentic_signature(signature: Any, min_signature_length: int = MIN_SIGNATURE_LENGTH) -> bool:
    return (
        isinstance(signature, str)
        and signature != DUMMY_THOUGHT_SIGNATURE
        and len(signature) > min_signature_length
    )


def normalize_signature_alias(part: dict[str, Any]) -> None:
    """thought_signature → thoughtSignature (camelCase wins when both exist)."""
    if "thought_signature" not in part:
        return
    legacy = part.pop("thought_signature")
    if "thoughtSignature" not in part:
        part["thoughtSignature"] = legacy


# ---------------------------------------------------------------------------
# Shared normalization steps
# ---------------------------------------------------------------------------


def _drop_safety_settings(payload: dict[str, Any]) -> None:
    payload.pop("safetySettings", None)
    payload.pop("safety_settings", None)


def _normalize_to_camel_case(payload: dict[str, Any]) -> None:
    for snake, camel in _TOP_LEVEL_KEY_RENAMES.items():
        if snake not in payload:
            continue
        value = payload.pop(snake)
        # systemInstruction 以 snake_case 为准，其余 camelCase 优先
        if snake == "system_instruction" or payload.get(camel) is None:
            payload[camel] = value

    tools = payload.get("tools")
    if isinstance(tools, list):
        for tool in tools:
            if isinstance(tool, dict) and "function_declarations" in tool:
                decls = tool.pop("function_declarations")
                tool.setdefault("functionDeclarations", decls)

    gen_config = payload.get("generationConfig")
    if isinstance(gen_config, dict) and "thinking_config" in gen_config:
        thinking = gen_config.pop("thinking_config")
        gen_config.setdefault("thinkingConfig", thinking)


def _force_validated_function_calling(payload: dict[str, Any]) -> None:
    tool_config = payload.get("toolConfig")
    if tool_config is None:
        tool_config = payload["toolConfig"] = {}
    if not isinstance(tool_config, dict):
        return
    calling_config = tool_config.get("functionCallingConfig")
    if calling_config is None:
        calling_config = tool_config["functionCallingConfig"] = {}
    if isinstance(calling_config, dict):
        calling_config["mode"] = FUNCTION_CALLING_MODE


def _normalize_thinking(payload: dict[str, Any]) -> None:
    gen_config = payload.get("generationConfig")
    raw_thinking = gen_config.get("thinkingConfig") if isinstance(gen_config, dict) else None

    normalized = normalize_thinking_config(raw_thinking)
    if normalized is not None:
        if isinstance(gen_config, dict):
            gen_config["thinkingConfig"] = normalized
        else:
            payload["generationConfig"] = {"thinkingConfig": normalized}
    elif isinstance(gen_config, dict) and "thinkingConfig" in gen_config:
        # 不转发空的 / 无效的 thinkingConfig
        del gen_config["thinkingConfig"]


def _first_present(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


def _resolve_cached_content(payload: dict[str, Any]) -> None:
    extra_body = payload.get("extra_body")
    from_extra = None
    if isinstance(extra_body, dict):
        from_extra = _first_present(
            extra_body.get("cached_content"), extra_body.get("cachedContent")
        )

    cached_content = _first_present(
        payload.get("cached_content"), payload.get("cachedContent"), from_extra
    )

    payload.pop("cached_content", None)
    payload.pop("cachedContent", None)
    if isinstance(extra_body, dict):
        extra_body.pop("cached_content", None)
        extra_body.pop("cachedContent", None)
        if not extra_body:
            del payload["extra_body"]

    if cached_content:
        payload["cachedContent"] = cached_content


def _rewrite_model_turns(
    payload: dict[str, Any],
    policy: FamilyPolicy,
    *,
    session_id: str,
    signature_cache: SignatureCache,
    min_signature_length: int,
) -> None:
    contents = payload.get("contents")
    if not isinstance(contents, list):
        return

    kept: list[Any] = []
    for content in contents:
        # 非 model 角色（user 等）的 parts 不做任何检查或修改
        if not isinstance(content, dict) or content.get("role") != MODEL_ROLE:
            kept.append(content)
            continue
        parts = content.get("parts")
        if not isinstance(parts, list):
            kept.append(content)
            continue
        for part in parts:
            if isinstance(part, dict):
                normalize_signature_alias(part)
        rewritten = policy.rewrite_model_parts(
            parts,
            session_id=session_id,
            signature_cache=signature_cache,
            min_signature_length=min_signature_length,
        )
        if parts and not rewritten:
            # 上游拒绝空 parts：整轮 model 内容都被过滤时移除该轮
            logger.debug("[Antigravity Transform] 移除 parts 全部被过滤的 model 轮次: session={}", session_id)
            continue
        content["parts"] = rewritten
        kept.append(content)
    payload["contents"] = kept


def count_tools(payload: dict[str, Any]) -> int:
    """Function declarations plus native googleSearch / urlContext entries."""
    tools = payload.get("tools")
    if not isinstance(tools, list):
        return 0

    count = 0
    for tool in tools:
        if not isinstance(tool, dict):
            continue
        decls = tool.get("functionDeclarations")
        if isinstance(decls, list):
            count += len(decls)
        if "googleSearch" in tool:
            count += 1
        if "urlContext" in tool:
            count += 1
    return count


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def run_transform(
    context: TransformContext,
    payload: dict[str, Any],
    policy: FamilyPolicy,
    *,
    signature_cache: SignatureCache,
    min_signature_length: int = MIN_SIGNATURE_LENGTH,
) -> TransformResult:
    """Apply the shared steps plus ``policy`` and wrap the result in the envelope.

    ``payload`` itself is never mutated; all work happens on a deep copy.
    """
    request_payload = copy.deepcopy(payload)

    _drop_safety_settings(request_payload)
    _normalize_to_camel_case(request_payload)
    _force_validated_function_calling(request_payload)
    _normalize_thinking(request_payload)
    _resolve_cached_content(request_payload)
    request_payload.pop("model", None)

    policy.normalize_tools(request_payload, context)
    policy.finish_generation_config(request_payload, context)
    _rewrite_model_turns(
        request_payload,
        policy,
        session_id=context.session_id,
        signature_cache=signature_cache,
        min_signature_length=min_signature_length,
    )

    tool_count = count_tools(request_payload)
    wrapped = wrap_v1internal_request(request_payload, context)

    logger.debug(
        "[Antigravity Transform] transformer={}, model={}, streaming={}, tools={}, "
        "has_systemInstruction={}, has_cachedContent={}",
        policy.name,
        context.model,
        context.streaming,
        tool_count,
        "systemInstruction" in request_payload,
        "cachedContent" in request_payload,
    )

    return TransformResult(
        body=dumps_json(wrapped),
        debug_info=TransformDebugInfo(transformer=policy.name, tool_count=tool_count),
    )


__all__ = [
    "FamilyPolicy",
    "count_tools",
    "is_authentic_signature",
    "normalize_signature_alias",
    "run_transform",
]
