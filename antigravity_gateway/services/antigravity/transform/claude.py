"""Request transform for Claude models served through the Antigravity proxy.

Claude 要求 thinking block 携带真实签名，处理规则与 Gemini 相反：
- functionCall parts：原样保留，不做签名校验
- thinking parts：签名有效则保留；否则按 (session_id, text) 从缓存恢复；
  缓存未命中则整个 part 丢弃（无有效签名的 thinking block 上游无法接受）
"""

from __future__ import annotations

from typing import Any

from antigravity_gateway.core.logger import logger
from antigravity_gateway.services.antigravity.constants import (
    CLAUDE_MAX_OUTPUT_TOKENS,
    CLAUDE_THINKING_OUTPUT_OVERHEAD,
    MIN_SIGNATURE_LENGTH,
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


def _ensure_output_room_for_thinking(gen_config: dict[str, Any]) -> None:
    """Claude 要求 maxOutputTokens > thinkingBudget。

    优先增加 maxOutputTokens；超过上限时才减少 budget。
    """
    thinking_config = gen_config.get("thinkingConfig")
    if not isinstance(thinking_config, dict):
        return
    budget = thinking_config.get("thinkingBudget")
    if isinstance(budget, bool) or not isinstance(budget, int) or budget <= 0:
        return

    current_max = gen_config.get("maxOutputTokens")
    if isinstance(current_max, (int, float)) and not isinstance(current_max, bool):
        if current_max > budget:
            return

    ideal_max = budget + CLAUDE_THINKING_OUTPUT_OVERHEAD
    if ideal_max > CLAUDE_MAX_OUTPUT_TOKENS:
        ideal_max = CLAUDE_MAX_OUTPUT_TOKENS
        thinking_config["thinkingBudget"] = min(
            budget, CLAUDE_MAX_OUTPUT_TOKENS - CLAUDE_THINKING_OUTPUT_OVERHEAD
        )
    gen_config["maxOutputTokens"] = ideal_max


class ClaudeProxyPolicy(FamilyPolicy):
    name = "claude"

    def finish_generation_config(self, payload: dict[str, Any], context: TransformContext) -> None:
        gen_config = payload.get("generationConfig")
        if isinstance(gen_config, dict):
            _ensure_output_room_for_thinking(gen_config)

    def rewrite_model_parts(
        self,
        parts: list[Any],
        *,
        session_id: str,
        signature_cache: SignatureCache,
        min_signature_length: int,
    ) -> list[Any]:
        kept: list[Any] = []
        for part in parts:
            if (
                not isinstance(part, dict)
                or "functionCall" in part
                or part.get("thought") is not True
            ):
                kept.append(part)
                continue

            if is_authentic_signature(part.get("thoughtSignature"), min_signature_length):
                kept.append(part)
                continue

            text = part.get("text")
            cached = signature_cache.get(session_id, text) if isinstance(text, str) else None
            if cached:
                part["thoughtSignature"] = cached
                kept.append(part)
                continue

            logger.debug(
                "[Antigravity Transform] 丢弃无有效签名的 thinking block: session={}, text_len={}",
                session_id,
                len(text) if isinstance(text, str) else 0,
            )
        return kept


CLAUDE_POLICY = ClaudeProxyPolicy()


def transform_claude_request(
    context: TransformContext,
    payload: dict[str, Any],
    *,
    signature_cache: SignatureCache,
    min_signature_length: int = MIN_SIGNATURE_LENGTH,
) -> TransformResult:
    return run_transform(
        context,
        payload,
        CLAUDE_POLICY,
        signature_cache=signature_cache,
        min_signature_length=min_signature_length,
    )


__all__ = ["CLAUDE_POLICY", "ClaudeProxyPolicy", "transform_claude_request"]
