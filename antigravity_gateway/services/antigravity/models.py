"""Model alias / fallback tables.

Aliases rename a caller-facing id to the backend's internal id. Fallbacks
degrade a model the backend cannot serve to a close substitute. Aliases win
over fallbacks; a model found in neither table is used as-is.

The tables are plain data so they can change without touching transform
logic. Extra entries can be loaded from a JSON file::

    {"aliases": {"my-model": "internal-id"}, "fallbacks": {"x": "y"}}
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path

from antigravity_gateway.core.logger import logger

MODEL_ALIASES: dict[str, str] = {
    "gemini-2.5-computer-use-preview-10-2025": "rev19-uic3-1p",
    "gemini-3-pro-image-preview": "gemini-3-pro-image",
    "gemini-3-pro-preview": "gemini-3-pro-high",
    "gemini-claude-sonnet-4-5": "claude-sonnet-4-5",
    "gemini-claude-sonnet-4-5-thinking": "claude-sonnet-4-5-thinking",
    "gemini-claude-opus-4-5-thinking": "claude-opus-4-5-thinking",
}

MODEL_FALLBACKS: dict[str, str] = {
    "gemini-2.5-flash-image": "gemini-2.5-flash",
}


class ModelResolver:
    """Resolve caller-facing model ids through alias, then fallback tables."""

    def __init__(
        self,
        aliases: Mapping[str, str] | None = None,
        fallbacks: Mapping[str, str] | None = None,
    ) -> None:
        self._aliases = dict(MODEL_ALIASES if aliases is None else aliases)
        self._fallbacks = dict(MODEL_FALLBACKS if fallbacks is None else fallbacks)

    def resolve(self, model: str) -> str:
        aliased = self._aliases.get(model)
        if aliased:
            return aliased
        return self._fallbacks.get(model) or model

    def update(
        self,
        *,
        aliases: Mapping[str, str] | None = None,
        fallbacks: Mapping[str, str] | None = None,
    ) -> None:
        if aliases:
            self._aliases.update(aliases)
        if fallbacks:
            self._fallbacks.update(fallbacks)

    @classmethod
    def from_file(cls, path: str | Path) -> ModelResolver:
        """Default tables extended with the entries of a JSON file.

        A missing or malformed file is logged and ignored; the defaults still apply.
        """
        resolver = cls()
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("[Antigravity] 无法加载模型映射表 {}: {}", path, e)
            return resolver

        if not isinstance(data, dict):
            logger.warning("[Antigravity] 模型映射表格式错误（需要 JSON object）: {}", path)
            return resolver

        resolver.update(
            aliases=_string_table(data.get("aliases")),
            fallbacks=_string_table(data.get("fallbacks")),
        )
        return resolver


def _string_table(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str) and v}


__all__ = ["MODEL_ALIASES", "MODEL_FALLBACKS", "ModelResolver"]
