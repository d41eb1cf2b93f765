"""Types shared by the gateway and the per-family transformers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class TransformContext:
    """Per-call context, built once by the gateway."""

    model: str
    project_id: str
    streaming: bool
    request_id: str
    session_id: str


@dataclass(frozen=True, slots=True)
class TransformDebugInfo:
    transformer: str
    tool_count: int


@dataclass(frozen=True, slots=True)
class TransformResult:
    body: str
    debug_info: TransformDebugInfo


@dataclass(frozen=True, slots=True)
class WrappedRequestBody:
    """Body already shaped as a v1internal envelope by an upstream caller."""

    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class CanonicalRequestBody:
    """Public Gemini API request body that still needs a family transform."""

    payload: dict[str, Any]


ParsedRequestBody = Union[WrappedRequestBody, CanonicalRequestBody]


__all__ = [
    "CanonicalRequestBody",
    "ParsedRequestBody",
    "TransformContext",
    "TransformDebugInfo",
    "TransformResult",
    "WrappedRequestBody",
]
