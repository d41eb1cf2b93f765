"""Antigravity thinking block signature cache.

Gemini 家族接受 dummy signature，Claude 家族必须拿到真实签名。同一 session
内模型切换时，真实签名只能通过这里在两个家族之间传递：

- Gemini transform 覆盖签名前，先把真实签名写入缓存
- Claude transform 遇到无法校验的签名时，从缓存恢复

Key 为 (session_id, thinking 原文)。两级 LRU 限制内存：session 数量上限 +
每个 session 的条目上限。读取只刷新 LRU 顺序，不删除。
"""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SignatureCacheStats:
    sessions: int
    entries: int
    hits: int
    misses: int
    writes: int
    evictions: int


class SignatureCache:
    """Thread-safe, session-scoped LRU cache of thinking signatures."""

    def __init__(self, max_sessions: int = 64, max_entries_per_session: int = 512) -> None:
        self._sessions: OrderedDict[str, OrderedDict[str, str]] = OrderedDict()
        self._max_sessions = max_sessions
        self._max_entries = max_entries_per_session
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._evictions = 0

    def put(self, session_id: str, thinking_text: str, signature: str) -> None:
        if not session_id or not thinking_text or not signature:
            return
        if self._max_sessions <= 0 or self._max_entries <= 0:
            return

        key = self._key(thinking_text)
        with self._lock:
            entries = self._sessions.get(session_id)
            if entries is None:
                entries = OrderedDict()
                self._sessions[session_id] = entries
                while len(self._sessions) > self._max_sessions:
                    _, evicted = self._sessions.popitem(last=False)
                    self._evictions += len(evicted)
            else:
                self._sessions.move_to_end(session_id)

            entries[key] = signature
            entries.move_to_end(key)
            while len(entries) > self._max_entries:
                entries.popitem(last=False)
                self._evictions += 1
            self._writes += 1

    def get(self, session_id: str, thinking_text: str) -> str | None:
        if not session_id or not thinking_text:
            return None

        key = self._key(thinking_text)
        with self._lock:
            entries = self._sessions.get(session_id)
            signature = entries.get(key) if entries is not None else None
            if signature is None:
                self._misses += 1
                return None
            self._sessions.move_to_end(session_id)
            entries.move_to_end(key)
            self._hits += 1
            return signature

    def clear(self, session_id: str | None = None) -> None:
        with self._lock:
            if session_id is None:
                self._sessions.clear()
            else:
                self._sessions.pop(session_id, None)

    def stats(self) -> SignatureCacheStats:
        with self._lock:
            return SignatureCacheStats(
                sessions=len(self._sessions),
                entries=sum(len(e) for e in self._sessions.values()),
                hits=self._hits,
                misses=self._misses,
                writes=self._writes,
                evictions=self._evictions,
            )

    def __len__(self) -> int:
        with self._lock:
            return sum(len(e) for e in self._sessions.values())

    def _key(self, thinking_text: str) -> str:
        # 完整摘要：thinking 原文可能很长，不直接作为 key 保存
        return hashlib.sha256(thinking_text.encode("utf-8")).hexdigest()


__all__ = ["SignatureCache", "SignatureCacheStats"]
