"""
网关配置
从环境变量或 .env 文件加载配置
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

env_file = Path(".env")
if env_file.exists():
    load_dotenv(env_file)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    def __init__(self) -> None:
        # 日志配置
        # ANTIGRAVITY_DEBUG=1 时输出请求/响应调试信息（header 脱敏，body 截断）
        self.debug = _env_flag("ANTIGRAVITY_DEBUG")
        self.log_level = os.getenv("LOG_LEVEL", "DEBUG" if self.debug else "INFO").upper()
        self.debug_log_file = os.getenv("ANTIGRAVITY_DEBUG_LOG_FILE") or None

        # 上游端点（v1internal 所在的 base URL）
        self.endpoint = os.getenv(
            "ANTIGRAVITY_ENDPOINT",
            "https://daily-cloudcode-pa.sandbox.googleapis.com",
        ).rstrip("/")

        # Thinking signature 策略常量
        self.min_signature_length = int(os.getenv("ANTIGRAVITY_MIN_SIGNATURE_LENGTH", "50"))
        self.signature_cache_max_sessions = int(
            os.getenv("ANTIGRAVITY_SIGNATURE_CACHE_MAX_SESSIONS", "64")
        )
        self.signature_cache_max_entries = int(
            os.getenv("ANTIGRAVITY_SIGNATURE_CACHE_MAX_ENTRIES", "512")
        )

        # 预览模型 404 错误识别（匹配请求模型名或错误消息）
        self.preview_model_pattern = os.getenv(
            "ANTIGRAVITY_PREVIEW_MODEL_PATTERN", r"gemini[\s-]?3"
        )

        # 额外的模型别名 / 降级表（JSON: {"aliases": {...}, "fallbacks": {...}}）
        self.model_tables_file = os.getenv("ANTIGRAVITY_MODEL_TABLES_FILE") or None

    def log_startup_warnings(self) -> None:
        """Log configuration values that are likely mistakes."""
        from antigravity_gateway.core.logger import logger

        if self.min_signature_length <= 0:
            logger.warning(
                "ANTIGRAVITY_MIN_SIGNATURE_LENGTH={} 会让任意签名都被视为有效",
                self.min_signature_length,
            )
        if self.signature_cache_max_sessions <= 0 or self.signature_cache_max_entries <= 0:
            logger.warning("Signature cache 上限 <= 0，跨模型签名恢复将被禁用")
        if not self.endpoint.startswith("https://"):
            logger.warning("ANTIGRAVITY_ENDPOINT 不是 https 地址: {}", self.endpoint)

    def __repr__(self) -> str:
        """配置信息字符串表示"""
        return f"""
Configuration:
  Endpoint: {self.endpoint}
  Log Level: {self.log_level}
  Debug: {self.debug}
  Signature Cache: {self.signature_cache_max_sessions} sessions x {self.signature_cache_max_entries}
"""


# 创建全局配置实例
config = Config()
