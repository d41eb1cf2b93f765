from __future__ import annotations

from pathlib import Path

import pytest

from antigravity_gateway.config.settings import Config
from antigravity_gateway.core.exceptions import GatewayError, RequestTransformError
from antigravity_gateway.core.logger import logger, setup_logger


def test_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "ANTIGRAVITY_DEBUG",
        "LOG_LEVEL",
        "ANTIGRAVITY_ENDPOINT",
        "ANTIGRAVITY_MIN_SIGNATURE_LENGTH",
        "ANTIGRAVITY_MODEL_TABLES_FILE",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Config()
    assert settings.debug is False
    assert settings.log_level == "INFO"
    assert settings.endpoint == "https://daily-cloudcode-pa.sandbox.googleapis.com"
    assert settings.min_signature_length == 50
    assert settings.model_tables_file is None


def test_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTIGRAVITY_DEBUG", "true")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("ANTIGRAVITY_ENDPOINT", "https://cloudcode-pa.googleapis.com/")
    monkeypatch.setenv("ANTIGRAVITY_SIGNATURE_CACHE_MAX_SESSIONS", "8")

    settings = Config()
    assert settings.debug is True
    assert settings.log_level == "DEBUG"
    assert settings.endpoint == "https://cloudcode-pa.googleapis.com"
    assert settings.signature_cache_max_sessions == 8


def test_setup_logger_is_idempotent_and_writes_debug_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    log_file = tmp_path / "debug.log"
    monkeypatch.setenv("ANTIGRAVITY_DEBUG", "1")
    monkeypatch.setenv("ANTIGRAVITY_DEBUG_LOG_FILE", str(log_file))
    settings = Config()

    setup_logger(settings)
    setup_logger(settings)
    logger.debug("[Antigravity] debug-line")

    # 关闭 debug 后重新配置，file sink 被移除并 flush
    monkeypatch.setenv("ANTIGRAVITY_DEBUG", "0")
    setup_logger(Config())

    assert log_file.read_text(encoding="utf-8").count("debug-line") == 1


def test_gateway_error_str_includes_detail() -> None:
    err = RequestTransformError("request body is not valid JSON", detail="line 1")
    assert isinstance(err, GatewayError)
    assert str(err) == "request body is not valid JSON: line 1"
    assert str(GatewayError("plain")) == "plain"


def test_startup_warnings_flag_disabled_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTIGRAVITY_SIGNATURE_CACHE_MAX_ENTRIES", "0")
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="WARNING", format="{message}")
    try:
        Config().log_startup_warnings()
    finally:
        logger.remove(handler_id)

    assert any("Signature cache" in m for m in messages)
