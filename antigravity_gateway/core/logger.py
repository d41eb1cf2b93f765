"""Loguru logger setup.

All modules import ``logger`` from here and log with brace formatting::

    logger.info("[Antigravity] model={}", model)

``setup_logger`` is idempotent; it replaces the default loguru sink with a
stderr sink at the configured level and, when configured, a rotating file
sink for debug traces.
"""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from antigravity_gateway.config.settings import Config

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}"

_setup_lock = threading.Lock()
_handler_ids: list[int] = []


def setup_logger(settings: Config | None = None) -> None:
    """Configure loguru sinks from settings (defaults to the global config)."""
    if settings is None:
        from antigravity_gateway.config.settings import config as settings

    with _setup_lock:
        if _handler_ids:
            for handler_id in _handler_ids:
                logger.remove(handler_id)
            _handler_ids.clear()
        else:
            # 首次初始化：移除 loguru 默认的 stderr handler
            logger.remove()

        _handler_ids.append(
            logger.add(sys.stderr, level=settings.log_level, format=_CONSOLE_FORMAT)
        )
        if settings.debug and settings.debug_log_file:
            _handler_ids.append(
                logger.add(
                    settings.debug_log_file,
                    level="DEBUG",
                    format=_FILE_FORMAT,
                    rotation="10 MB",
                    retention=5,
                    enqueue=True,
                )
            )

    settings.log_startup_warnings()


__all__ = ["logger", "setup_logger"]
