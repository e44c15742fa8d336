"""Tests for logging utilities."""

from __future__ import annotations

import logging

from persona_digest.core.config import LoggingSettings
from persona_digest.core.logging import configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="DEBUG", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG


def test_structured_logging_uses_key_value_format() -> None:
    configure_logging(LoggingSettings(level="INFO", structured=True))

    handler = logging.getLogger().handlers[0]
    record = logging.LogRecord("demo", logging.INFO, __file__, 1, "hello", None, None)
    line = handler.format(record)

    assert "level=INFO" in line
    assert "logger=demo" in line
    assert "msg='hello'" in line
    assert logging.getLogger("httpx").level == logging.WARNING
