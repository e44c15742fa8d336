"""Logging configuration helpers."""

from __future__ import annotations

import logging.config
from typing import Any

from .config import LoggingSettings

_FORMATTERS: dict[str, dict[str, Any]] = {
    "plain": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    # key=value lines; the message is repr'd so embedded spaces stay parseable.
    "structured": {
        "format": "ts={asctime} level={levelname} logger={name} msg={message!r}",
        "style": "{",
    },
}

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore")


def build_logging_config(settings: LoggingSettings) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``settings``."""
    level = settings.level.upper()
    style = "structured" if settings.structured else "plain"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": _FORMATTERS[style]},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    logging.config.dictConfig(build_logging_config(settings))


__all__ = ["build_logging_config", "configure_logging"]
