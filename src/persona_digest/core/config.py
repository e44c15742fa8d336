"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class LlmSettings(BaseModel):
    """Settings for the hosted AI provider."""

    provider: str = Field(
        default="groq", description="Backend: groq, openai, anthropic or huggingface"
    )
    api_key: str | None = Field(default=None, description="Provider API key")
    base_url: str | None = Field(
        default=None, description="Override for the provider base URL"
    )
    model: str | None = Field(
        default=None, description="Force a single model for every use case"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP timeout for provider requests"
    )
    call_timeout_seconds: float | None = Field(
        default=60.0,
        gt=0,
        description="Upper bound for one summarisation call, transport included",
    )


class SchedulerSettings(BaseModel):
    """Settings controlling digest cadence and load bounds."""

    batch_size: int = Field(
        default=5, ge=1, description="Users processed concurrently per batch"
    )
    batch_delay_seconds: float = Field(
        default=2.0, ge=0, description="Pause between consecutive batches"
    )
    all_users_delay_seconds: float = Field(
        default=1.0, ge=0, description="Pause between users for manual all-users runs"
    )
    dedup_window_hours: float = Field(
        default=20.0, gt=0, description="Recent digest window that suppresses reruns"
    )
    tick_minute: int = Field(
        default=0, ge=0, le=59, description="Minute past each UTC hour to tick"
    )
    lookback_hours: float = Field(
        default=24.0, gt=0, description="How far back to fetch candidate messages"
    )
    fetch_limit: int = Field(
        default=50, ge=1, description="Hard cap on messages fetched per user"
    )


class LearningSettings(BaseModel):
    """Bounds for feedback driven persona re-weighting."""

    optimize_threshold: int = Field(
        default=10, ge=1, description="New feedback entries required to optimise"
    )
    step: float = Field(
        default=0.5, gt=0, description="Weight change per net feedback signal"
    )
    min_weight: float = Field(default=0.0, ge=0, description="Lower weight bound")
    max_weight: float = Field(default=5.0, gt=0, description="Upper weight bound")
    min_category_priority: int = Field(default=1, ge=0)
    max_category_priority: int = Field(default=5, ge=1)
    max_feedback_entries: int = Field(
        default=100, ge=1, description="Feedback history retained per persona"
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./persona_digest.db"), description="SQLite database path"
    )


class MailSettings(BaseModel):
    """Settings for the file drop mail source."""

    drop_root: Path = Field(
        default=Path("./maildrop"),
        description="Directory holding one sub-directory of .eml files per user",
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Emit key=value structured log lines"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    llm: LlmSettings = Field(default_factory=LlmSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    learning: LearningSettings = Field(default_factory=LearningSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    mail: MailSettings = Field(default_factory=MailSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "PERSONA_DIGEST_"
_NESTING = "__"
_BOOLEANS = {"true": True, "false": False}


def _prefixed(values: Mapping[str, str | None]) -> dict[str, str | None]:
    return {
        key: value
        for key, value in values.items()
        if key and key.startswith(ENV_PREFIX)
    }


def _read_sources(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, str | None]:
    """Return prefixed variables; the process environment overrides the file."""
    merged: dict[str, str | None] = {}
    if env_file and Path(env_file).is_file():
        merged.update(_prefixed(dotenv_values(env_file)))
    if include_environment:
        merged.update(_prefixed(os.environ))
    return merged


def _coerce_scalar(value: str | None) -> Any:
    """Map blank strings to ``None`` and literal booleans to ``bool``."""
    if value is None or value == "":
        return None
    return _BOOLEANS.get(value.lower(), value)


def _nest(flat: Mapping[str, str | None]) -> dict[str, Any]:
    """Expand ``PERSONA_DIGEST_SECTION__FIELD`` keys into nested mappings."""
    tree: dict[str, Any] = {}
    for key, value in flat.items():
        path = [part.lower() for part in key[len(ENV_PREFIX) :].split(_NESTING) if part]
        if not path:
            continue
        node = tree
        for part in path[:-1]:
            node = cast(dict[str, Any], node.setdefault(part, {}))
        node[path[-1]] = _coerce_scalar(value)
    return tree


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Build settings from an optional ``.env`` file, the environment and overrides.

    Keyword overrides replace whole top-level sections.
    """
    values = _nest(_read_sources(env_file, include_environment=include_environment))
    values.update(overrides)
    return AppSettings.model_validate(values)


__all__ = [
    "AppSettings",
    "ENV_PREFIX",
    "LearningSettings",
    "LlmSettings",
    "LoggingSettings",
    "MailSettings",
    "SchedulerSettings",
    "StorageSettings",
    "load_app_settings",
]
