"""Persona construction and tolerant conversion to and from plain mappings."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from persona_digest.core.datetime_utils import parse_datetime, serialize_datetime
from persona_digest.core.models import (
    FEEDBACK_ACTIONS,
    FOCUS_AREAS,
    SUMMARY_LENGTHS,
    SUMMARY_STYLES,
    CategoryWeight,
    FeedbackEntry,
    Persona,
    PersonaMetrics,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_SUMMARY_TIME = "08:00"
DEFAULT_FOCUS_AREAS = ("tasks", "deadlines", "meetings", "updates")
DEFAULT_CATEGORIES: dict[str, CategoryWeight] = {
    "work": CategoryWeight(
        5,
        ("meeting", "project", "deadline", "urgent", "action required", "important"),
    ),
    "personal": CategoryWeight(3, ("family", "friend", "personal", "invitation")),
    "newsletters": CategoryWeight(
        1, ("newsletter", "subscription", "digest", "unsubscribe")
    ),
    "social": CategoryWeight(2, ("linkedin", "facebook", "twitter", "notification")),
    "promotions": CategoryWeight(1, ("sale", "offer", "discount", "promotion", "coupon")),
}

_SUMMARY_TIME = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def default_persona(
    user_id: str,
    *,
    role: str | None = None,
    daily_summary_time: str | None = None,
    timezone: str | None = None,
) -> Persona:
    """Return the starter persona created for a newly onboarded user."""
    LOGGER.info("Creating default persona for user %s", user_id)
    summary_time = daily_summary_time or DEFAULT_SUMMARY_TIME
    if not is_valid_summary_time(summary_time):
        summary_time = DEFAULT_SUMMARY_TIME
    return Persona(
        user_id=user_id,
        role=role or "Professional",
        categories=dict(DEFAULT_CATEGORIES),
        summary_style="balanced",
        summary_length="medium",
        focus_areas=DEFAULT_FOCUS_AREAS,
        daily_summary_time=summary_time,
        timezone=timezone or "UTC",
        max_emails_per_summary=20,
        minimum_email_length=100,
        learning_enabled=True,
    )


def is_valid_summary_time(value: Any) -> bool:
    """Return ``True`` for ``HH:MM`` strings on a 24 hour clock."""
    return isinstance(value, str) and bool(_SUMMARY_TIME.match(value.strip()))


def persona_to_dict(persona: Persona) -> dict[str, Any]:
    """Serialise ``persona`` into JSON compatible primitives."""
    categories = None
    if persona.categories is not None:
        categories = {
            name: {"priority": weight.priority, "keywords": list(weight.keywords)}
            for name, weight in persona.categories.items()
        }
    return {
        "user_id": persona.user_id,
        "role": persona.role,
        "company": persona.company,
        "department": persona.department,
        "important_contacts": list(persona.important_contacts),
        "important_domains": list(persona.important_domains),
        "keywords": list(persona.keywords),
        "interests": list(persona.interests),
        "exclude_patterns": list(persona.exclude_patterns),
        "categories": categories,
        "summary_style": persona.summary_style,
        "summary_length": persona.summary_length,
        "focus_areas": list(persona.focus_areas),
        "minimum_email_length": persona.minimum_email_length,
        "max_emails_per_summary": persona.max_emails_per_summary,
        "daily_summary_time": persona.daily_summary_time,
        "timezone": persona.timezone,
        "learning_enabled": persona.learning_enabled,
        "feedback_history": [_feedback_to_dict(entry) for entry in persona.feedback_history],
        "metrics": {
            "total_summaries_generated": persona.metrics.total_summaries_generated,
            "average_rating": persona.metrics.average_rating,
            "rating_count": persona.metrics.rating_count,
            "last_optimized_at": serialize_datetime(persona.metrics.last_optimized_at),
        },
        "sender_weights": dict(persona.sender_weights),
        "keyword_weights": dict(persona.keyword_weights),
    }


def persona_from_dict(payload: Mapping[str, Any]) -> Persona:
    """Build a persona from stored data, replacing malformed fields with defaults.

    The user id is the only mandatory key. Every other field that is missing
    or has the wrong shape is logged and reset rather than rejected.
    """
    user_id = str(payload["user_id"])

    summary_time = payload.get("daily_summary_time")
    if not is_valid_summary_time(summary_time):
        if summary_time is not None:
            LOGGER.warning(
                "Persona %s has invalid daily summary time %r; using %s",
                user_id,
                summary_time,
                DEFAULT_SUMMARY_TIME,
            )
        summary_time = DEFAULT_SUMMARY_TIME

    style = payload.get("summary_style")
    length = payload.get("summary_length")
    timezone = payload.get("timezone")
    return Persona(
        user_id=user_id,
        role=_optional_str(payload.get("role")),
        company=_optional_str(payload.get("company")),
        department=_optional_str(payload.get("department")),
        important_contacts=_str_tuple(payload.get("important_contacts")),
        important_domains=_str_tuple(payload.get("important_domains")),
        keywords=_str_tuple(payload.get("keywords")),
        interests=_str_tuple(payload.get("interests")),
        exclude_patterns=_str_tuple(payload.get("exclude_patterns")),
        categories=_categories(payload.get("categories"), user_id),
        summary_style=style if style in SUMMARY_STYLES else "balanced",
        summary_length=length if length in SUMMARY_LENGTHS else "medium",
        focus_areas=tuple(
            area for area in _str_tuple(payload.get("focus_areas")) if area in FOCUS_AREAS
        ),
        minimum_email_length=_non_negative_int(payload.get("minimum_email_length"), 100),
        max_emails_per_summary=max(
            _non_negative_int(payload.get("max_emails_per_summary"), 20), 1
        ),
        daily_summary_time=summary_time.strip(),
        timezone=timezone.strip() if isinstance(timezone, str) and timezone.strip() else "UTC",
        learning_enabled=bool(payload.get("learning_enabled", True)),
        feedback_history=_feedback_history(payload.get("feedback_history")),
        metrics=_metrics(payload.get("metrics")),
        sender_weights=_weights(payload.get("sender_weights")),
        keyword_weights=_weights(payload.get("keyword_weights")),
    )


def _feedback_to_dict(entry: FeedbackEntry) -> dict[str, Any]:
    return {
        "action": entry.action,
        "email_ref": entry.email_ref,
        "summary_ref": entry.summary_ref,
        "free_text": entry.free_text,
        "timestamp": serialize_datetime(entry.timestamp),
        "sender": entry.sender,
        "category": entry.category,
        "keywords": list(entry.keywords),
    }


def _feedback_history(raw: Any) -> tuple[FeedbackEntry, ...]:
    if not isinstance(raw, list):
        return ()
    entries: list[FeedbackEntry] = []
    for item in raw:
        if not isinstance(item, Mapping) or item.get("action") not in FEEDBACK_ACTIONS:
            continue
        timestamp = _parse_timestamp(item.get("timestamp"))
        extra = {"timestamp": timestamp} if timestamp is not None else {}
        entries.append(
            FeedbackEntry(
                action=item["action"],
                email_ref=_optional_str(item.get("email_ref")),
                summary_ref=_optional_str(item.get("summary_ref")),
                free_text=_optional_str(item.get("free_text")),
                sender=_optional_str(item.get("sender")),
                category=_optional_str(item.get("category")),
                keywords=_str_tuple(item.get("keywords")),
                **extra,
            )
        )
    return tuple(entries)


def _metrics(raw: Any) -> PersonaMetrics:
    if not isinstance(raw, Mapping):
        return PersonaMetrics()
    rating = raw.get("average_rating")
    return PersonaMetrics(
        total_summaries_generated=_non_negative_int(
            raw.get("total_summaries_generated"), 0
        ),
        average_rating=float(rating) if _is_number(rating) else 0.0,
        rating_count=_non_negative_int(raw.get("rating_count"), 0),
        last_optimized_at=_parse_timestamp(raw.get("last_optimized_at")),
    )


def _categories(raw: Any, user_id: str) -> dict[str, CategoryWeight] | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        LOGGER.warning("Persona %s has an unreadable category table", user_id)
        return None
    table: dict[str, CategoryWeight] = {}
    for name, config in raw.items():
        if not isinstance(config, Mapping):
            continue
        priority = config.get("priority")
        table[str(name).lower()] = CategoryWeight(
            priority=_non_negative_int(priority, 0),
            keywords=_str_tuple(config.get("keywords")),
        )
    return table


def _weights(raw: Any) -> dict[str, float]:
    if not isinstance(raw, Mapping):
        return {}
    return {
        str(key).lower(): max(float(value), 0.0)
        for key, value in raw.items()
        if _is_number(value)
    }


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return parse_datetime(value)
    except ValueError:
        return None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _non_negative_int(value: Any, default: int) -> int:
    if _is_number(value) and value >= 0:
        return int(value)
    return default


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_FOCUS_AREAS",
    "DEFAULT_SUMMARY_TIME",
    "default_persona",
    "is_valid_summary_time",
    "persona_from_dict",
    "persona_to_dict",
]
