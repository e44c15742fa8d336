"""Tests for default personas and tolerant persona decoding."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

from persona_digest.core.models import FeedbackEntry, PersonaMetrics
from persona_digest.persona.profile import (
    default_persona,
    persona_from_dict,
    persona_to_dict,
)


def test_default_persona_values() -> None:
    persona = default_persona("u1", timezone="UTC-5")

    assert persona.role == "Professional"
    assert persona.daily_summary_time == "08:00"
    assert persona.timezone == "UTC-5"
    assert persona.max_emails_per_summary == 20
    assert persona.minimum_email_length == 100
    assert persona.focus_areas == ("tasks", "deadlines", "meetings", "updates")
    assert persona.categories is not None
    assert persona.categories["work"].priority == 5
    assert "coupon" in persona.categories["promotions"].keywords


def test_default_persona_rejects_invalid_time() -> None:
    assert default_persona("u1", daily_summary_time="8 am").daily_summary_time == "08:00"


def test_persona_survives_serialisation() -> None:
    stamp = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
    persona = replace(
        default_persona("u1"),
        important_contacts=("boss@corp.com",),
        feedback_history=(
            FeedbackEntry(
                action="liked_summary",
                sender="boss@corp.com",
                keywords=("launch",),
                timestamp=stamp,
            ),
        ),
        metrics=PersonaMetrics(total_summaries_generated=2, last_optimized_at=stamp),
        sender_weights={"boss@corp.com": 1.5},
    )

    restored = persona_from_dict(persona_to_dict(persona))

    assert restored == persona


def test_malformed_fields_fall_back_to_defaults() -> None:
    persona = persona_from_dict(
        {
            "user_id": 7,
            "daily_summary_time": "99:99",
            "summary_style": "verbose",
            "categories": "broken",
            "keywords": ["ok", 3, ""],
            "focus_areas": ["deadlines", "gossip"],
            "minimum_email_length": -5,
            "sender_weights": {"a@x.com": -2, "b@x.com": "high", "c@x.com": 1},
            "feedback_history": [{"action": "unknown"}, {"action": "liked_summary"}],
            "metrics": {"average_rating": "n/a"},
        }
    )

    assert persona.user_id == "7"
    assert persona.daily_summary_time == "08:00"
    assert persona.summary_style == "balanced"
    assert persona.categories is None
    assert persona.keywords == ("ok",)
    assert persona.focus_areas == ("deadlines",)
    assert persona.minimum_email_length == 100
    assert persona.sender_weights == {"a@x.com": 0.0, "c@x.com": 1.0}
    assert [entry.action for entry in persona.feedback_history] == ["liked_summary"]
    assert persona.metrics.average_rating == 0.0
