"""Tests for the SQLite-backed digest repository."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from persona_digest.core.config import StorageSettings
from persona_digest.core.models import (
    ActionItem,
    CandidateFilter,
    DailySummary,
    DigestMetadata,
)
from persona_digest.persona.profile import default_persona
from persona_digest.storage import SqliteDigestRepository

GENERATED_AT = datetime(2025, 1, 15, 13, 0, tzinfo=UTC)


def _digest(user_id: str, generated_at: datetime = GENERATED_AT) -> DailySummary:
    return DailySummary(
        content="Two launches and a budget review.",
        action_items=(
            ActionItem(text="Approve budget", priority="high", source="Budget"),
        ),
        highlights=("Launch moved to Friday",),
        categories_overview={"work": 2},
        metadata=DigestMetadata(email_count=2, generated_at=generated_at),
        user_id=user_id,
        email_ids=("m1", "m2"),
    )


@pytest.fixture()
def repository(tmp_path: Path):
    with SqliteDigestRepository(StorageSettings(db_path=tmp_path / "digest.db")) as repo:
        yield repo


def test_users_and_personas_roundtrip(repository: SqliteDigestRepository) -> None:
    persona = replace(default_persona("ignored"), important_contacts=("boss@corp.com",))
    repository.add_user("u1", email="u1@example.com", persona=persona)
    repository.add_user("u2", is_active=False)

    user = repository.get_user("u1")

    assert user is not None
    assert user.email == "u1@example.com"
    assert user.persona is not None
    assert user.persona.user_id == "u1"
    assert user.persona.important_contacts == ("boss@corp.com",)
    assert repository.get_user("missing") is None
    assert repository.get_user("u2").persona is None  # type: ignore[union-attr]


def test_candidates_filter_inactive_and_disconnected(
    repository: SqliteDigestRepository,
) -> None:
    repository.add_user("b")
    repository.add_user("a")
    repository.add_user("inactive", is_active=False)
    repository.add_user("offline", mail_connected=False)

    due = repository.find_due_candidates(CandidateFilter())
    everyone = repository.find_due_candidates(
        CandidateFilter(active_only=False, mail_connected_only=False)
    )

    assert [user.id for user in due] == ["a", "b"]
    assert len(everyone) == 4


def test_unreadable_persona_loads_as_none(
    repository: SqliteDigestRepository, tmp_path: Path
) -> None:
    repository.add_user("u1", persona=default_persona("u1"))
    with sqlite3.connect(tmp_path / "digest.db") as conn:
        conn.execute("UPDATE personas SET payload = '[1, 2' WHERE user_id = 'u1'")

    assert repository.load_persona("u1") is None


def test_save_and_list_digests(repository: SqliteDigestRepository) -> None:
    repository.add_user("u1")
    older_id = repository.save(_digest("u1", GENERATED_AT - timedelta(days=1)))
    newer_id = repository.save(_digest("u1"))

    digests = repository.list_summaries("u1")

    assert [digest.id for digest in digests] == [newer_id, older_id]
    latest = digests[0]
    assert latest.metadata.generated_at == GENERATED_AT
    assert latest.action_items[0].text == "Approve budget"
    assert latest.categories_overview == {"work": 2}
    assert latest.email_ids == ("m1", "m2")


def test_exists_honours_window(repository: SqliteDigestRepository) -> None:
    repository.add_user("u1")
    repository.save(_digest("u1"))

    assert repository.exists("u1", "daily", GENERATED_AT - timedelta(hours=20))
    assert not repository.exists("u1", "daily", GENERATED_AT + timedelta(minutes=1))
    assert not repository.exists("u2", "daily", GENERATED_AT - timedelta(hours=20))


def test_save_requires_user(repository: SqliteDigestRepository) -> None:
    with pytest.raises(ValueError):
        repository.save(replace(_digest("u1"), user_id=None))
