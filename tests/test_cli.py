"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from persona_digest.cli import build_parser, execute
from persona_digest.core.config import AppSettings, LearningSettings, StorageSettings
from persona_digest.scheduler import DigestError
from persona_digest.storage import SqliteDigestRepository


@pytest.fixture()
def settings(tmp_path: Path) -> AppSettings:
    return AppSettings(
        storage=StorageSettings(db_path=tmp_path / "cli.db"),
        learning=LearningSettings(optimize_threshold=2),
    )


def _run(settings: AppSettings, *argv: str) -> int:
    return execute(build_parser().parse_args(list(argv)), settings)


def test_add_user_then_status(settings: AppSettings, capsys) -> None:
    assert (
        _run(settings, "add-user", "u1", "--summary-time", "07:30", "--timezone", "UTC-5")
        == 0
    )
    assert _run(settings, "status") == 0

    output = capsys.readouterr().out
    assert "Stored user u1." in output
    assert "Known users: 1" in output
    assert "07:30 UTC-5" in output


def test_feedback_triggers_optimisation(settings: AppSettings, capsys) -> None:
    _run(settings, "add-user", "u1")
    for _ in range(2):
        _run(
            settings,
            "feedback",
            "u1",
            "marked_important",
            "--sender",
            "boss@corp.com",
            "--keyword",
            "launch",
            "--rating",
            "4",
        )

    with SqliteDigestRepository(settings.storage) as repository:
        persona = repository.load_persona("u1")

    assert persona is not None
    assert len(persona.feedback_history) == 2
    assert persona.metrics.rating_count == 2
    assert persona.sender_weights["boss@corp.com"] > 0
    assert "Persona re-weighted" in capsys.readouterr().out


def test_optimize_without_feedback_reports_nothing(
    settings: AppSettings, capsys
) -> None:
    _run(settings, "add-user", "u1")
    _run(settings, "optimize", "u1")

    assert "Nothing to optimise: 0 new feedback entries" in capsys.readouterr().out


def test_feedback_for_unknown_user_fails(settings: AppSettings) -> None:
    with pytest.raises(DigestError):
        _run(settings, "feedback", "ghost", "liked_summary")


def test_parser_rejects_unknown_feedback_action() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["feedback", "u1", "loved_it"])
