"""Tests for the directory-backed mail client."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from persona_digest.core.config import MailSettings
from persona_digest.core.models import MessageFilter
from persona_digest.ingestion import MailDropError, MaildropMailClient


def _write(directory: Path, name: str, date: str, subject: str) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{name}.eml").write_bytes(
        (
            f"From: sender@example.com\r\n"
            f"Subject: {subject}\r\n"
            f"Date: {date}\r\n"
            f"\r\n"
            f"Body of {subject}.\r\n"
        ).encode()
    )


@pytest.fixture()
def client(tmp_path: Path) -> MaildropMailClient:
    user_dir = tmp_path / "u1"
    _write(user_dir, "old", "Mon, 13 Jan 2025 09:00:00 +0000", "Old")
    _write(user_dir, "mid", "Tue, 14 Jan 2025 09:00:00 +0000", "Mid")
    _write(user_dir, "new", "Wed, 15 Jan 2025 09:00:00 +0000", "New")
    (user_dir / "notes.txt").write_text("ignored")
    return MaildropMailClient(MailSettings(drop_root=tmp_path))


@pytest.mark.asyncio
async def test_lists_newest_messages_after_cutoff(client: MaildropMailClient) -> None:
    records = await client.list_candidate_messages(
        "u1", MessageFilter(after=datetime(2025, 1, 13, 9, 0, tzinfo=UTC))
    )

    assert [record.id for record in records] == ["new", "mid"]
    assert records[0].subject == "New"


@pytest.mark.asyncio
async def test_limit_applies_after_sorting(client: MaildropMailClient) -> None:
    records = await client.list_candidate_messages("u1", MessageFilter(max_results=1))

    assert [record.id for record in records] == ["new"]


@pytest.mark.asyncio
async def test_unknown_user_has_empty_mailbox(client: MaildropMailClient) -> None:
    assert await client.list_candidate_messages("nobody", MessageFilter()) == []


@pytest.mark.asyncio
async def test_get_message_by_id(client: MaildropMailClient) -> None:
    record = await client.get_message("u1", "mid")

    assert record is not None
    assert record.body == "Body of Mid."
    assert await client.get_message("u1", "missing") is None
    assert await client.get_message("u1", "../u1/mid") is None


@pytest.mark.asyncio
async def test_rejects_path_traversal(client: MaildropMailClient) -> None:
    with pytest.raises(MailDropError):
        await client.list_candidate_messages("../etc", MessageFilter())
