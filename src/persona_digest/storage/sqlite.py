"""SQLite-backed users, personas and digest storage."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any

from ..core.config import StorageSettings
from ..core.datetime_utils import parse_datetime, serialize_datetime
from ..core.interfaces import PersonaStore, SummaryStore, UserDirectory
from ..core.models import (
    ActionItem,
    CandidateFilter,
    DailySummary,
    DigestMetadata,
    Persona,
    UserAccount,
)
from ..persona.profile import persona_from_dict, persona_to_dict

LOGGER = logging.getLogger(__name__)

_MIGRATIONS: tuple[tuple[str, str], ...] = (
    (
        "001_initial",
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            mail_connected INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        CREATE TABLE IF NOT EXISTS personas (
            user_id TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            payload TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS summaries (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            summary_type TEXT NOT NULL,
            content TEXT NOT NULL,
            action_items TEXT NOT NULL,
            highlights TEXT NOT NULL,
            categories TEXT NOT NULL,
            email_ids TEXT NOT NULL,
            email_count INTEGER NOT NULL,
            generated_at TEXT NOT NULL
        );
        """,
    ),
    (
        "002_summary_index",
        """
        CREATE INDEX IF NOT EXISTS idx_summaries_user_type_generated
            ON summaries(user_id, summary_type, generated_at);
        """,
    ),
)


class SqliteDigestRepository(UserDirectory, SummaryStore, PersonaStore):
    """Persist users, whole-value personas and generated digests in SQLite."""

    def __init__(self, settings: StorageSettings) -> None:
        """Open the database and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteDigestRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # Users ---------------------------------------------------------------------
    def add_user(
        self,
        user_id: str,
        *,
        email: str | None = None,
        is_active: bool = True,
        mail_connected: bool = True,
        persona: Persona | None = None,
    ) -> UserAccount:
        """Insert or update a user and optionally its persona."""
        if not user_id:
            raise ValueError("User id is required")
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO users (id, email, is_active, mail_connected)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    email=excluded.email,
                    is_active=excluded.is_active,
                    mail_connected=excluded.mail_connected
                """,
                (user_id, email, int(is_active), int(mail_connected)),
            )
        if persona is not None:
            self.save_persona(replace(persona, user_id=user_id))
        LOGGER.debug("Stored user %s", user_id)
        return UserAccount(
            id=user_id,
            email=email,
            is_active=is_active,
            mail_connected=mail_connected,
            persona=self.load_persona(user_id),
        )

    def get_user(self, user_id: str) -> UserAccount | None:
        """Return a user by id with its persona attached."""
        row = self._connection.execute(
            "SELECT * FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_due_candidates(self, candidate_filter: CandidateFilter) -> list[UserAccount]:
        """Return users matching ``candidate_filter`` with personas attached."""
        clauses: list[str] = []
        if candidate_filter.active_only:
            clauses.append("is_active = 1")
        if candidate_filter.mail_connected_only:
            clauses.append("mail_connected = 1")
        query = "SELECT * FROM users"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        rows = self._connection.execute(query + " ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    # Personas ------------------------------------------------------------------
    def load_persona(self, user_id: str) -> Persona | None:
        """Return the stored persona, or ``None`` if missing or unreadable."""
        row = self._connection.execute(
            "SELECT payload FROM personas WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        try:
            payload = json.loads(row["payload"])
            if not isinstance(payload, dict):
                raise ValueError("persona payload is not an object")
            payload["user_id"] = user_id
            return persona_from_dict(payload)
        except (ValueError, TypeError) as exc:
            LOGGER.warning("Stored persona for user %s is unreadable: %s", user_id, exc)
            return None

    def save_persona(self, persona: Persona) -> None:
        """Insert or replace the persona as a whole."""
        payload = json.dumps(persona_to_dict(persona))
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO personas (user_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    payload=excluded.payload,
                    updated_at=excluded.updated_at
                """,
                (persona.user_id, payload, serialize_datetime(_now())),
            )

    # Summaries -----------------------------------------------------------------
    def exists(self, user_id: str, summary_type: str, since: datetime) -> bool:
        """Return ``True`` if a digest of ``summary_type`` exists after ``since``."""
        row = self._connection.execute(
            """
            SELECT 1 FROM summaries
            WHERE user_id = ? AND summary_type = ? AND generated_at >= ?
            LIMIT 1
            """,
            (user_id, summary_type, serialize_datetime(since)),
        ).fetchone()
        return row is not None

    def save(self, summary: DailySummary) -> str:
        """Store ``summary`` and return its identifier."""
        if not summary.user_id:
            raise ValueError("Digest user id is required")
        summary_id = summary.id or uuid.uuid4().hex
        action_items = [
            {
                "text": item.text,
                "priority": item.priority,
                "due_date": item.due_date,
                "source": item.source,
            }
            for item in summary.action_items
        ]
        with self._connection:
            self._connection.execute(
                """
                INSERT INTO summaries (
                    id,
                    user_id,
                    summary_type,
                    content,
                    action_items,
                    highlights,
                    categories,
                    email_ids,
                    email_count,
                    generated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    summary_id,
                    summary.user_id,
                    summary.metadata.summary_type,
                    summary.content,
                    json.dumps(action_items),
                    json.dumps(list(summary.highlights)),
                    json.dumps(dict(summary.categories_overview)),
                    json.dumps(list(summary.email_ids)),
                    summary.metadata.email_count,
                    serialize_datetime(summary.metadata.generated_at),
                ),
            )
        return summary_id

    def list_summaries(self, user_id: str, limit: int = 10) -> list[DailySummary]:
        """Return the most recent digests for ``user_id``, newest first."""
        rows = self._connection.execute(
            """
            SELECT * FROM summaries
            WHERE user_id = ?
            ORDER BY generated_at DESC
            LIMIT ?
            """,
            (user_id, limit),
        ).fetchall()
        return [_row_to_summary(row) for row in rows]

    def close(self) -> None:
        """Close the underlying connection."""
        self._connection.close()

    def _apply_migrations(self) -> None:
        for name, script in _MIGRATIONS:
            LOGGER.debug("Applying migration %s", name)
            with self._connection:
                self._connection.executescript(script)

    def _row_to_user(self, row: sqlite3.Row) -> UserAccount:
        return UserAccount(
            id=row["id"],
            email=row["email"],
            is_active=bool(row["is_active"]),
            mail_connected=bool(row["mail_connected"]),
            persona=self.load_persona(row["id"]),
        )


def _row_to_summary(row: sqlite3.Row) -> DailySummary:
    generated_at = parse_datetime(row["generated_at"])
    if generated_at is None:
        raise ValueError(f"Stored digest {row['id']} has no generation time")
    items: list[dict[str, Any]] = json.loads(row["action_items"])
    return DailySummary(
        content=row["content"],
        action_items=tuple(
            ActionItem(
                text=item["text"],
                priority=item.get("priority", "medium"),
                due_date=item.get("due_date"),
                source=item.get("source"),
            )
            for item in items
        ),
        highlights=tuple(json.loads(row["highlights"])),
        categories_overview=json.loads(row["categories"]),
        metadata=DigestMetadata(
            email_count=row["email_count"],
            generated_at=generated_at,
            summary_type=row["summary_type"],
        ),
        user_id=row["user_id"],
        email_ids=tuple(json.loads(row["email_ids"])),
        id=row["id"],
    )


def _now() -> datetime:
    return datetime.now(tz=UTC)


__all__ = ["SqliteDigestRepository"]
