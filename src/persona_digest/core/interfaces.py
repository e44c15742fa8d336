"""Protocol interfaces for the collaborators the digest core depends on."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol

from .models import (
    CandidateFilter,
    DailySummary,
    EmailRecord,
    MessageFilter,
    Persona,
    UserAccount,
)


class MailClient(Protocol):
    """Read access to a user's mailbox."""

    async def list_candidate_messages(
        self, user_id: str, message_filter: MessageFilter
    ) -> Sequence[EmailRecord]:
        """Return messages matching ``message_filter`` for ``user_id``."""
        raise NotImplementedError

    async def get_message(self, user_id: str, message_id: str) -> EmailRecord | None:
        """Return a single message or ``None`` when it does not exist."""
        raise NotImplementedError


class UserDirectory(Protocol):
    """Lookup of users eligible for digests."""

    def find_due_candidates(self, candidate_filter: CandidateFilter) -> list[UserAccount]:
        """Return users matching ``candidate_filter`` with personas attached."""
        raise NotImplementedError

    def get_user(self, user_id: str) -> UserAccount | None:
        """Return a user by id with its persona attached."""
        raise NotImplementedError


class SummaryStore(Protocol):
    """Persistence for generated digests."""

    def exists(self, user_id: str, summary_type: str, since: datetime) -> bool:
        """Return ``True`` if a digest of ``summary_type`` exists after ``since``."""
        raise NotImplementedError

    def save(self, summary: DailySummary) -> str:
        """Store ``summary`` and return its identifier."""
        raise NotImplementedError


class PersonaStore(Protocol):
    """Whole-value persistence for personas."""

    def load_persona(self, user_id: str) -> Persona | None:
        """Return the persona for ``user_id`` if one exists."""
        raise NotImplementedError

    def save_persona(self, persona: Persona) -> None:
        """Insert or replace the stored persona."""
        raise NotImplementedError


class AITransport(Protocol):
    """HTTP-capable channel to one AI provider."""

    async def invoke(self, path: str, payload: Mapping[str, Any]) -> Any:
        """POST ``payload`` to ``path`` and return the decoded JSON body."""
        raise NotImplementedError


__all__ = [
    "AITransport",
    "MailClient",
    "PersonaStore",
    "SummaryStore",
    "UserDirectory",
]
