"""Mail client reading RFC822 files dropped into per-user directories."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from ..core.config import MailSettings
from ..core.datetime_utils import ensure_utc
from ..core.interfaces import MailClient
from ..core.models import EmailRecord, MessageFilter
from .parser import EmailParser

LOGGER = logging.getLogger(__name__)

_SUFFIX = ".eml"


class EmailParserProtocol(Protocol):
    """Minimal protocol implemented by email parsers."""

    def parse(self, message_id: str, payload: bytes) -> EmailRecord:
        """Convert raw RFC822 payload into an email record."""
        raise NotImplementedError


class MailDropError(RuntimeError):
    """Raised when the drop directory cannot be read."""


class MaildropMailClient(MailClient):
    """Serve ``<drop_root>/<user_id>/*.eml`` as a user's mailbox.

    The file stem is the message id. Files that fail to parse are logged and
    skipped.
    """

    def __init__(
        self, settings: MailSettings, *, parser: EmailParserProtocol | None = None
    ) -> None:
        self._root = Path(settings.drop_root)
        self._parser = parser or EmailParser()

    async def list_candidate_messages(
        self, user_id: str, message_filter: MessageFilter
    ) -> Sequence[EmailRecord]:
        """Return the newest messages received after ``message_filter.after``."""
        return await asyncio.to_thread(self._list_sync, user_id, message_filter)

    async def get_message(self, user_id: str, message_id: str) -> EmailRecord | None:
        """Return one message by id, or ``None`` if it is not in the drop."""
        return await asyncio.to_thread(self._get_sync, user_id, message_id)

    def _user_dir(self, user_id: str) -> Path:
        if not user_id or Path(user_id).name != user_id:
            raise MailDropError(f"Invalid user id for mail drop: {user_id!r}")
        return self._root / user_id

    def _list_sync(
        self, user_id: str, message_filter: MessageFilter
    ) -> list[EmailRecord]:
        directory = self._user_dir(user_id)
        if not directory.is_dir():
            LOGGER.debug("No mail drop directory for user %s", user_id)
            return []
        after = ensure_utc(message_filter.after)
        records: list[EmailRecord] = []
        for path in sorted(directory.glob(f"*{_SUFFIX}")):
            record = self._read(path)
            if record is None:
                continue
            if after is not None and (record.received_at or after) <= after:
                continue
            records.append(record)

        records.sort(key=_received_sort_key, reverse=True)
        LOGGER.debug("Loaded %d candidate messages for user %s", len(records), user_id)
        return records[: message_filter.max_results]

    def _get_sync(self, user_id: str, message_id: str) -> EmailRecord | None:
        if Path(message_id).name != message_id:
            return None
        path = self._user_dir(user_id) / f"{message_id}{_SUFFIX}"
        if not path.is_file():
            return None
        return self._read(path)

    def _read(self, path: Path) -> EmailRecord | None:
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise MailDropError(f"Could not read {path}") from exc
        try:
            record = self._parser.parse(path.stem, payload)
        except (ValueError, LookupError) as exc:
            LOGGER.warning("Skipping unparsable message %s: %s", path.name, exc)
            return None
        if record.received_at is None:
            modified = datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
            record = replace(record, received_at=modified)
        return record


def _received_sort_key(record: EmailRecord) -> datetime:
    return record.received_at or datetime.min.replace(tzinfo=UTC)


__all__ = ["EmailParserProtocol", "MailDropError", "MaildropMailClient"]
