"""Utilities for parsing raw RFC822 messages into email records."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime
from html import unescape

from ..core.datetime_utils import ensure_utc
from ..core.models import EmailRecord

_SNIPPET_LENGTH = 200
_WHITESPACE = re.compile(r"\s+")
_TAG = re.compile(r"<[^>]*>")
_HIDDEN_BLOCK = re.compile(r"<(script|style)\b.*?</\1>", re.DOTALL | re.IGNORECASE)


class EmailParser:
    """Convert raw email payloads into :class:`EmailRecord` values."""

    def __init__(self) -> None:
        self._parser = BytesParser(policy=policy.default)

    def parse(self, message_id: str, payload: bytes) -> EmailRecord:
        """Parse raw RFC822 bytes; ``message_id`` identifies it to the mail source."""
        message = self._parser.parsebytes(payload)
        recipients = tuple(
            _extract_addresses(message.get_all("To", []) + message.get_all("Cc", []))
        )
        body = _extract_body(message)

        return EmailRecord(
            id=message_id,
            subject=_header(message, "Subject"),
            sender=_header(message, "From"),
            recipients=recipients,
            body=body,
            snippet=_snippet(body),
            received_at=ensure_utc(_try_parse_datetime(message.get("Date"))),
            labels=tuple(_labels(message)),
        )


def _header(message: EmailMessage, name: str) -> str | None:
    value = message.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extract_addresses(headers: Iterable[str]) -> Iterable[str]:
    for _, email_address in getaddresses([str(header) for header in headers]):
        if email_address:
            yield email_address


def _labels(message: EmailMessage) -> Iterable[str]:
    for header in ("X-Labels", "Keywords"):
        value = message.get(header)
        if not value:
            continue
        for label in str(value).split(","):
            if label.strip():
                yield label.strip()


def _part_text(part: EmailMessage | None) -> str | None:
    if part is None:
        return None
    try:
        content = part.get_content()
    except LookupError:
        return None
    if not isinstance(content, str):
        return None
    return content.strip() or None


def _extract_body(message: EmailMessage) -> str | None:
    """Return the plain text body, falling back to de-tagged HTML."""
    text = _part_text(message.get_body(preferencelist=("plain",)))
    if text:
        return text
    html = _part_text(message.get_body(preferencelist=("html",)))
    return _strip_html(html) if html else None


def _strip_html(payload: str) -> str:
    without_tags = _TAG.sub(" ", _HIDDEN_BLOCK.sub(" ", payload))
    return _WHITESPACE.sub(" ", unescape(without_tags)).strip()


def _snippet(body: str | None) -> str | None:
    if not body:
        return None
    return _WHITESPACE.sub(" ", body).strip()[:_SNIPPET_LENGTH]


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return parsedate_to_datetime(str(header_value))
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParser"]
