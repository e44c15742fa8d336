"""Best-effort extraction of structured summaries from model output.

Models do not reliably honour the requested JSON schema, so parsing is
two-tier: a JSON object anywhere in the text wins, otherwise line heuristics
recover content, action items, priority and sentiment. Parsing never raises.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from persona_digest.core.models import (
    DEFAULT_CATEGORY,
    PRIORITIES,
    SENTIMENTS,
    ActionItem,
    Priority,
    Sentiment,
    StructuredSummary,
)

LOGGER = logging.getLogger(__name__)

NO_SUMMARY_CONTENT = "Could not summarize this content."

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)
_BULLET_PREFIX = re.compile(r"^(?:[-*•]+|\d+[.)]|\[\s?[xX ]?\s?\])\s*")
_ACTION_PREFIXES = (
    "action",
    "todo",
    "to do",
    "to-do",
    "task",
    "follow up",
    "follow-up",
    "respond",
    "reply",
    "please",
    "call",
    "schedule",
    "review",
    "send",
    "confirm",
)
_HIGH_PRIORITY_KEYWORDS = ("urgent", "asap", "immediately", "deadline", "critical")
_LOW_PRIORITY_KEYWORDS = ("fyi", "for your information", "newsletter", "no action")
_POSITIVE_KEYWORDS = (
    "thank",
    "great",
    "congratulations",
    "pleased",
    "appreciate",
    "excellent",
    "happy",
    "approved",
)
_NEGATIVE_KEYWORDS = (
    "unfortunately",
    "problem",
    "issue",
    "failed",
    "complaint",
    "delay",
    "concern",
    "overdue",
    "error",
)
_CONTENT_LINES = 3


class ResponseParser:
    """Turn raw completion text into a :class:`StructuredSummary`."""

    def parse(
        self, raw_text: str | None, summary_type: str = "individual"
    ) -> StructuredSummary:
        """Parse ``raw_text``; the result always has ``content`` set."""
        text = raw_text if isinstance(raw_text, str) else ""
        if not text.strip():
            return StructuredSummary(content=NO_SUMMARY_CONTENT, degraded=True)

        payload = _extract_json_object(text)
        if payload is not None:
            return _from_payload(payload, summary_type)

        LOGGER.warning(
            "No JSON object found in %s model output; using text heuristics",
            summary_type,
        )
        return _from_text(text)


def _extract_json_object(text: str) -> dict[str, Any] | None:
    candidates: list[str] = [match.group(1) for match in _FENCED_JSON.finditer(text)]
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (ValueError, RecursionError):
            continue
        if isinstance(parsed, dict):
            return parsed
    if start != -1:
        try:
            parsed, _ = json.JSONDecoder().raw_decode(text[start:])
        except (ValueError, RecursionError):
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def _from_payload(payload: Mapping[str, Any], summary_type: str) -> StructuredSummary:
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        content = payload.get("summary")
    if not isinstance(content, str) or not content.strip():
        content = NO_SUMMARY_CONTENT

    raw_actions = payload.get("actionItems", payload.get("action_items", []))
    action_items = tuple(_normalize_action_items(raw_actions))

    highlights: tuple[str, ...] = ()
    categories: dict[str, int] = {}
    if summary_type == "daily":
        raw_highlights = payload.get("highlights", [])
        if isinstance(raw_highlights, list):
            highlights = tuple(
                item.strip()
                for item in raw_highlights
                if isinstance(item, str) and item.strip()
            )
        categories = _normalize_counts(payload.get("categories"))

    return StructuredSummary(
        content=content.strip(),
        action_items=action_items,
        priority=normalize_priority(payload.get("priority")),
        category=_normalize_category(payload.get("category")),
        sentiment=normalize_sentiment(payload.get("sentiment")),
        highlights=highlights,
        categories=categories,
    )


def _from_text(text: str) -> StructuredSummary:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    content = " ".join(_strip_bullet(line) for line in lines[:_CONTENT_LINES]).strip()
    actions = [
        ActionItem(text=_strip_bullet(line))
        for line in lines
        if _is_action_line(line)
    ]
    lowered = text.lower()
    return StructuredSummary(
        content=content or NO_SUMMARY_CONTENT,
        action_items=tuple(actions),
        priority=_keyword_priority(lowered),
        sentiment=_keyword_sentiment(lowered),
        degraded=True,
    )


def _normalize_action_items(raw: Any) -> Iterable[ActionItem]:
    if not isinstance(raw, list):
        return
    for entry in raw:
        if isinstance(entry, str):
            if entry.strip():
                yield ActionItem(text=entry.strip())
            continue
        if not isinstance(entry, dict):
            continue
        text = entry.get("text") or entry.get("task") or entry.get("action")
        if not isinstance(text, str) or not text.strip():
            continue
        due = entry.get("dueDate") or entry.get("due_date") or entry.get("deadline")
        source = entry.get("source")
        yield ActionItem(
            text=text.strip(),
            priority=normalize_priority(entry.get("priority")),
            due_date=due.strip() if isinstance(due, str) and due.strip() else None,
            source=source.strip() if isinstance(source, str) and source.strip() else None,
        )


def _normalize_counts(raw: Any) -> dict[str, int]:
    if not isinstance(raw, dict):
        return {}
    counts: dict[str, int] = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if not math.isfinite(value) or value < 0:
            continue
        counts[str(key).strip().lower() or DEFAULT_CATEGORY] = int(value)
    return counts


def normalize_priority(value: Any) -> Priority:
    """Clamp ``value`` onto the priority enumeration, defaulting to medium."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        for priority in PRIORITIES:
            if lowered == priority:
                return priority
    return "medium"


def normalize_sentiment(value: Any) -> Sentiment:
    """Clamp ``value`` onto the sentiment enumeration, defaulting to neutral."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        for sentiment in SENTIMENTS:
            if lowered == sentiment:
                return sentiment
    return "neutral"


def _normalize_category(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip().lower()
    return DEFAULT_CATEGORY


def _strip_bullet(line: str) -> str:
    return _BULLET_PREFIX.sub("", line).strip()


def _is_action_line(line: str) -> bool:
    lowered = _strip_bullet(line).lower()
    return lowered.startswith(_ACTION_PREFIXES)


def _keyword_priority(lowered: str) -> Priority:
    if any(keyword in lowered for keyword in _HIGH_PRIORITY_KEYWORDS):
        return "high"
    if any(keyword in lowered for keyword in _LOW_PRIORITY_KEYWORDS):
        return "low"
    return "medium"


def _keyword_sentiment(lowered: str) -> Sentiment:
    positive = sum(lowered.count(keyword) for keyword in _POSITIVE_KEYWORDS)
    negative = sum(lowered.count(keyword) for keyword in _NEGATIVE_KEYWORDS)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


__all__ = [
    "NO_SUMMARY_CONTENT",
    "ResponseParser",
    "normalize_priority",
    "normalize_sentiment",
]
