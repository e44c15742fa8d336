"""Core domain models used across the application."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

Priority = Literal["high", "medium", "low"]
Sentiment = Literal["positive", "neutral", "negative"]
SummaryStyle = Literal["brief", "detailed", "action-focused", "balanced"]
SummaryLength = Literal["short", "medium", "long"]
FeedbackAction = Literal[
    "liked_summary",
    "disliked_summary",
    "changed_priority",
    "marked_irrelevant",
    "marked_important",
]
RunStatus = Literal["completed", "skipped", "failed"]

PRIORITIES: tuple[Priority, ...] = ("high", "medium", "low")
SENTIMENTS: tuple[Sentiment, ...] = ("positive", "neutral", "negative")
SUMMARY_STYLES: tuple[SummaryStyle, ...] = (
    "brief",
    "detailed",
    "action-focused",
    "balanced",
)
SUMMARY_LENGTHS: tuple[SummaryLength, ...] = ("short", "medium", "long")
FOCUS_AREAS = ("deadlines", "meetings", "tasks", "updates", "decisions", "approvals")
FEEDBACK_ACTIONS: tuple[FeedbackAction, ...] = (
    "liked_summary",
    "disliked_summary",
    "changed_priority",
    "marked_irrelevant",
    "marked_important",
)

DEFAULT_CATEGORY = "general"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class CategoryWeight:
    """Priority and trigger keywords configured for one email category."""

    priority: int
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FeedbackEntry:
    """User reaction to a summary or an email, captured with its context."""

    action: FeedbackAction
    email_ref: str | None = None
    summary_ref: str | None = None
    free_text: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    sender: str | None = None
    category: str | None = None
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PersonaMetrics:
    """Effectiveness counters maintained alongside a persona."""

    total_summaries_generated: int = 0
    average_rating: float = 0.0
    rating_count: int = 0
    last_optimized_at: datetime | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class Persona:
    """Per-user profile describing which email matters and how to summarise it.

    Personas are values: every change goes through ``dataclasses.replace`` and
    the result is persisted as a whole. ``categories`` is ``None`` when the
    stored category table is missing or unreadable.
    """

    user_id: str
    role: str | None = None
    company: str | None = None
    department: str | None = None
    important_contacts: tuple[str, ...] = ()
    important_domains: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    interests: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    categories: Mapping[str, CategoryWeight] | None = None
    summary_style: SummaryStyle = "balanced"
    summary_length: SummaryLength = "medium"
    focus_areas: tuple[str, ...] = ()
    minimum_email_length: int = 100
    max_emails_per_summary: int = 20
    daily_summary_time: str = "08:00"
    timezone: str = "UTC"
    learning_enabled: bool = True
    feedback_history: tuple[FeedbackEntry, ...] = ()
    metrics: PersonaMetrics = field(default_factory=PersonaMetrics)
    sender_weights: Mapping[str, float] = field(default_factory=dict)
    keyword_weights: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class EmailRecord:
    """Read-only view of a message handed over by the mail source."""

    id: str
    subject: str | None
    sender: str | None
    recipients: tuple[str, ...] = ()
    body: str | None = None
    snippet: str | None = None
    received_at: datetime | None = None
    labels: tuple[str, ...] = ()

    @property
    def text(self) -> str:
        """Return the best available textual content."""
        return self.body or self.snippet or ""


@dataclass(frozen=True, slots=True)
class ActionItem:
    """Action extracted from a summary."""

    text: str
    priority: Priority = "medium"
    due_date: str | None = None
    source: str | None = None


@dataclass(frozen=True, slots=True)
class StructuredSummary:
    """Normalised fields recovered from raw model output."""

    content: str
    action_items: tuple[ActionItem, ...] = ()
    priority: Priority = "medium"
    category: str = DEFAULT_CATEGORY
    sentiment: Sentiment = "neutral"
    highlights: tuple[str, ...] = ()
    categories: Mapping[str, int] = field(default_factory=dict)
    degraded: bool = False


@dataclass(frozen=True, slots=True)
class EmailSummary:
    """AI summary of a single email."""

    content: str
    action_items: tuple[str, ...]
    priority: Priority
    category: str
    sentiment: Sentiment
    email_id: str | None = None
    subject: str | None = None
    sender: str | None = None
    generated_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class DigestMetadata:
    """Bookkeeping attached to a daily digest."""

    email_count: int
    generated_at: datetime
    summary_type: str = "daily"


@dataclass(frozen=True, slots=True)
class DailySummary:
    """Aggregated synthesis of one user's prioritised emails for a cycle."""

    content: str
    action_items: tuple[ActionItem, ...]
    highlights: tuple[str, ...]
    categories_overview: Mapping[str, int]
    metadata: DigestMetadata
    user_id: str | None = None
    email_ids: tuple[str, ...] = ()
    id: str | None = None


@dataclass(frozen=True, slots=True)
class UserAccount:
    """User known to the directory, with the persona linked to it."""

    id: str
    email: str | None = None
    is_active: bool = True
    mail_connected: bool = True
    persona: Persona | None = None


@dataclass(frozen=True, slots=True)
class CandidateFilter:
    """Selection applied when asking the directory for digest candidates."""

    active_only: bool = True
    mail_connected_only: bool = True


@dataclass(frozen=True, slots=True)
class MessageFilter:
    """Selection applied when listing a user's candidate messages."""

    after: datetime | None = None
    max_results: int = 50


@dataclass(slots=True)
class CycleStats:
    """Outcome counters for one scheduler cycle; never persisted."""

    total_eligible: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class UserRunResult:
    """Outcome of the per-user digest pipeline."""

    status: RunStatus
    user_id: str
    reason: str | None = None
    summary_id: str | None = None
    fetched: int = 0
    selected: int = 0
    summarized: int = 0
    duration_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class SchedulerStatus:
    """Snapshot of the digest scheduler state."""

    is_running: bool
    is_scheduled: bool
    next_run: datetime | None


__all__ = [
    "ActionItem",
    "CandidateFilter",
    "CategoryWeight",
    "CycleStats",
    "DEFAULT_CATEGORY",
    "DailySummary",
    "DigestMetadata",
    "EmailRecord",
    "EmailSummary",
    "FEEDBACK_ACTIONS",
    "FOCUS_AREAS",
    "FeedbackAction",
    "FeedbackEntry",
    "MessageFilter",
    "PRIORITIES",
    "Persona",
    "PersonaMetrics",
    "Priority",
    "SENTIMENTS",
    "SUMMARY_LENGTHS",
    "SUMMARY_STYLES",
    "SchedulerStatus",
    "Sentiment",
    "StructuredSummary",
    "SummaryLength",
    "SummaryStyle",
    "UserAccount",
    "UserRunResult",
]
