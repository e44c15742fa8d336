"""Prompt templates for email, digest and question answering calls."""

from __future__ import annotations

import re
from collections.abc import Sequence
from textwrap import dedent

from persona_digest.core.models import EmailRecord, EmailSummary, Persona

_STYLE_GUIDANCE = {
    "brief": "Keep it as short as possible.",
    "detailed": "Include relevant specifics such as names, figures and dates.",
    "action-focused": "Lead with what the reader has to do.",
    "balanced": "Balance context with required actions.",
}
_LENGTH_GUIDANCE = {
    "short": "1-2 sentences",
    "medium": "2-3 sentences",
    "long": "4-5 sentences",
}

_EMAIL_SCHEMA = dedent(
    """
    Respond with a single JSON object using these fields:
    - "content": the summary
    - "actionItems": array of specific actions needed from the reader (may be empty)
    - "priority": "high", "medium" or "low"
    - "category": email category (work, personal, newsletters, etc.)
    - "sentiment": "positive", "neutral" or "negative"
    """
).strip()

_DAILY_SCHEMA = dedent(
    """
    Organise the digest by:
    1. High priority items that need immediate attention
    2. Important updates and information
    3. Lower priority items for awareness
    4. Action items with deadlines or follow-ups needed

    Respond with a single JSON object using these fields:
    - "content": the digest organised by priority
    - "actionItems": array of {"text", "priority", "dueDate", "source"} objects
    - "highlights": array of the most important points
    - "categories": object mapping email category to count
    """
).strip()


# Lines that start a client footer; "--" alone is the signature delimiter.
_SIGNATURE_MARKERS = (
    "sent from my",
    "get outlook for",
    "this email was sent from",
)
_WHITESPACE = re.compile(r"\s+")


def clean_body(text: str) -> str:
    """Drop a trailing signature or mail-client footer and collapse whitespace.

    A marker on the first line is kept, so a message that opens with one is
    not emptied.
    """
    lines = text.splitlines()
    for index, line in enumerate(lines[1:], start=1):
        lowered = line.lstrip().lower()
        if line.rstrip() == "--" or lowered.startswith(_SIGNATURE_MARKERS):
            lines = lines[:index]
            break
    return _WHITESPACE.sub(" ", "\n".join(lines)).strip()


def build_persona_context(persona: Persona | None) -> str:
    """Describe the reader; every persona field is optional."""
    if persona is None:
        return ""
    parts = [f"The reader is a {persona.role or 'professional'}"]
    if persona.company:
        parts[0] += f" at {persona.company}"
    parts[0] += "."
    if persona.interests:
        parts.append(f"They care about: {', '.join(persona.interests)}.")
    if persona.focus_areas:
        parts.append(f"Pay special attention to {', '.join(persona.focus_areas)}.")
    style = _STYLE_GUIDANCE.get(persona.summary_style)
    if style:
        parts.append(f"Preferred summary style: {persona.summary_style}. {style}")
    return " ".join(parts)


def build_email_prompt(
    email: EmailRecord, persona: Persona | None, *, body_text: str
) -> str:
    """Compose the single-email summarisation prompt."""
    length = _LENGTH_GUIDANCE.get(
        persona.summary_length if persona else "medium", "2-3 sentences"
    )
    lines = [
        "You are an email assistant that writes concise, actionable summaries.",
        build_persona_context(persona),
        "",
        f"Summarise this email in {length}. Focus on its main purpose, the key "
        "information or requests, and any actions needed from the reader.",
        _EMAIL_SCHEMA,
        "",
        "Email details:",
        f"Subject: {email.subject or 'No subject'}",
        f"From: {email.sender or 'Unknown sender'}",
        f"Date: {email.received_at.isoformat() if email.received_at else 'Unknown date'}",
        "",
        "Email content:",
        body_text or "No content available",
    ]
    return "\n".join(line for line in lines if line is not None).strip()


def format_summary_listing(summaries: Sequence[EmailSummary]) -> str:
    """Render individual summaries as the numbered block a digest prompt embeds."""
    blocks = []
    for index, summary in enumerate(summaries, start=1):
        actions = "; ".join(summary.action_items) or "none"
        blocks.append(
            "\n".join(
                [
                    f"{index}. Subject: {summary.subject or 'Unknown'}",
                    f"   From: {summary.sender or 'unknown'}",
                    f"   Summary: {summary.content}",
                    f"   Priority: {summary.priority}",
                    f"   Action items: {actions}",
                    f"   Category: {summary.category}",
                ]
            )
        )
    return "\n\n".join(blocks)


def build_daily_prompt(persona: Persona | None, *, listing: str) -> str:
    """Compose the daily digest prompt around a pre-rendered summary listing."""
    lines = [
        "You are an email assistant creating a comprehensive daily email digest.",
        build_persona_context(persona),
        "",
        "Create the digest from the individual email summaries below.",
        _DAILY_SCHEMA,
        "",
        "Individual email summaries:",
        listing,
    ]
    return "\n".join(lines).strip()


def build_question_prompt(
    question: str,
    context_items: Sequence[EmailSummary | EmailRecord],
    persona: Persona | None,
) -> str:
    """Compose a prompt answering ``question`` from the supplied emails."""
    entries = []
    for index, item in enumerate(context_items, start=1):
        if isinstance(item, EmailSummary):
            gist = item.content
        else:
            gist = item.snippet or item.text[:500] or "No summary available"
        entries.append(
            f"{index}. {item.subject or 'No subject'} (from {item.sender or 'unknown'})\n"
            f"   Summary: {gist}"
        )
    lines = [
        "You are an assistant helping a user understand their emails.",
        build_persona_context(persona),
        "",
        f'Based on the email information below, answer this question: "{question}"',
        "Give a direct, helpful answer. If the information is not there, say so clearly.",
        "",
        "Email context:",
        "\n".join(entries) or "(no emails supplied)",
    ]
    return "\n".join(lines).strip()


__all__ = [
    "build_daily_prompt",
    "build_email_prompt",
    "build_persona_context",
    "build_question_prompt",
    "clean_body",
    "format_summary_listing",
]
