"""Tests for the summarisation orchestrator."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import httpx
import pytest

from persona_digest.core.models import EmailRecord, EmailSummary
from persona_digest.intelligence.orchestrator import (
    NO_EMAILS_CONTENT,
    SummarizationOrchestrator,
)
from persona_digest.intelligence.prompts import clean_body
from persona_digest.intelligence.providers import GroqAdapter, ProviderError
from persona_digest.intelligence.tokens import TRUNCATION_MARKER
from persona_digest.persona.profile import default_persona


def _chat(content: str) -> dict[str, Any]:
    return {"choices": [{"message": {"content": content}}], "usage": {"total_tokens": 5}}


class StubTransport:
    """Transport returning canned chat completions and recording prompts."""

    def __init__(self, *replies: Any) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def invoke(self, path: str, payload: Mapping[str, Any]) -> Any:
        self.prompts.append(payload["messages"][0]["content"])
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class HangingTransport:
    """Transport that never answers."""

    async def invoke(self, path: str, payload: Mapping[str, Any]) -> Any:
        await asyncio.sleep(10)


def _orchestrator(transport: Any, **kwargs: Any) -> SummarizationOrchestrator:
    return SummarizationOrchestrator(GroqAdapter(), transport, **kwargs)


def _email(body: str = "Please review the launch plan by Friday.") -> EmailRecord:
    return EmailRecord(
        id="m1", subject="Launch plan", sender="boss@corp.com", body=body
    )


def _summary(email_id: str, category: str, priority: str = "medium") -> EmailSummary:
    return EmailSummary(
        content=f"Summary {email_id}",
        action_items=(f"Follow up on {email_id}",),
        priority=priority,  # type: ignore[arg-type]
        category=category,
        sentiment="neutral",
        email_id=email_id,
        subject=f"Subject {email_id}",
    )


@pytest.mark.asyncio
async def test_summarize_email_parses_json_reply() -> None:
    reply = json.dumps(
        {
            "content": "Review the launch plan.",
            "actionItems": ["Review plan"],
            "priority": "high",
            "category": "work",
            "sentiment": "neutral",
        }
    )
    transport = StubTransport(_chat(reply))

    summary = await _orchestrator(transport).summarize_email(
        _email(), default_persona("u1")
    )

    assert summary.content == "Review the launch plan."
    assert summary.action_items == ("Review plan",)
    assert summary.priority == "high"
    assert (summary.email_id, summary.subject) == ("m1", "Launch plan")
    assert "Launch plan" in transport.prompts[0]


@pytest.mark.asyncio
async def test_oversized_body_is_truncated_before_sending() -> None:
    transport = StubTransport(_chat('{"content": "ok"}'))
    body = "word " * 5000

    await _orchestrator(transport).summarize_email(_email(body), None)

    assert TRUNCATION_MARKER in transport.prompts[0]
    assert len(transport.prompts[0]) < len(body)


def test_clean_body_drops_signatures_and_footers() -> None:
    body = "Hi team,\n\n  Launch   moves to Friday.\n-- \nJane Doe\nVP Product"

    assert clean_body(body) == "Hi team, Launch moves to Friday."
    assert clean_body("Notes\nSent from my iPhone") == "Notes"
    assert clean_body("Agenda\n\nGet Outlook for iOS\nlegal text") == "Agenda"
    assert clean_body("Sent from my desk: figures below") == (
        "Sent from my desk: figures below"
    )
    assert clean_body("Range 1 -- 5 is fine") == "Range 1 -- 5 is fine"
    assert clean_body("") == ""


@pytest.mark.asyncio
async def test_signature_is_removed_before_prompting() -> None:
    transport = StubTransport(_chat('{"content": "ok"}'))
    body = (
        "Please review the launch plan.\n\nThanks,\nJane\n"
        "--\nJane Doe | Product\nSent from my iPhone"
    )

    await _orchestrator(transport).summarize_email(_email(body), None)

    assert "Please review the launch plan. Thanks, Jane" in transport.prompts[0]
    assert "Jane Doe | Product" not in transport.prompts[0]
    assert "iPhone" not in transport.prompts[0]


@pytest.mark.asyncio
async def test_daily_digest_of_nothing_skips_the_provider() -> None:
    transport = StubTransport()

    digest = await _orchestrator(transport).summarize_daily([], None, user_id="u1")

    assert digest.content == NO_EMAILS_CONTENT
    assert digest.metadata.email_count == 0
    assert digest.action_items == ()
    assert transport.prompts == []


@pytest.mark.asyncio
async def test_daily_digest_counts_categories_and_falls_back() -> None:
    transport = StubTransport(_chat('{"content": "Busy day."}'))
    summaries = [
        _summary("a", "work", "high"),
        _summary("b", "work"),
        _summary("c", "social"),
    ]

    digest = await _orchestrator(transport).summarize_daily(
        summaries, default_persona("u1"), user_id="u1"
    )

    assert digest.content == "Busy day."
    assert dict(digest.categories_overview) == {"work": 2, "social": 1}
    assert digest.metadata.email_count == 3
    assert digest.email_ids == ("a", "b", "c")
    assert [item.text for item in digest.action_items] == [
        "Follow up on a",
        "Follow up on b",
        "Follow up on c",
    ]
    assert digest.action_items[0].source == "Subject a"
    assert digest.highlights == ("Subject a",)


@pytest.mark.asyncio
async def test_rate_limit_maps_to_provider_error() -> None:
    request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
    response = httpx.Response(429, request=request)
    transport = StubTransport(
        httpx.HTTPStatusError("Too Many Requests", request=request, response=response)
    )

    with pytest.raises(ProviderError) as excinfo:
        await _orchestrator(transport).summarize_email(_email(), None)

    assert excinfo.value.kind == "rate_limited"
    assert excinfo.value.status_code == 429


@pytest.mark.asyncio
async def test_network_failure_is_transient() -> None:
    transport = StubTransport(httpx.ConnectError("connection refused"))

    with pytest.raises(ProviderError) as excinfo:
        await _orchestrator(transport).summarize_email(_email(), None)

    assert excinfo.value.kind == "transient_unavailable"


@pytest.mark.asyncio
async def test_call_timeout_is_transient() -> None:
    orchestrator = _orchestrator(HangingTransport(), call_timeout=0.01)

    with pytest.raises(ProviderError) as excinfo:
        await orchestrator.summarize_email(_email(), None)

    assert excinfo.value.kind == "transient_unavailable"


@pytest.mark.asyncio
async def test_answer_returns_stripped_text() -> None:
    transport = StubTransport(_chat("  The launch is on Friday.\n"))

    answer = await _orchestrator(transport).answer(
        "When is the launch?", [_email()], None
    )

    assert answer == "The launch is on Friday."
    assert "When is the launch?" in transport.prompts[0]
