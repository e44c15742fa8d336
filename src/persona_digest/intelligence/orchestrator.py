"""Summarisation services that turn emails into persona-aware digests."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import httpx

from persona_digest.core.interfaces import AITransport
from persona_digest.core.models import (
    DEFAULT_CATEGORY,
    ActionItem,
    DailySummary,
    DigestMetadata,
    EmailRecord,
    EmailSummary,
    Persona,
)

from .parser import ResponseParser
from .prompts import (
    build_daily_prompt,
    build_email_prompt,
    build_question_prompt,
    clean_body,
    format_summary_listing,
)
from .providers import (
    ProviderAdapter,
    ProviderError,
    UseCase,
    classify_status,
)
from .tokens import TokenBudgetEstimator

LOGGER = logging.getLogger(__name__)

NO_EMAILS_CONTENT = "No emails processed today."

_EMAIL_USE_CASE: UseCase = "balanced"
_DAILY_USE_CASE: UseCase = "detailed"
_ANSWER_USE_CASE: UseCase = "balanced"
_MAX_FALLBACK_HIGHLIGHTS = 5


class SummarizationOrchestrator:
    """Assemble prompts, call the configured provider and parse the result.

    Provider failures surface as :class:`ProviderError`; nothing is retried
    here. Callers decide whether a failed unit aborts anything larger.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        transport: AITransport,
        *,
        estimator: TokenBudgetEstimator | None = None,
        parser: ResponseParser | None = None,
        call_timeout: float | None = None,
    ) -> None:
        self._adapter = adapter
        self._transport = transport
        self._estimator = estimator or TokenBudgetEstimator()
        self._parser = parser or ResponseParser()
        self._call_timeout = call_timeout

    @property
    def provider_name(self) -> str:
        """Name of the backend this orchestrator talks to."""
        return self._adapter.name

    async def summarize_email(
        self, email: EmailRecord, persona: Persona | None
    ) -> EmailSummary:
        """Summarise one email for the reader described by ``persona``."""
        profile = self._adapter.profile(_EMAIL_USE_CASE)
        body = clean_body(email.text)
        prompt = build_email_prompt(email, persona, body_text=body)
        if not self._estimator.fits(prompt, profile.max_tokens):
            LOGGER.info(
                "Email %s exceeds the %s input budget; truncating body",
                email.id,
                profile.use_case,
            )
            body = self._estimator.fit_body(prompt, body, profile.max_tokens)
            prompt = build_email_prompt(email, persona, body_text=body)

        raw_text = await self._complete(prompt, _EMAIL_USE_CASE)
        parsed = self._parser.parse(raw_text, "individual")
        return EmailSummary(
            content=parsed.content,
            action_items=tuple(item.text for item in parsed.action_items),
            priority=parsed.priority,
            category=parsed.category,
            sentiment=parsed.sentiment,
            email_id=email.id,
            subject=email.subject,
            sender=email.sender,
        )

    async def summarize_daily(
        self,
        summaries: Sequence[EmailSummary],
        persona: Persona | None,
        *,
        user_id: str | None = None,
    ) -> DailySummary:
        """Synthesise individual summaries into one digest."""
        generated_at = datetime.now(tz=UTC)
        if not summaries:
            return DailySummary(
                content=NO_EMAILS_CONTENT,
                action_items=(),
                highlights=(),
                categories_overview={},
                metadata=DigestMetadata(email_count=0, generated_at=generated_at),
                user_id=user_id,
            )

        profile = self._adapter.profile(_DAILY_USE_CASE)
        listing = format_summary_listing(summaries)
        prompt = build_daily_prompt(persona, listing=listing)
        if not self._estimator.fits(prompt, profile.max_tokens):
            LOGGER.info(
                "Daily digest of %d summaries exceeds the input budget; truncating",
                len(summaries),
            )
            listing = self._estimator.fit_body(prompt, listing, profile.max_tokens)
            prompt = build_daily_prompt(persona, listing=listing)

        raw_text = await self._complete(prompt, _DAILY_USE_CASE)
        parsed = self._parser.parse(raw_text, "daily")

        action_items = parsed.action_items or _collect_action_items(summaries)
        highlights = parsed.highlights or _fallback_highlights(summaries)
        return DailySummary(
            content=parsed.content,
            action_items=tuple(action_items),
            highlights=tuple(highlights),
            categories_overview=_count_categories(summaries),
            metadata=DigestMetadata(
                email_count=len(summaries), generated_at=generated_at
            ),
            user_id=user_id,
            email_ids=tuple(s.email_id for s in summaries if s.email_id),
        )

    async def answer(
        self,
        question: str,
        context_items: Sequence[EmailSummary | EmailRecord],
        persona: Persona | None,
    ) -> str:
        """Answer ``question`` using the supplied emails or summaries."""
        profile = self._adapter.profile(_ANSWER_USE_CASE)
        prompt = build_question_prompt(question, context_items, persona)
        if not self._estimator.fits(prompt, profile.max_tokens):
            prompt = self._estimator.truncate(
                prompt, self._estimator.max_input_chars(profile.max_tokens)
            )
        raw_text = await self._complete(prompt, _ANSWER_USE_CASE)
        return raw_text.strip()

    async def _complete(self, prompt: str, use_case: UseCase) -> str:
        profile = self._adapter.profile(use_case)
        path, payload = self._adapter.build_request(prompt, profile)
        raw = await self._invoke(path, payload)
        response = self._adapter.decode(raw)
        LOGGER.debug(
            "%s %s completion: %s chars, %s tokens",
            self._adapter.name,
            use_case,
            len(response.text),
            response.total_tokens,
        )
        return response.text

    async def _invoke(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            if self._call_timeout is None:
                return await self._transport.invoke(path, payload)
            return await asyncio.wait_for(
                self._transport.invoke(path, payload), timeout=self._call_timeout
            )
        except httpx.HTTPStatusError as exc:
            error = classify_status(exc.response.status_code, self._adapter.name)
            LOGGER.warning("%s call failed: %s", self._adapter.name, error)
            raise error from exc
        except (httpx.TransportError, TimeoutError) as exc:
            LOGGER.warning("%s call did not complete: %s", self._adapter.name, exc)
            raise ProviderError(
                "transient_unavailable",
                "AI service is temporarily unavailable. Please try again later.",
            ) from exc
        except ValueError as exc:
            raise ProviderError(
                "transient_unavailable",
                f"{self._adapter.name} returned a body that is not JSON",
            ) from exc


def _count_categories(summaries: Sequence[EmailSummary]) -> dict[str, int]:
    return dict(Counter(s.category or DEFAULT_CATEGORY for s in summaries))


def _collect_action_items(summaries: Sequence[EmailSummary]) -> list[ActionItem]:
    items: list[ActionItem] = []
    for summary in summaries:
        for text in summary.action_items:
            items.append(
                ActionItem(text=text, priority=summary.priority, source=summary.subject)
            )
    return items


def _fallback_highlights(summaries: Sequence[EmailSummary]) -> list[str]:
    return [
        s.subject
        for s in summaries
        if s.priority == "high" and s.subject
    ][:_MAX_FALLBACK_HIGHLIGHTS]


__all__ = ["NO_EMAILS_CONTENT", "SummarizationOrchestrator"]
