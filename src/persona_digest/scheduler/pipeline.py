"""Per-user digest pipeline: dedup, fetch, select, summarise, persist."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta

from persona_digest.core.config import SchedulerSettings
from persona_digest.core.interfaces import MailClient, PersonaStore, SummaryStore
from persona_digest.core.models import (
    EmailSummary,
    MessageFilter,
    Persona,
    UserAccount,
    UserRunResult,
)
from persona_digest.intelligence.orchestrator import SummarizationOrchestrator
from persona_digest.persona.scorer import PersonaScorer

LOGGER = logging.getLogger(__name__)

DAILY_SUMMARY_TYPE = "daily"


class DigestPipeline:
    """Produce and persist one user's daily digest.

    Every step runs sequentially. A failed email summary is logged and
    skipped; the digest is built from whatever succeeded.
    """

    def __init__(
        self,
        mail_client: MailClient,
        summary_store: SummaryStore,
        scorer: PersonaScorer,
        orchestrator: SummarizationOrchestrator,
        settings: SchedulerSettings | None = None,
        *,
        persona_store: PersonaStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._mail_client = mail_client
        self._summary_store = summary_store
        self._scorer = scorer
        self._orchestrator = orchestrator
        self._settings = settings or SchedulerSettings()
        self._persona_store = persona_store
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._in_flight: set[str] = set()

    def has_recent_summary(self, user_id: str) -> bool:
        """Return ``True`` when a digest exists inside the dedup window."""
        since = self._clock() - timedelta(hours=self._settings.dedup_window_hours)
        try:
            return self._summary_store.exists(user_id, DAILY_SUMMARY_TYPE, since)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Dedup lookup failed for user %s: %s", user_id, exc)
            return False

    async def run(self, user: UserAccount) -> UserRunResult:
        """Run the digest pipeline for ``user``.

        Mail, digest and storage errors propagate; callers own the failure
        policy. Individual email summary failures do not. A second run for
        a user whose digest is still being built is skipped.
        """
        started = time.monotonic()
        if user.id in self._in_flight:
            LOGGER.info("Skipping user %s: digest already in progress", user.id)
            return UserRunResult(
                status="skipped",
                user_id=user.id,
                reason="already_processing",
                duration_seconds=time.monotonic() - started,
            )
        self._in_flight.add(user.id)
        try:
            return await self._run(user, started)
        finally:
            self._in_flight.discard(user.id)

    async def _run(self, user: UserAccount, started: float) -> UserRunResult:
        if self.has_recent_summary(user.id):
            LOGGER.info(
                "Skipping user %s: digest already generated in the last %s hours",
                user.id,
                self._settings.dedup_window_hours,
            )
            return UserRunResult(
                status="skipped",
                user_id=user.id,
                reason="recent_summary",
                duration_seconds=time.monotonic() - started,
            )

        persona = user.persona
        if persona is None:
            return UserRunResult(
                status="skipped",
                user_id=user.id,
                reason="no_persona",
                duration_seconds=time.monotonic() - started,
            )

        message_filter = MessageFilter(
            after=self._clock() - timedelta(hours=self._settings.lookback_hours),
            max_results=self._settings.fetch_limit,
        )
        emails = list(
            await self._mail_client.list_candidate_messages(user.id, message_filter)
        )
        emails = emails[: self._settings.fetch_limit]
        selected = self._scorer.select(emails, persona)
        LOGGER.info(
            "User %s: %d fetched, %d selected for summarisation",
            user.id,
            len(emails),
            len(selected),
        )

        summaries: list[EmailSummary] = []
        for scored in selected:
            try:
                summary = await self._orchestrator.summarize_email(scored.email, persona)
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning(
                    "Summarising email %s for user %s failed: %s",
                    scored.email.id,
                    user.id,
                    exc,
                )
                continue
            summaries.append(summary)

        if selected and not summaries:
            return UserRunResult(
                status="failed",
                user_id=user.id,
                reason="all_email_summaries_failed",
                fetched=len(emails),
                selected=len(selected),
                duration_seconds=time.monotonic() - started,
            )

        digest = await self._orchestrator.summarize_daily(
            summaries, persona, user_id=user.id
        )
        summary_id = self._summary_store.save(digest)
        self._record_generation(persona)
        LOGGER.info(
            "Stored digest %s for user %s covering %d emails",
            summary_id,
            user.id,
            len(summaries),
        )
        return UserRunResult(
            status="completed",
            user_id=user.id,
            summary_id=summary_id,
            fetched=len(emails),
            selected=len(selected),
            summarized=len(summaries),
            duration_seconds=time.monotonic() - started,
        )

    def _record_generation(self, persona: Persona) -> None:
        if self._persona_store is None:
            return
        try:
            # Feedback may have been saved while this digest was being built.
            current = self._persona_store.load_persona(persona.user_id)
            if current is None:
                LOGGER.debug(
                    "No stored persona for user %s; metrics unchanged", persona.user_id
                )
                return
            generated = current.metrics.total_summaries_generated + 1
            self._persona_store.save_persona(
                replace(
                    current,
                    metrics=replace(
                        current.metrics, total_summaries_generated=generated
                    ),
                )
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "Could not update persona metrics for user %s: %s",
                persona.user_id,
                exc,
            )


__all__ = ["DAILY_SUMMARY_TYPE", "DigestPipeline"]
