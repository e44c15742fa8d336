"""Feedback ingestion and bounded persona re-weighting."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime

from persona_digest.core.config import LearningSettings
from persona_digest.core.datetime_utils import ensure_utc
from persona_digest.core.interfaces import PersonaStore
from persona_digest.core.models import CategoryWeight, FeedbackEntry, Persona
from persona_digest.persona.scorer import sender_address

LOGGER = logging.getLogger(__name__)

_SIGNALS = {
    "liked_summary": 1,
    "marked_important": 1,
    "disliked_summary": -1,
    "marked_irrelevant": -1,
}


class PersonaLearner:
    """Fold user feedback back into a persona's weights.

    Every method returns a new persona. ``optimize`` only changes weights when
    feedback newer than ``metrics.last_optimized_at`` reaches the configured
    threshold, so calling it repeatedly is harmless.
    """

    def __init__(
        self,
        settings: LearningSettings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings or LearningSettings()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._tasks: set[asyncio.Task[Persona | None]] = set()

    def add_feedback(self, persona: Persona, entry: FeedbackEntry) -> Persona:
        """Append ``entry`` keeping only the most recent history."""
        history = (*persona.feedback_history, entry)
        limit = self._settings.max_feedback_entries
        if len(history) > limit:
            history = history[-limit:]
        return replace(persona, feedback_history=history)

    def pending_feedback(self, persona: Persona) -> list[FeedbackEntry]:
        """Return feedback recorded after the last optimisation."""
        cutoff = ensure_utc(persona.metrics.last_optimized_at)
        if cutoff is None:
            return list(persona.feedback_history)
        return [
            entry
            for entry in persona.feedback_history
            if (ensure_utc(entry.timestamp) or cutoff) > cutoff
        ]

    def should_optimize(self, persona: Persona) -> bool:
        """Return ``True`` once enough new feedback has accumulated."""
        if not persona.learning_enabled:
            return False
        return len(self.pending_feedback(persona)) >= self._settings.optimize_threshold

    def optimize(self, persona: Persona) -> Persona:
        """Re-weight senders, keywords and categories from pending feedback."""
        if not self.should_optimize(persona):
            LOGGER.info(
                "Persona optimisation skipped for user %s: learning disabled or "
                "insufficient feedback",
                persona.user_id,
            )
            return persona

        pending = self.pending_feedback(persona)
        sender_net: dict[str, int] = defaultdict(int)
        keyword_net: dict[str, int] = defaultdict(int)
        category_net: dict[str, int] = defaultdict(int)
        for entry in pending:
            signal = _SIGNALS.get(entry.action, 0)
            if not signal:
                continue
            if entry.sender:
                sender_net[sender_address(entry.sender)] += signal
            for keyword in entry.keywords:
                if keyword.strip():
                    keyword_net[keyword.strip().lower()] += signal
            if entry.category:
                category_net[entry.category.strip().lower()] += signal

        sender_weights = self._adjust(persona.sender_weights, sender_net.items())
        keyword_weights = self._adjust(persona.keyword_weights, keyword_net.items())
        categories = self._adjust_categories(persona, category_net)

        LOGGER.info(
            "Optimised persona for user %s from %d feedback entries "
            "(%d senders, %d keywords, %d categories adjusted)",
            persona.user_id,
            len(pending),
            len(sender_net),
            len(keyword_net),
            len(category_net),
        )
        return replace(
            persona,
            sender_weights=sender_weights,
            keyword_weights=keyword_weights,
            categories=categories,
            metrics=replace(persona.metrics, last_optimized_at=self._clock()),
        )

    def record_rating(self, persona: Persona, rating: float) -> Persona:
        """Fold ``rating`` into the running average rating."""
        metrics = persona.metrics
        count = metrics.rating_count + 1
        average = metrics.average_rating + (rating - metrics.average_rating) / count
        return replace(
            persona,
            metrics=replace(metrics, average_rating=average, rating_count=count),
        )

    def schedule_optimize(
        self, persona: Persona, store: PersonaStore
    ) -> asyncio.Task[Persona | None]:
        """Run :meth:`optimize` in the background and persist any change.

        Must be called from a running event loop. Failures are logged and
        never reach the caller.
        """
        task = asyncio.get_running_loop().create_task(
            self._optimize_and_store(persona, store)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _optimize_and_store(
        self, persona: Persona, store: PersonaStore
    ) -> Persona | None:
        try:
            updated = self.optimize(persona)
            if updated is not persona:
                store.save_persona(updated)
            return updated
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "Background persona optimisation failed for user %s: %s",
                persona.user_id,
                exc,
            )
            return None

    def _adjust(
        self, weights: Mapping[str, float], changes: Iterable[tuple[str, int]]
    ) -> dict[str, float]:
        updated = dict(weights)
        for key, net in changes:
            if not net:
                continue
            value = updated.get(key, 0.0) + self._settings.step * net
            updated[key] = min(
                max(value, self._settings.min_weight), self._settings.max_weight
            )
        return updated

    def _adjust_categories(
        self, persona: Persona, category_net: dict[str, int]
    ) -> dict[str, CategoryWeight] | None:
        if persona.categories is None:
            return None
        table = dict(persona.categories)
        low = self._settings.min_category_priority
        high = self._settings.max_category_priority
        for name, net in category_net.items():
            current = table.get(name)
            if current is None or not net:
                continue
            step = 1 if net > 0 else -1
            priority = min(max(current.priority + step, low), high)
            table[name] = replace(current, priority=priority)
        return table


__all__ = ["PersonaLearner"]
