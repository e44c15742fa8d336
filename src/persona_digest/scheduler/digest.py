"""Hourly digest scheduler with batching and a process-wide run guard."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import Literal

from persona_digest.core.config import SchedulerSettings
from persona_digest.core.datetime_utils import (
    local_hour_to_utc,
    next_hourly_tick,
    parse_summary_hour,
    to_utc,
)
from persona_digest.core.interfaces import UserDirectory
from persona_digest.core.models import (
    CandidateFilter,
    CycleStats,
    SchedulerStatus,
    UserAccount,
    UserRunResult,
)
from persona_digest.intelligence.providers import ProviderError
from persona_digest.persona.profile import default_persona

from .pipeline import DigestPipeline

LOGGER = logging.getLogger(__name__)

DigestErrorKind = Literal[
    "user_not_found", "mail_not_connected", "provider", "busy", "internal"
]


class DigestError(RuntimeError):
    """Raised to manual callers when a digest run cannot be completed."""

    def __init__(self, kind: DigestErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class RunGuard:
    """Non-blocking flag marking a digest cycle in progress.

    Acquisition never awaits, so on one event loop it cannot interleave with
    another acquisition.
    """

    def __init__(self) -> None:
        self._running = False

    @property
    def is_running(self) -> bool:
        """Return ``True`` while a cycle holds the guard."""
        return self._running

    def try_acquire(self) -> bool:
        """Take the guard, returning ``False`` when it is already held."""
        if self._running:
            return False
        self._running = True
        return True

    def release(self) -> None:
        """Clear the guard at the end of a cycle."""
        self._running = False


# The only mutable state shared across scheduler instances: set when a cycle
# starts and cleared when it ends, whether it was a tick or a manual run.
RUN_GUARD = RunGuard()


class DigestScheduler:
    """Drive digest generation for every user whose local summary hour is now."""

    def __init__(
        self,
        directory: UserDirectory,
        pipeline: DigestPipeline,
        settings: SchedulerSettings | None = None,
        *,
        guard: RunGuard | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._directory = directory
        self._pipeline = pipeline
        self._settings = settings or SchedulerSettings()
        self._guard = guard or RUN_GUARD
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[None] | None = None
        self._next_run: datetime | None = None

    def start(self) -> None:
        """Schedule hourly ticks on the running event loop."""
        if self._task is not None and not self._task.done():
            LOGGER.info("Digest scheduler already started")
            return
        self._next_run = next_hourly_tick(
            self._clock(), minute=self._settings.tick_minute
        )
        self._task = asyncio.get_running_loop().create_task(self._tick_loop())
        LOGGER.info("Digest scheduler started; next run at %s", self._next_run)

    def stop(self) -> None:
        """Cancel future ticks; an in-flight cycle is left to finish."""
        if self._task is not None:
            self._task.cancel()
        self._task = None
        self._next_run = None
        LOGGER.info("Digest scheduler stopped")

    def get_status(self) -> SchedulerStatus:
        """Return whether a cycle runs, whether ticks are scheduled and when next."""
        scheduled = self._task is not None and not self._task.done()
        return SchedulerStatus(
            is_running=self._guard.is_running,
            is_scheduled=scheduled,
            next_run=self._next_run if scheduled else None,
        )

    async def process_pending_summaries(self) -> CycleStats | None:
        """Run one cycle for the users due this hour.

        Returns ``None`` without doing anything when another cycle holds the
        run guard.
        """
        if not self._guard.try_acquire():
            LOGGER.info("Digest cycle already running; skipping this tick")
            return None
        started = time.monotonic()
        try:
            now = to_utc(self._clock())
            due = self.due_users(self._fetch_candidates(), now)
            stats = CycleStats(total_eligible=len(due))
            LOGGER.info("Digest cycle at %s: %d due users", now.isoformat(), len(due))

            batch_size = self._settings.batch_size
            batches = [due[i : i + batch_size] for i in range(0, len(due), batch_size)]
            for index, batch in enumerate(batches):
                if index:
                    await self._sleep(self._settings.batch_delay_seconds)
                results = await asyncio.gather(
                    *(self._pipeline.run(user) for user in batch),
                    return_exceptions=True,
                )
                for user, result in zip(batch, results):
                    _tally(stats, user, result)

            stats.duration_seconds = time.monotonic() - started
            LOGGER.info(
                "Digest cycle finished: %d processed, %d skipped, %d failed in %.1fs",
                stats.processed,
                stats.skipped,
                stats.failed,
                stats.duration_seconds,
            )
            return stats
        finally:
            self._guard.release()

    async def process_user_manually(self, user_id: str) -> UserRunResult:
        """Generate a digest for one user regardless of their summary hour."""
        user = self._directory.get_user(user_id)
        if user is None:
            raise DigestError("user_not_found", f"User {user_id} was not found")
        if not user.mail_connected:
            raise DigestError(
                "mail_not_connected", f"User {user_id} has no active mail connection"
            )
        user = _with_persona(user)
        try:
            return await self._pipeline.run(user)
        except ProviderError as exc:
            LOGGER.warning("Manual digest for user %s failed: %s", user_id, exc)
            raise DigestError("provider", str(exc)) from exc
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Manual digest for user %s failed", user_id)
            raise DigestError(
                "internal", f"Digest generation failed for user {user_id}"
            ) from exc

    async def process_all_users(self) -> CycleStats:
        """Run the pipeline for every candidate, one user at a time.

        Users without a stored persona run with the default one, as manual runs do.
        """
        if not self._guard.try_acquire():
            raise DigestError("busy", "A digest cycle is already running")
        started = time.monotonic()
        try:
            users = [_with_persona(user) for user in self._fetch_candidates()]
            stats = CycleStats(total_eligible=len(users))
            for index, user in enumerate(users):
                if index:
                    await self._sleep(self._settings.all_users_delay_seconds)
                try:
                    result: UserRunResult | BaseException = await self._pipeline.run(
                        user
                    )
                except Exception as exc:  # pylint: disable=broad-except
                    result = exc
                _tally(stats, user, result)
            stats.duration_seconds = time.monotonic() - started
            LOGGER.info(
                "Manual run finished: %d processed, %d skipped, %d failed",
                stats.processed,
                stats.skipped,
                stats.failed,
            )
            return stats
        finally:
            self._guard.release()

    def due_users(
        self, users: Iterable[UserAccount], now: datetime
    ) -> list[UserAccount]:
        """Return the users whose local summary hour maps onto ``now``'s UTC hour."""
        current = to_utc(now)
        due: list[UserAccount] = []
        for user in users:
            persona = user.persona
            if persona is None or not user.is_active or not user.mail_connected:
                continue
            local_hour = parse_summary_hour(persona.daily_summary_time)
            utc_hour = local_hour_to_utc(
                local_hour, persona.timezone, reference=current
            )
            if utc_hour == current.hour:
                due.append(user)
        return due

    def _fetch_candidates(self) -> Sequence[UserAccount]:
        try:
            return self._directory.find_due_candidates(CandidateFilter())
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error("Fetching digest candidates failed: %s", exc)
            return []

    async def _tick_loop(self) -> None:
        while True:
            now = self._clock()
            self._next_run = next_hourly_tick(now, minute=self._settings.tick_minute)
            await self._sleep((self._next_run - now).total_seconds())
            # Cancelling the loop must not abort a cycle that already started.
            self._cycle = asyncio.get_running_loop().create_task(self._run_cycle())
            await asyncio.shield(self._cycle)

    async def _run_cycle(self) -> None:
        try:
            await self.process_pending_summaries()
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Digest cycle aborted")


def _with_persona(user: UserAccount) -> UserAccount:
    if user.persona is not None:
        return user
    LOGGER.info("User %s has no persona; using the default", user.id)
    return replace(user, persona=default_persona(user.id))


def _tally(
    stats: CycleStats, user: UserAccount, result: UserRunResult | BaseException
) -> None:
    if isinstance(result, BaseException):
        LOGGER.warning("Digest for user %s failed: %s", user.id, result)
        stats.failed += 1
    elif result.status == "completed":
        stats.processed += 1
    elif result.status == "skipped":
        stats.skipped += 1
    else:
        LOGGER.warning("Digest for user %s failed: %s", user.id, result.reason)
        stats.failed += 1


__all__ = [
    "DigestError",
    "DigestErrorKind",
    "DigestScheduler",
    "RUN_GUARD",
    "RunGuard",
]
