"""Command-line entry point for Persona Digest."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

from persona_digest.core import AppSettings, configure_logging, load_app_settings
from persona_digest.core.models import (
    FEEDBACK_ACTIONS,
    CandidateFilter,
    CycleStats,
    FeedbackEntry,
)
from persona_digest.ingestion import MaildropMailClient
from persona_digest.intelligence import (
    ProviderError,
    SummarizationOrchestrator,
    create_adapter,
    create_transport,
)
from persona_digest.persona import PersonaLearner, PersonaScorer, default_persona
from persona_digest.scheduler import DigestError, DigestPipeline, DigestScheduler
from persona_digest.storage import SqliteDigestRepository

T = TypeVar("T")


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Persona-driven email digests")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("status", help="Show configuration and known users.")
    commands.add_parser("run-cycle", help="Run one digest cycle for users due now.")
    commands.add_parser("process-all", help="Generate digests for every user.")
    commands.add_parser("serve", help="Run the hourly scheduler until interrupted.")

    process_user = commands.add_parser(
        "process-user", help="Generate a digest for one user now."
    )
    process_user.add_argument("user_id")

    add_user = commands.add_parser("add-user", help="Register a user and persona.")
    add_user.add_argument("user_id")
    add_user.add_argument("--email", default=None)
    add_user.add_argument("--role", default=None)
    add_user.add_argument(
        "--summary-time", default=None, help="Local digest time as HH:MM."
    )
    add_user.add_argument(
        "--timezone", default=None, help="IANA zone or offset such as UTC-5."
    )

    feedback = commands.add_parser("feedback", help="Record feedback for a user.")
    feedback.add_argument("user_id")
    feedback.add_argument("action", choices=FEEDBACK_ACTIONS)
    feedback.add_argument("--email-ref", default=None)
    feedback.add_argument("--summary-ref", default=None)
    feedback.add_argument("--sender", default=None)
    feedback.add_argument("--category", default=None)
    feedback.add_argument(
        "--keyword", dest="keywords", action="append", default=[], help="Repeatable."
    )
    feedback.add_argument("--text", default=None)
    feedback.add_argument(
        "--rating", type=float, default=None, help="Summary rating, e.g. 1 to 5."
    )

    optimize = commands.add_parser(
        "optimize", help="Re-weight a persona from pending feedback."
    )
    optimize.add_argument("user_id")
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return the exit code."""
    command = args.command or "status"
    if command == "status":
        _show_status(settings)
    elif command == "add-user":
        _add_user(settings, args)
    elif command == "feedback":
        asyncio.run(_record_feedback(settings, args))
    elif command == "optimize":
        _optimize(settings, args.user_id)
    elif command == "run-cycle":
        stats = _with_scheduler(settings, lambda s: s.process_pending_summaries())
        if stats is None:
            print("A digest cycle is already running.")
        else:
            _print_stats(stats)
    elif command == "process-all":
        _print_stats(_with_scheduler(settings, lambda s: s.process_all_users()))
    elif command == "process-user":
        result = _with_scheduler(
            settings, lambda s: s.process_user_manually(args.user_id)
        )
        print(
            f"User {result.user_id}: {result.status}"
            + (f" ({result.reason})" if result.reason else "")
            + (f", digest {result.summary_id}" if result.summary_id else "")
        )
    elif command == "serve":
        try:
            _with_scheduler(settings, _serve_forever)
        except KeyboardInterrupt:
            print("Scheduler stopped.")
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    try:
        code = execute(args, settings)
    except (DigestError, ProviderError) as exc:
        print(f"Failed: {exc}")
        code = 1
    raise SystemExit(code)


def _show_status(settings: AppSettings) -> None:
    print("Persona Digest")
    print(f"AI provider: {settings.llm.provider}")
    print(f"Database path: {settings.storage.db_path}")
    print(f"Mail drop root: {settings.mail.drop_root}")
    print(
        f"Batches of {settings.scheduler.batch_size}, "
        f"dedup window {settings.scheduler.dedup_window_hours}h"
    )
    with SqliteDigestRepository(settings.storage) as repository:
        users = repository.find_due_candidates(
            CandidateFilter(active_only=False, mail_connected_only=False)
        )
    print(f"Known users: {len(users)}")
    for user in users:
        persona = user.persona
        schedule = (
            f"{persona.daily_summary_time} {persona.timezone}" if persona else "no persona"
        )
        print(f"  {user.id:<20} {schedule}")


def _add_user(settings: AppSettings, args: argparse.Namespace) -> None:
    persona = default_persona(
        args.user_id,
        role=args.role,
        daily_summary_time=args.summary_time,
        timezone=args.timezone,
    )
    with SqliteDigestRepository(settings.storage) as repository:
        existing = repository.load_persona(args.user_id)
        user = repository.add_user(
            args.user_id, email=args.email, persona=existing or persona
        )
    print(f"Stored user {user.id}.")


async def _record_feedback(settings: AppSettings, args: argparse.Namespace) -> None:
    learner = PersonaLearner(settings.learning)
    with SqliteDigestRepository(settings.storage) as repository:
        persona = repository.load_persona(args.user_id)
        if persona is None:
            raise DigestError("user_not_found", f"No persona for user {args.user_id}")
        entry = FeedbackEntry(
            action=args.action,
            email_ref=args.email_ref,
            summary_ref=args.summary_ref,
            free_text=args.text,
            sender=args.sender,
            category=args.category,
            keywords=tuple(args.keywords),
        )
        persona = learner.add_feedback(persona, entry)
        if args.rating is not None:
            persona = learner.record_rating(persona, args.rating)
        repository.save_persona(persona)
        print(f"Recorded {args.action} for user {args.user_id}.")
        if learner.should_optimize(persona):
            await learner.schedule_optimize(persona, repository)
            print("Persona re-weighted from accumulated feedback.")


def _optimize(settings: AppSettings, user_id: str) -> None:
    learner = PersonaLearner(settings.learning)
    with SqliteDigestRepository(settings.storage) as repository:
        persona = repository.load_persona(user_id)
        if persona is None:
            raise DigestError("user_not_found", f"No persona for user {user_id}")
        updated = learner.optimize(persona)
        if updated is persona:
            pending = len(learner.pending_feedback(persona))
            print(
                f"Nothing to optimise: {pending} new feedback entries, "
                f"{settings.learning.optimize_threshold} required."
            )
            return
        repository.save_persona(updated)
    print(f"Optimised persona for user {user_id}.")


def _with_scheduler(
    settings: AppSettings, action: Callable[[DigestScheduler], Awaitable[T]]
) -> T:
    async def runner() -> T:
        adapter = create_adapter(settings.llm)
        with SqliteDigestRepository(settings.storage) as repository:
            async with create_transport(settings.llm, adapter) as transport:
                orchestrator = SummarizationOrchestrator(
                    adapter,
                    transport,
                    call_timeout=settings.llm.call_timeout_seconds,
                )
                pipeline = DigestPipeline(
                    MaildropMailClient(settings.mail),
                    repository,
                    PersonaScorer(),
                    orchestrator,
                    settings.scheduler,
                    persona_store=repository,
                )
                scheduler = DigestScheduler(repository, pipeline, settings.scheduler)
                return await action(scheduler)

    return asyncio.run(runner())


async def _serve_forever(scheduler: DigestScheduler) -> None:
    scheduler.start()
    status = scheduler.get_status()
    print(f"Scheduler running; next cycle at {status.next_run}. Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


def _print_stats(stats: CycleStats) -> None:
    print(
        f"Eligible {stats.total_eligible}: {stats.processed} processed, "
        f"{stats.skipped} skipped, {stats.failed} failed "
        f"in {stats.duration_seconds:.1f}s"
    )


if __name__ == "__main__":
    main()
