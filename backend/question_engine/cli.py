"""
Device-local command line client.

Runs selections the way the practice app does on a device: guests (no
--user-id) keep their history in local storage, authenticated learners use
the database ledger.

Example:
    question-engine --database-url sqlite+aiosqlite:///practice.db init-db
    question-engine select <subject-id> --topic <topic-id> --count 20
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import click

from question_engine.core.app_exceptions import AppError
from question_engine.core.config import settings
from question_engine.db.engine import create_db_engine
from question_engine.db.init_db import init_db
from question_engine.db.session import create_session_factory
from question_engine.selection.guest import GuestLedger, JsonFileStorage
from question_engine.selection.ledger import DatabaseLedger
from question_engine.selection.repo import QuestionStore
from question_engine.selection.service import SelectionService
from question_engine.selection.types import SelectionResult

logger = logging.getLogger(__name__)


def _echo_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


def _result_payload(result: SelectionResult) -> dict[str, Any]:
    payload = result.to_dict()
    payload["questions"] = [q.to_dict() for q in result.questions]
    return payload


def _parse_distribution(values: tuple[str, ...]) -> dict[str, int] | None:
    if not values:
        return None
    distribution: dict[str, int] = {}
    for value in values:
        topic_id, sep, count = value.partition("=")
        if not sep or not topic_id:
            raise click.BadParameter(f"expected TOPIC_ID=COUNT, got {value!r}", param_hint="--distribution")
        try:
            distribution[topic_id] = int(count)
        except ValueError:
            raise click.BadParameter(f"count must be an integer in {value!r}", param_hint="--distribution") from None
    return distribution


def _guest_ledger(ctx: click.Context) -> GuestLedger:
    return GuestLedger(JsonFileStorage(ctx.obj["guest_dir"]))


def _run(ctx: click.Context, action: Callable[[SelectionService], Awaitable[Any]]) -> Any:
    """Run an action against a service bound to the configured database."""

    async def runner():
        engine = create_db_engine(ctx.obj["database_url"])
        session_factory = create_session_factory(engine)
        service = SelectionService(
            store=QuestionStore(session_factory),
            database_ledger=DatabaseLedger(session_factory),
            guest_ledger=_guest_ledger(ctx),
        )
        try:
            return await action(service)
        finally:
            await service.drain()
            await engine.dispose()

    try:
        return asyncio.run(runner())
    except (AppError, ValueError) as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option("--database-url", default=None, help="Database URL (defaults to DATABASE_URL)")
@click.option(
    "--guest-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for guest tracking (defaults to GUEST_STORAGE_DIR)",
)
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def cli(ctx: click.Context, database_url: str | None, guest_dir: Path | None, verbose: bool):
    """Select practice questions a learner has not seen yet."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url or settings.DATABASE_URL
    ctx.obj["guest_dir"] = guest_dir or settings.GUEST_STORAGE_DIR


@cli.command("init-db")
@click.pass_context
def init_db_command(ctx: click.Context):
    """Create tables (and ledger functions on PostgreSQL)."""

    async def runner():
        engine = create_db_engine(ctx.obj["database_url"])
        try:
            return await init_db(engine)
        finally:
            await engine.dispose()

    installed = asyncio.run(runner())
    _echo_json({"initialized": True, "functions": installed})


@cli.command()
@click.argument("subject_id")
@click.option("--topic", "topic_ids", multiple=True, help="Topic to draw from (repeatable)")
@click.option("--distribution", "distribution", multiple=True, help="Exact quota as TOPIC_ID=COUNT (repeatable)")
@click.option("--count", type=click.IntRange(min=1), default=20, show_default=True)
@click.option("--proportional", is_flag=True, help="Size per-topic quotas by each --topic pool")
@click.option("--user-id", default=None, help="Authenticated learner; guest mode when omitted")
@click.pass_context
def select(
    ctx: click.Context,
    subject_id: str,
    topic_ids: tuple[str, ...],
    distribution: tuple[str, ...],
    count: int,
    user_id: str | None,
    proportional: bool,
):
    """Select questions from the given topics."""
    quotas = _parse_distribution(distribution)
    if not topic_ids and not quotas:
        raise click.UsageError("give at least one --topic or --distribution")
    if proportional and (quotas or not topic_ids):
        raise click.UsageError("--proportional needs --topic and no --distribution")

    result = _run(
        ctx,
        lambda service: (
            service.select_proportionally(user_id, subject_id, list(topic_ids), count)
            if proportional
            else service.select_questions(user_id, subject_id, list(topic_ids), count, quotas)
        ),
    )
    _echo_json(_result_payload(result))


@cli.command()
@click.argument("subject_id")
@click.option("--count", type=click.IntRange(min=1), default=20, show_default=True)
@click.option("--user-id", default=None, help="Authenticated learner; guest mode when omitted")
@click.pass_context
def quick(ctx: click.Context, subject_id: str, count: int, user_id: str | None):
    """Select questions across every topic of a subject."""
    result = _run(ctx, lambda service: service.select_for_quick_practice(user_id, subject_id, count))
    _echo_json(_result_payload(result))


@cli.command()
@click.argument("subject_id")
@click.option("--user-id", default=None, help="Authenticated learner; guest mode when omitted")
@click.pass_context
def status(ctx: click.Context, subject_id: str, user_id: str | None):
    """Show how much of the subject pool is left."""
    pool = _run(ctx, lambda service: service.pool_status(user_id, subject_id))
    _echo_json(
        {
            "total": pool.total,
            "attempted": pool.attempted,
            "remaining": pool.remaining,
            "exhausted": pool.exhausted,
        }
    )


@cli.command()
@click.argument("subject_id")
@click.option("--user-id", default=None, help="Authenticated learner; guest mode when omitted")
@click.pass_context
def reset(ctx: click.Context, subject_id: str, user_id: str | None):
    """Forget attempted questions for a subject."""
    deleted = _run(ctx, lambda service: service.reset_pool(user_id, subject_id))
    _echo_json({"deleted": deleted})


@cli.command("guest-stats")
@click.pass_context
def guest_stats(ctx: click.Context):
    """Show what this device has tracked."""
    stats = _guest_ledger(ctx).tracking_stats()
    _echo_json(
        {
            "subjects_with_tracking": stats.subjects_with_tracking,
            "total_questions_tracked": stats.total_questions_tracked,
            "subjects": [{"subject_id": s, "count": c} for s, c in stats.subjects],
        }
    )


@cli.command("guest-clear")
@click.confirmation_option(prompt="Clear all guest tracking on this device?")
@click.pass_context
def guest_clear(ctx: click.Context):
    """Clear guest tracking for every subject."""
    cleared = _guest_ledger(ctx).clear_all()
    _echo_json({"subjects_cleared": cleared})


if __name__ == "__main__":
    cli()
