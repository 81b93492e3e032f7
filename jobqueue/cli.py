"""jobqueue - operator CLI. `run-once` is what the external cron invokes."""

import asyncio
import json
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

import click
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from jobqueue.settings import settings
from jobqueue.db.session import Base
from jobqueue.api.v1.admin import HealthResponse, ProcessingResponse
from jobqueue.api.v1.jobs import JobResponse
from jobqueue.api.v1.worker import WorkerRunSummary
from jobqueue.commands.enqueue_job import enqueue_job
from jobqueue.commands.processing import ensure_settings_row, set_processing_enabled
from jobqueue.commands.admin_actions import set_job_enabled
from jobqueue.domain.errors import JobError, JobValidationError
from jobqueue.domain.states import TriggerSource
from jobqueue.health.monitor import HealthMonitor
from jobqueue.worker.dispatcher import Dispatcher
from jobqueue.utils.clock import utcnow

import jobqueue.tasks.builtin  # noqa: F401

T = TypeVar("T")

def _run(database_url: str, fn: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]]) -> T:
    # One engine per invocation: the CLI is short-lived and owns its event loop
    async def runner() -> T:
        engine = create_async_engine(database_url, pool_pre_ping=True)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
        try:
            return await fn(factory)
        finally:
            await engine.dispose()

    return asyncio.run(runner())

def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))

@click.group()
@click.option(
    "--database-url",
    envvar="JOBQUEUE_SQLALCHEMY_DATABASE_URI",
    default=settings.SQLALCHEMY_DATABASE_URI,
    show_default=False,
    help="Job store DSN (defaults to the configured one)",
)
@click.pass_context
def cli(ctx, database_url):
    """jobqueue - background job queue operations"""
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url


# ---------------- Schema ----------------
@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create tables directly (development; use alembic in production)"""
    async def go(factory):
        async with factory.kw["bind"].begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with factory() as session:
            await ensure_settings_row(session)
            await session.commit()

    _run(ctx.obj["database_url"], go)
    click.echo("Schema ready.")


# ---------------- Dispatcher ----------------
@cli.command("run-once")
@click.option("--batch-size", type=int, default=None, help="Jobs to lease (clamped to MAX_BATCH_SIZE)")
@click.option("--timeout", "timeout_seconds", type=float, default=None, help="Per-handler timeout in seconds")
@click.option("--force", is_flag=True, help="Run even if processing is paused")
@click.option(
    "--source",
    type=click.Choice([s.value for s in TriggerSource]),
    default=TriggerSource.CRON.value,
    show_default=True,
)
@click.pass_context
def run_once(ctx, batch_size, timeout_seconds, force, source):
    """Run one dispatcher batch and print the worker run summary"""
    async def go(factory):
        dispatcher = Dispatcher(session_factory=factory)
        result = await dispatcher.run_once(
            batch_size=batch_size,
            timeout=timeout_seconds,
            source=TriggerSource(source),
            force=force,
        )
        return WorkerRunSummary.model_validate(result).model_dump(mode="json")

    summary = _run(ctx.obj["database_url"], go)
    _echo_json(summary)
    if summary["run"]["status"] == "failed":
        ctx.exit(1)


# ---------------- Health ----------------
@cli.command()
@click.pass_context
def health(ctx):
    """Print queue counts, stuck/overdue jobs and trigger freshness"""
    async def go(factory):
        async with factory() as session:
            report = await HealthMonitor().get_health(session)
            return HealthResponse.model_validate(report).model_dump(mode="json")

    _echo_json(_run(ctx.obj["database_url"], go))


# ---------------- Enqueue ----------------
@cli.command()
@click.argument("task_type")
@click.option("--payload", default="{}", help="JSON value passed verbatim to the handler")
@click.option("--max-attempts", type=int, default=None)
@click.option("--delay", "delay_seconds", type=int, default=0, help="Seconds until the job is due")
@click.option("--every", "interval_minutes", type=int, default=None, help="Make recurring with this interval (minutes)")
@click.option("--expires-at", type=click.DateTime(), default=None, help="Stop recurring after this UTC time")
@click.pass_context
def enqueue(ctx, task_type, payload, max_attempts, delay_seconds, interval_minutes, expires_at):
    """Add a job to the queue"""
    try:
        payload_data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--payload")

    async def go(factory):
        async with factory() as session:
            job = await enqueue_job(
                session,
                task_type=task_type,
                payload=payload_data,
                run_at=utcnow() + timedelta(seconds=delay_seconds),
                max_attempts=max_attempts,
                is_recurring=interval_minutes is not None,
                recurrence_interval_minutes=interval_minutes,
                expires_at=expires_at,
            )
            await session.commit()
            return JobResponse.model_validate(job).model_dump(mode="json")

    try:
        _echo_json(_run(ctx.obj["database_url"], go))
    except JobValidationError as e:
        raise click.UsageError(str(e))


# ---------------- Processing switch ----------------
def _set_processing(database_url: str, enabled: bool, reason: str | None) -> dict:
    async def go(factory):
        async with factory() as session:
            row = await set_processing_enabled(session, enabled, reason)
            await session.commit()
            return ProcessingResponse.model_validate(row).model_dump(mode="json")

    return _run(database_url, go)

@cli.command()
@click.option("--reason", default=None, help="Shown to operators and in skipped worker runs")
@click.pass_context
def pause(ctx, reason):
    """Stop the dispatcher from leasing jobs"""
    _echo_json(_set_processing(ctx.obj["database_url"], False, reason))

@cli.command()
@click.pass_context
def resume(ctx):
    """Allow the dispatcher to lease jobs again"""
    _echo_json(_set_processing(ctx.obj["database_url"], True, None))



# ---------------- Recurring job switch ----------------
def _set_job_enabled(database_url: str, job_id, enabled: bool) -> dict:
    async def go(factory):
        async with factory() as session:
            job = await set_job_enabled(session, job_id, enabled)
            await session.commit()
            return JobResponse.model_validate(job).model_dump(mode="json")

    try:
        return _run(database_url, go)
    except JobError as e:
        raise click.ClickException(str(e))

@cli.command()
@click.argument("job_id", type=click.UUID)
@click.pass_context
def enable(ctx, job_id):
    """Let a disabled recurring job be leased again"""
    _echo_json(_set_job_enabled(ctx.obj["database_url"], job_id, True))

@cli.command()
@click.argument("job_id", type=click.UUID)
@click.pass_context
def disable(ctx, job_id):
    """Stop leasing a recurring job without cancelling it"""
    _echo_json(_set_job_enabled(ctx.obj["database_url"], job_id, False))


if __name__ == "__main__":
    cli()
