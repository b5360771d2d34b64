"""Dispatch mode: run one batch from the command line (cron-friendly)."""

import asyncio

import typer

from mail_scheduler.db import init_db
from mail_scheduler.models.dispatch import DispatchResult
from mail_scheduler.scheduler import QueueStoreError, ScheduledDispatcher, SqlQueueStore

from .shared import console, get_transport, logger, print_dispatch_result


async def _run_once(dry_run: bool) -> DispatchResult:
    transport = get_transport(dry_run)
    try:
        dispatcher = ScheduledDispatcher(SqlQueueStore(), transport)
        return await dispatcher.process_scheduled_emails()
    finally:
        await transport.close()


def dispatch(
    dry_run: bool = typer.Option(False, "--dry-run", help="Write messages to the outbox file instead of SMTP"),
) -> None:
    """Process due scheduled emails once and print the result."""
    init_db()
    log = logger.bind(command="dispatch", dry_run=dry_run)
    log.info("dispatch.start")
    try:
        result = asyncio.run(_run_once(dry_run))
    except QueueStoreError as e:
        console.print(f"[red]Database error: {e}[/red]")
        log.error("dispatch.database_error", error=str(e))
        raise typer.Exit(1)
    print_dispatch_result(result)
    log.info("dispatch.complete", processed=result.processed, sent=result.sent, failed=result.failed)
