"""Status mode: print queue counts."""

import typer
from rich.table import Table

from mail_scheduler.config import SCHEDULER_MAX_RETRIES
from mail_scheduler.db import init_db
from mail_scheduler.db.repositories import scheduled_email_status_counts

from .shared import console, logger


def status(
    max_retries: int = typer.Option(SCHEDULER_MAX_RETRIES, "--max-retries", help="Retry bound used for 'parked'"),
) -> None:
    """Show how many scheduled emails are pending, sent, failed or parked."""
    init_db()
    counts = scheduled_email_status_counts(max_retries)
    logger.info("status.counts", **counts)
    table = Table(title="Email queue")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")
    for key, value in counts.items():
        table.add_row(key, str(value))
    console.print(table)
