"""Shared CLI helpers: console, logger, transport builder, result tables."""

from rich.console import Console
from rich.table import Table

from mail_scheduler.config import OUTBOX_PATH
from mail_scheduler.mail_provider import MailTransport, OutboxTransport, SmtpTransport
from mail_scheduler.models.dispatch import DispatchResult
from mail_scheduler.utils.logger import get_logger

console = Console()
logger = get_logger("mail_scheduler.cli")

_STATUS_STYLES = {"sent": "green", "pending": "yellow", "failed": "red"}


def get_transport(dry_run: bool = False) -> MailTransport:
    """SMTP transport from config, or the JSON outbox when ``dry_run``."""
    if dry_run:
        console.print(f"[dim]Dry run: messages go to {OUTBOX_PATH}[/dim]")
        return OutboxTransport(OUTBOX_PATH)
    return SmtpTransport()


def print_dispatch_result(result: DispatchResult) -> None:
    """Print the per-record details and the batch totals."""
    if result.details:
        table = Table(title="Scheduled emails")
        table.add_column("Email ID", style="cyan")
        table.add_column("Status")
        table.add_column("Error")
        table.add_column("ms", justify="right")
        for d in result.details:
            style = _STATUS_STYLES.get(d.status, "white")
            ms = f"{d.processing_time_ms:.1f}" if d.processing_time_ms is not None else ""
            table.add_row(d.email_id, f"[{style}]{d.status}[/{style}]", d.error or "", ms)
        console.print(table)
    console.print(
        f"\n[bold]Processed {result.processed}[/bold]: "
        f"[green]{result.sent} sent[/green], "
        f"[yellow]{result.skipped} skipped[/yellow], "
        f"[red]{result.failed} failed[/red]"
    )
