"""Send-test mode: push one message straight through the transport."""

import asyncio
from pathlib import Path

import typer

from mail_scheduler.models.email import EmailAttachment, EmailMessage, SendResult

from .shared import console, get_transport, logger


async def _send(message: EmailMessage, dry_run: bool) -> SendResult:
    transport = get_transport(dry_run)
    try:
        return await transport.send(message)
    finally:
        await transport.close()


def send_test(
    to: str = typer.Option(..., "--to", help="Recipient"),
    subject: str = typer.Option("Test email", "--subject", "-s"),
    html: str = typer.Option("<p>This is a test email from the scheduler.</p>", "--html"),
    attach: list[Path] = typer.Option([], "--attach", help="File to attach (repeatable)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Write to the outbox file instead of SMTP"),
) -> None:
    """Send a single test email to check SMTP settings."""
    log = logger.bind(command="send-test", to=to)
    log.info("send_test.start", attachments=len(attach))
    missing = [str(p) for p in attach if not p.is_file()]
    if missing:
        console.print(f"[red]Attachment not found: {', '.join(missing)}[/red]")
        raise typer.Exit(1)

    message = EmailMessage(
        to=[to],
        subject=subject,
        html=html,
        attachments=[EmailAttachment(filename=p.name, content=str(p)) for p in attach],
    )
    result = asyncio.run(_send(message, dry_run))
    if not result.success:
        console.print(f"[red]Send failed: {result.error}[/red]")
        log.warning("send_test.failed", error=result.error)
        raise typer.Exit(1)
    console.print(f"[green]Sent[/green] {result.message_id or ''}")
    log.info("send_test.sent", message_id=result.message_id)
