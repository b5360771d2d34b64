"""Enqueue mode: insert a pending scheduled email."""

import typer

from mail_scheduler.config import SCHEDULER_TIMEZONE_DEFAULT
from mail_scheduler.db import init_db
from mail_scheduler.db.repositories import scheduled_email_insert
from mail_scheduler.scheduler.validation import split_addresses, validate_addresses
from mail_scheduler.utils.timezone import convert_to_utc, is_valid_timezone, parse_date, parse_time

from .shared import console, logger


def enqueue(
    to: str = typer.Option(..., "--to", help="Recipient(s), comma separated"),
    subject: str = typer.Option(..., "--subject", "-s"),
    body: str = typer.Option(..., "--body", "-b", help="HTML body"),
    send_date: str = typer.Option(..., "--date", "-d", help="Local date YYYY-MM-DD"),
    send_time: str = typer.Option(..., "--time", "-t", help="Local time HH:MM[:SS]"),
    tz: str = typer.Option(SCHEDULER_TIMEZONE_DEFAULT, "--timezone", "-z", help="IANA timezone"),
    cc: str | None = typer.Option(None, "--cc"),
    bcc: str | None = typer.Option(None, "--bcc"),
    attachment_url: str | None = typer.Option(None, "--attachment-url", "-a", help="URL, path or data URI"),
) -> None:
    """Queue an email for delivery at a local date/time in a timezone."""
    init_db()
    log = logger.bind(command="enqueue", timezone=tz)

    recipients = split_addresses(to)
    if not recipients or not validate_addresses(recipients):
        console.print(f"[red]Invalid recipient: {to}[/red]")
        raise typer.Exit(1)
    if not is_valid_timezone(tz):
        console.print(f"[red]Unknown timezone: {tz}[/red]")
        raise typer.Exit(1)
    try:
        local_date = parse_date(send_date)
        local_time = parse_time(send_time)
    except ValueError:
        console.print(f"[red]Invalid date/time: {send_date} {send_time}[/red]")
        raise typer.Exit(1)

    scheduled_utc = convert_to_utc(local_date, local_time, tz)
    if scheduled_utc is None:
        console.print(f"[red]{send_date} {send_time} does not exist in {tz}[/red]")
        raise typer.Exit(1)

    row = scheduled_email_insert(
        to_email=to,
        subject=subject,
        body=body,
        date_to_send=local_date,
        time_to_send=local_time,
        timezone_name=tz,
        cc_email=cc,
        bcc_email=bcc,
        attachment_url=attachment_url,
    )
    log.info("enqueue.inserted", email_id=row.email_id, scheduled_utc=scheduled_utc.isoformat())
    console.print(f"[green]Queued {row.email_id}[/green] for {scheduled_utc.isoformat()} (UTC)")
