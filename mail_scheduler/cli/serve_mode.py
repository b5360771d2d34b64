"""Serve mode: run the HTTP trigger with uvicorn."""

import sys

import typer
import uvicorn

from mail_scheduler.config import SCHEDULER_API_KEY, SCHEDULER_PORT
from mail_scheduler.webhook.server import SCHEDULER_PATH, create_app

from .shared import console, logger


def serve(
    port: int = typer.Option(SCHEDULER_PORT, "--port", "-p", help="Port for the trigger server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Write messages to the outbox file instead of SMTP"),
) -> None:
    """Start the scheduler trigger; an external cron POSTs to it."""
    log = logger.bind(command="serve", port=port, dry_run=dry_run)
    log.info("serve.start")

    if not SCHEDULER_API_KEY:
        console.print("[yellow]EMAIL_SCHEDULER_API_KEY is not set; every trigger request will get 401.[/yellow]")
        log.warning("serve.missing_api_key")

    app = create_app(dry_run=dry_run)

    console.print(f"[green]Starting scheduler trigger on http://{host}:{port}[/green]")
    console.print(f"[dim]Endpoints: POST/OPTIONS {SCHEDULER_PATH}, GET {SCHEDULER_PATH}/status, GET /health[/dim]")
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            timeout_graceful_shutdown=15,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
