"""CLI commands: one module per mode (serve, dispatch, enqueue, send-test, status)."""

from typer import Typer

from mail_scheduler.cli import dispatch_mode, enqueue_mode, send_test_mode, serve_mode, status_mode

app = Typer(help="Scheduled email dispatcher")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(serve_mode.serve)
    app.command()(dispatch_mode.dispatch)
    app.command()(enqueue_mode.enqueue)
    app.command(name="send-test")(send_test_mode.send_test)
    app.command()(status_mode.status)


register_commands()
