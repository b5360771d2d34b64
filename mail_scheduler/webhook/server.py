"""FastAPI trigger for the scheduled email dispatcher."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mail_scheduler.config import (
    OUTBOX_PATH,
    SCHEDULER_API_KEY,
    SCHEDULER_MAX_RETRIES,
    SMTP_TIMEOUT,
)
from mail_scheduler.db import init_db
from mail_scheduler.mail_provider import OutboxTransport, SmtpTransport
from mail_scheduler.models.dispatch import SchedulerError
from mail_scheduler.scheduler import QueueStoreError, ScheduledDispatcher, SqlQueueStore
from mail_scheduler.utils.logger import get_logger
from mail_scheduler.webhook.responses import (
    create_response,
    is_authorized,
    unauthorized_response,
)
from mail_scheduler.webhook.status_routes import router as status_router

logger = get_logger("mail_scheduler.webhook.server")

SCHEDULER_PATH = "/api/webhook/email-scheduler"


def _setup_dispatcher(app: FastAPI, dry_run: bool) -> None:
    """Build store + transport + dispatcher and keep them on app.state (owned by the lifespan)."""
    store = SqlQueueStore()
    if dry_run:
        transport: Any = OutboxTransport(OUTBOX_PATH)
        app.state._http_client = None
    else:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(SMTP_TIMEOUT),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        transport = SmtpTransport(http_client=http_client)
        app.state._http_client = http_client
    app.state.store = store
    app.state.transport = transport
    app.state.dispatcher = ScheduledDispatcher(store, transport)
    logger.info("webhook.lifespan.dispatcher_ready", transport=type(transport).__name__)


async def _shutdown(app: FastAPI) -> None:
    """Close the transport connection and the attachment HTTP client."""
    transport = getattr(app.state, "transport", None)
    if transport is not None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug("webhook.lifespan.transport_close_error", error=str(e))
    http_client = getattr(app.state, "_http_client", None)
    if http_client is not None:
        await http_client.aclose()
        app.state._http_client = None


@asynccontextmanager
async def _lifespan(app: FastAPI, create_dispatcher: bool = True, dry_run: bool = False):
    """Create the dispatcher inside the server's event loop when one was not injected."""
    if create_dispatcher:
        await asyncio.to_thread(init_db)
        _setup_dispatcher(app, dry_run)
    yield
    if create_dispatcher:
        await _shutdown(app)


def create_app(
    dispatcher: ScheduledDispatcher | None = None,
    store: Any = None,
    api_key: str | None = None,
    dry_run: bool = False,
    max_retries: int = SCHEDULER_MAX_RETRIES,
) -> FastAPI:
    """
    Create the FastAPI app. When ``dispatcher`` is passed (tests, embedding) it is
    used as-is; otherwise the lifespan builds the SQL store and SMTP transport
    (or the outbox transport when ``dry_run``).
    """
    create_dispatcher = dispatcher is None
    app = FastAPI(
        title="Scheduled Email Dispatcher",
        version="0.1.0",
        lifespan=lambda app: _lifespan(app, create_dispatcher=create_dispatcher, dry_run=dry_run),
    )
    app.state.api_key = SCHEDULER_API_KEY if api_key is None else api_key
    app.state.max_retries = max_retries
    if dispatcher is not None:
        app.state.dispatcher = dispatcher
        app.state.store = store

    if not app.state.api_key:
        logger.warning("webhook.no_api_key", detail="every scheduler request will be rejected")

    app.include_router(status_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.options(SCHEDULER_PATH)
    async def scheduler_options() -> JSONResponse:
        return create_response("OK", status_code=200)

    @app.post(SCHEDULER_PATH)
    async def trigger_scheduler(request: Request) -> JSONResponse:
        """Run one dispatcher batch. Requires the x-api-key shared secret."""
        if not is_authorized(request):
            logger.warning(
                "scheduler.trigger.unauthorized",
                client=request.client.host if request.client else None,
            )
            return unauthorized_response()

        dispatcher: ScheduledDispatcher | None = getattr(request.app.state, "dispatcher", None)
        if dispatcher is None:
            logger.error("scheduler.trigger.no_dispatcher")
            return create_response(
                "Failed to process scheduled emails",
                status_code=503,
                error=SchedulerError(code="PROCESSING_ERROR", message="Dispatcher not configured"),
            )

        logger.info("scheduler.trigger.start")
        try:
            result = await dispatcher.process_scheduled_emails()
        except QueueStoreError as e:
            logger.error("scheduler.trigger.database_error", error=str(e))
            return create_response(
                "Failed to process scheduled emails",
                status_code=500,
                error=SchedulerError(
                    code="DATABASE_ERROR",
                    message="Error accessing email database",
                    details=str(e),
                ),
            )
        except Exception as e:
            logger.exception("scheduler.trigger.processing_error", error=str(e))
            return create_response(
                "Failed to process scheduled emails",
                status_code=500,
                error=SchedulerError(
                    code="PROCESSING_ERROR",
                    message="Failed to process scheduled emails",
                    details=str(e) or e.__class__.__name__,
                ),
            )

        logger.info(
            "scheduler.trigger.completed",
            processed=result.processed,
            sent=result.sent,
            skipped=result.skipped,
            failed=result.failed,
        )
        return create_response("Scheduled emails processed successfully", data=result)

    return app
