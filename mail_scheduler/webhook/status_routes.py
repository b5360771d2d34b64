"""Queue status API: counts per status and parked rows."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from mail_scheduler.config import SCHEDULER_MAX_RETRIES
from mail_scheduler.models.dispatch import SchedulerError
from mail_scheduler.utils.aio import maybe_await
from mail_scheduler.scheduler.errors import QueueStoreError
from mail_scheduler.utils.logger import get_logger
from mail_scheduler.webhook.responses import (
    create_response,
    is_authorized,
    json_response,
    unauthorized_response,
    utc_timestamp,
)

logger = get_logger("mail_scheduler.webhook.status")

router = APIRouter(prefix="/api/webhook/email-scheduler", tags=["scheduler"])


@router.get("/status")
async def queue_status(request: Request) -> JSONResponse:
    """Return queue counts: pending, in_progress, sent, failed, parked, total."""
    if not is_authorized(request):
        logger.warning("scheduler.status.unauthorized")
        return unauthorized_response()

    store = getattr(request.app.state, "store", None)
    if store is None or not hasattr(store, "status_counts"):
        return create_response(
            "Queue store not configured",
            status_code=503,
            error=SchedulerError(code="PROCESSING_ERROR", message="Queue store not configured"),
        )
    max_retries = getattr(request.app.state, "max_retries", SCHEDULER_MAX_RETRIES)
    try:
        counts = await maybe_await(store.status_counts(max_retries))
    except QueueStoreError as e:
        logger.error("scheduler.status.store_error", error=str(e))
        return create_response(
            "Failed to read queue status",
            status_code=500,
            error=SchedulerError(code="DATABASE_ERROR", message="Error accessing email database", details=str(e)),
        )
    return json_response(
        {
            "success": True,
            "timestamp": utc_timestamp(),
            "max_retries": max_retries,
            "counts": counts,
        }
    )
