"""Queue store adapter used by the dispatcher."""

import asyncio
import threading
from datetime import datetime
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError

from mail_scheduler.config import (
    DATABASE_URL,
    SCHEDULER_CLAIM_TIMEOUT_SECONDS,
    SCHEDULER_RETRY_DELAY_SECONDS,
)
from mail_scheduler.db.models.scheduled_email import ScheduledEmail
from mail_scheduler.db.repositories import scheduled_email_repo as repo
from mail_scheduler.scheduler.errors import QueueStoreError
from mail_scheduler.utils.logger import get_logger

logger = get_logger("mail_scheduler.scheduler.store")


class QueueStore(Protocol):
    """Storage contract for scheduled emails. Each call is atomic for one row.

    Methods may be plain functions or coroutines; the dispatcher awaits either.
    """

    def fetch_due(self, now: datetime, limit: int, max_retries: int) -> list[ScheduledEmail]:
        """Unsent rows with retry budget left whose date/time is due by UTC wall clock, oldest first."""
        ...

    def mark_in_progress(self, email_id: str) -> bool:
        """Claim a row for sending; False when another run holds it."""
        ...

    def mark_sent(self, email_id: str) -> None:
        ...

    def mark_failed(self, email_id: str, error: str) -> None:
        """Set status=failed and increment retry_count."""
        ...


class SqlQueueStore:
    """QueueStore over the SQLAlchemy repository; queries run in worker threads.

    With ``serialize`` (the default for SQLite) one query runs at a time, since
    concurrent batch records would otherwise share a single connection.
    """

    def __init__(
        self,
        claim_timeout_seconds: int = SCHEDULER_CLAIM_TIMEOUT_SECONDS,
        retry_delay_seconds: int = SCHEDULER_RETRY_DELAY_SECONDS,
        serialize: bool = DATABASE_URL.startswith("sqlite"),
    ):
        self._claim_timeout_seconds = claim_timeout_seconds
        self._retry_delay_seconds = retry_delay_seconds
        self._lock = threading.Lock() if serialize else None

    def _call(self, func, *args, **kwargs):
        if self._lock is None:
            return func(*args, **kwargs)
        with self._lock:
            return func(*args, **kwargs)

    async def _run(self, operation: str, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(self._call, func, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("store.error", operation=operation, error=str(e))
            raise QueueStoreError(f"Error accessing email database: {e}") from e

    async def fetch_due(self, now: datetime, limit: int, max_retries: int) -> list[ScheduledEmail]:
        rows = await self._run(
            "fetch_due",
            repo.fetch_due,
            now,
            limit,
            max_retries,
            retry_delay_seconds=self._retry_delay_seconds,
        )
        logger.info("store.fetch_due", count=len(rows), limit=limit, max_retries=max_retries)
        return rows

    async def mark_in_progress(self, email_id: str) -> bool:
        return await self._run(
            "mark_in_progress",
            repo.mark_in_progress,
            email_id,
            claim_timeout_seconds=self._claim_timeout_seconds,
        )

    async def mark_sent(self, email_id: str) -> None:
        await self._run("mark_sent", repo.mark_sent, email_id)

    async def mark_failed(self, email_id: str, error: str) -> None:
        await self._run("mark_failed", repo.mark_failed, email_id, error)

    async def status_counts(self, max_retries: int) -> dict[str, int]:
        return await self._run("status_counts", repo.status_counts, max_retries)
