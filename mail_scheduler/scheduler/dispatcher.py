"""Scheduled email dispatcher: fetch due rows, re-check due time per timezone, send, record.

Each call to ``process_scheduled_emails`` is one batch. Records in a batch are
processed concurrently (bounded by the batch size); a failure on one record
never changes the outcome of another. Only store failures (QueueStoreError)
abort the run.
"""

import asyncio
import mimetypes
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from mail_scheduler.config import (
    ALLOWED_ATTACHMENT_TYPES,
    EMAIL_BCC,
    EMAIL_FROM,
    EMAIL_REPLY_TO,
    MAX_ATTACHMENT_SIZE,
    SCHEDULER_BATCH_SIZE,
    SCHEDULER_MAX_RETRIES,
    SCHEDULER_TIMEZONE_DEFAULT,
)
from mail_scheduler.db.models.scheduled_email import ScheduledEmail
from mail_scheduler.mail_provider.attachments import filename_from_url
from mail_scheduler.mail_provider.protocol import MailTransport
from mail_scheduler.models.dispatch import DetailStatus, DispatchResult, ProcessingDetail
from mail_scheduler.models.email import EmailAttachment, EmailMessage, SendResult
from mail_scheduler.scheduler.errors import (
    ALREADY_IN_PROGRESS,
    INVALID_EMAIL,
    INVALID_TIMEZONE,
    QueueStoreError,
)
from mail_scheduler.scheduler.store import QueueStore
from mail_scheduler.scheduler.validation import (
    known_attachment_size,
    split_addresses,
    validate_addresses,
    validate_attachment,
)
from mail_scheduler.utils.aio import maybe_await
from mail_scheduler.utils.logger import bind_context, get_logger, unbind_context
from mail_scheduler.utils.timezone import convert_to_utc, is_due, is_valid_timezone

logger = get_logger("mail_scheduler.scheduler.dispatcher")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScheduledDispatcher:
    """Processes one batch of scheduled emails per call.

    Stateless between calls; all state lives in the store rows. The store and
    transport are injected by the process bootstrap.
    """

    def __init__(
        self,
        store: QueueStore,
        transport: MailTransport,
        *,
        batch_size: int = SCHEDULER_BATCH_SIZE,
        max_retries: int = SCHEDULER_MAX_RETRIES,
        default_timezone: str = SCHEDULER_TIMEZONE_DEFAULT,
        from_address: str = EMAIL_FROM,
        reply_to: Optional[str] = EMAIL_REPLY_TO or None,
        bcc: Optional[str] = EMAIL_BCC or None,
        max_attachment_size: int = MAX_ATTACHMENT_SIZE,
        allowed_attachment_types: Iterable[str] = ALLOWED_ATTACHMENT_TYPES,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._transport = transport
        self._batch_size = max(1, batch_size)
        self._max_retries = max_retries
        self._default_timezone = default_timezone
        self._from_address = from_address
        self._reply_to = reply_to
        self._bcc = split_addresses(bcc)
        self._max_attachment_size = max_attachment_size
        self._allowed_attachment_types = [t.lower() for t in allowed_attachment_types]
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def process_scheduled_emails(self, now: Optional[datetime] = None) -> DispatchResult:
        """Run one batch and return the aggregated result.

        Raises QueueStoreError when the store is unreachable; every other
        per-record problem is recorded in the result.
        """
        now_utc = _as_utc(now or self._clock())
        batch_id = uuid.uuid4().hex[:12]
        bind_context(batch_id=batch_id)
        started = time.perf_counter()
        try:
            logger.info(
                "dispatcher.batch.start",
                now=now_utc.isoformat(),
                batch_size=self._batch_size,
                max_retries=self._max_retries,
            )
            emails = await maybe_await(
                self._store.fetch_due(now_utc, self._batch_size, self._max_retries)
            )
            semaphore = asyncio.Semaphore(self._batch_size)

            async def _bounded(email: ScheduledEmail) -> ProcessingDetail:
                async with semaphore:
                    return await self.process_scheduled_email(email, now_utc)

            outcomes = await asyncio.gather(
                *(_bounded(email) for email in emails),
                return_exceptions=True,
            )
            errors = [o for o in outcomes if isinstance(o, BaseException)]
            if errors:
                logger.error(
                    "dispatcher.batch.aborted",
                    errors=len(errors),
                    error=str(errors[0]),
                )
                raise errors[0]

            result = DispatchResult()
            for detail in outcomes:
                result.record(detail)

            total_ms = (time.perf_counter() - started) * 1000
            logger.info(
                "dispatcher.batch.completed",
                processed=result.processed,
                sent=result.sent,
                skipped=result.skipped,
                failed=result.failed,
                total_ms=round(total_ms, 1),
                avg_ms=round(total_ms / result.processed, 1) if result.processed else 0,
            )
            return result
        finally:
            unbind_context("batch_id")

    async def process_scheduled_email(self, email: ScheduledEmail, now: datetime) -> ProcessingDetail:
        """Process one record. Only QueueStoreError escapes.

        Every mutation happens under the ``mark_in_progress`` claim, so two
        overlapping runs never record the same attempt twice.
        """
        started = time.perf_counter()
        log = logger.bind(email_id=email.email_id)

        def detail(status: DetailStatus, error: Optional[str] = None) -> ProcessingDetail:
            return ProcessingDetail(
                email_id=email.email_id,
                status=status,
                error=error,
                processing_time_ms=round((time.perf_counter() - started) * 1000, 3),
            )

        tz_name = email.timezone or self._default_timezone
        tz_valid = is_valid_timezone(tz_name)
        if tz_valid and not is_due(email.date_to_send, email.time_to_send, tz_name, now):
            # Includes wall clocks that never occur in the zone (DST gap).
            scheduled_utc = convert_to_utc(email.date_to_send, email.time_to_send, tz_name)
            log.debug(
                "dispatcher.email.not_due",
                scheduled_utc=scheduled_utc.isoformat() if scheduled_utc else None,
                now=_as_utc(now).isoformat(),
            )
            return detail("pending")

        claimed = await maybe_await(self._store.mark_in_progress(email.email_id))
        if not claimed:
            log.info("dispatcher.email.claim_lost")
            return detail("pending", ALREADY_IN_PROGRESS)

        if not tz_valid:
            log.warning("dispatcher.email.invalid_timezone", timezone=tz_name)
            await maybe_await(self._store.mark_failed(email.email_id, INVALID_TIMEZONE))
            return detail("failed", INVALID_TIMEZONE)

        try:
            validation_error = self._validation_error(email)
            if validation_error:
                log.warning("dispatcher.email.invalid", error=validation_error)
                result = SendResult(success=False, error=validation_error)
            else:
                message = self._build_message(email)
                result = await self._transport.send(message)
        except QueueStoreError:
            raise
        except Exception as e:
            log.exception("dispatcher.email.send_error", error=str(e))
            result = SendResult(success=False, error=str(e) or e.__class__.__name__)

        if result.success:
            await maybe_await(self._store.mark_sent(email.email_id))
            log.info("dispatcher.email.sent", message_id=result.message_id)
            return detail("sent")

        error = result.error or "Failed to send email"
        await maybe_await(self._store.mark_failed(email.email_id, error))
        log.warning(
            "dispatcher.email.failed",
            error=error,
            retry_count=email.retry_count + 1,
            parked=email.retry_count + 1 >= self._max_retries,
        )
        return detail("failed", error)

    def _validation_error(self, email: ScheduledEmail) -> Optional[str]:
        to = split_addresses(email.to_email)
        if not to or not validate_addresses(to):
            return INVALID_EMAIL
        if not validate_addresses(split_addresses(email.cc_email)):
            return INVALID_EMAIL
        if not validate_addresses(split_addresses(email.bcc_email)):
            return INVALID_EMAIL
        if email.attachment_url:
            return validate_attachment(
                self._attachment_filename(email.attachment_url),
                known_attachment_size(email.attachment_url),
                self._max_attachment_size,
                self._allowed_attachment_types,
            )
        return None

    @staticmethod
    def _attachment_filename(reference: str) -> str:
        if reference.startswith("http://") or reference.startswith("https://"):
            return filename_from_url(reference)
        if reference.startswith("data:"):
            media_type = reference[5:].split(",", 1)[0].split(";", 1)[0].strip()
            extension = mimetypes.guess_extension(media_type) if media_type else None
            return f"attachment{extension or ''}"
        return Path(reference).name or "attachment"

    def _build_message(self, email: ScheduledEmail) -> EmailMessage:
        attachments = []
        if email.attachment_url:
            attachments.append(
                EmailAttachment(
                    filename=self._attachment_filename(email.attachment_url),
                    content=email.attachment_url,
                )
            )
        return EmailMessage(
            to=split_addresses(email.to_email),
            cc=split_addresses(email.cc_email),
            bcc=[*split_addresses(email.bcc_email), *self._bcc],
            subject=email.subject,
            html=email.body,
            from_address=self._from_address,
            reply_to=self._reply_to,
            attachments=attachments,
        )
