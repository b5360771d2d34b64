"""Scheduled email repository: fetch due rows, claim, mark sent / failed, counts."""

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, func, or_, select, update

from mail_scheduler.config import SCHEDULER_CLAIM_TIMEOUT_SECONDS, SCHEDULER_TIMEZONE_DEFAULT
from mail_scheduler.db import get_session
from mail_scheduler.db.models.scheduled_email import (
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_SENT,
    ScheduledEmail,
)

_MAX_ERROR_LENGTH = 2000


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def insert_scheduled(
    to_email: str,
    subject: str,
    body: str,
    date_to_send: date,
    time_to_send: time,
    timezone_name: str = SCHEDULER_TIMEZONE_DEFAULT,
    cc_email: Optional[str] = None,
    bcc_email: Optional[str] = None,
    attachment_url: Optional[str] = None,
    email_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> ScheduledEmail:
    """Insert a pending row (status=pending, sent=False, retry_count=0)."""
    with get_session() as session:
        row = ScheduledEmail(
            email_id=email_id or uuid.uuid4().hex,
            to_email=to_email,
            cc_email=cc_email,
            bcc_email=bcc_email,
            subject=subject,
            body=body,
            attachment_url=attachment_url,
            date_to_send=date_to_send,
            time_to_send=time_to_send,
            timezone=timezone_name,
            sent=False,
            status=STATUS_PENDING,
            retry_count=0,
        )
        if created_at is not None:
            row.created_at = _as_utc(created_at)
            row.updated_at = row.created_at
        session.add(row)
        session.flush()
        session.refresh(row)
        session.expunge(row)
        return row


def get_by_email_id(email_id: str) -> Optional[ScheduledEmail]:
    """Return the row for this email_id, or None."""
    with get_session() as session:
        row = session.get(ScheduledEmail, email_id)
        if row is not None:
            session.expunge(row)
        return row


def fetch_due(
    now: Optional[datetime],
    limit: int,
    max_retries: int,
    retry_delay_seconds: int = 0,
) -> list[ScheduledEmail]:
    """Return unsent rows whose date/time is at or before ``now`` read as UTC wall clock.

    Coarse filter only: rows are compared against UTC today/now, not against
    their own timezone, so callers must re-check each row with the resolver.
    Ordered by created_at ascending, capped at ``limit``.
    """
    now_utc = _as_utc(now)
    today = now_utc.date()
    current_time = now_utc.time().replace(tzinfo=None)

    q = (
        select(ScheduledEmail)
        .where(ScheduledEmail.sent.is_(False))
        .where(ScheduledEmail.retry_count < max_retries)
        .where(
            or_(
                ScheduledEmail.date_to_send < today,
                and_(
                    ScheduledEmail.date_to_send == today,
                    ScheduledEmail.time_to_send <= current_time,
                ),
            )
        )
    )
    if retry_delay_seconds > 0:
        cutoff = now_utc - timedelta(seconds=retry_delay_seconds)
        q = q.where(
            or_(
                ScheduledEmail.status != STATUS_FAILED,
                ScheduledEmail.updated_at <= cutoff,
            )
        )
    q = q.order_by(ScheduledEmail.created_at.asc()).limit(limit)

    with get_session() as session:
        rows = list(session.scalars(q).all())
        for row in rows:
            session.expunge(row)
        return rows


def mark_in_progress(
    email_id: str,
    claim_timeout_seconds: int = SCHEDULER_CLAIM_TIMEOUT_SECONDS,
    now: Optional[datetime] = None,
) -> bool:
    """Claim the row for sending. Returns False if it is sent or already claimed (and the claim is fresh)."""
    now_utc = _as_utc(now)
    stale_before = now_utc - timedelta(seconds=claim_timeout_seconds)
    stmt = (
        update(ScheduledEmail)
        .where(ScheduledEmail.email_id == email_id)
        .where(ScheduledEmail.sent.is_(False))
        .where(
            or_(
                ScheduledEmail.status != STATUS_IN_PROGRESS,
                ScheduledEmail.updated_at <= stale_before,
            )
        )
        .values(status=STATUS_IN_PROGRESS, updated_at=now_utc)
        .execution_options(synchronize_session=False)
    )
    with get_session() as session:
        result = session.execute(stmt)
        return result.rowcount == 1


def mark_sent(email_id: str, now: Optional[datetime] = None) -> bool:
    """Set status=sent and sent=True. Returns True if a row was updated."""
    stmt = (
        update(ScheduledEmail)
        .where(ScheduledEmail.email_id == email_id)
        .values(status=STATUS_SENT, sent=True, last_error=None, updated_at=_as_utc(now))
        .execution_options(synchronize_session=False)
    )
    with get_session() as session:
        result = session.execute(stmt)
        return result.rowcount == 1


def mark_failed(email_id: str, error: str, now: Optional[datetime] = None) -> bool:
    """Set status=failed and increment retry_count in one statement. Sent rows are left alone."""
    stmt = (
        update(ScheduledEmail)
        .where(ScheduledEmail.email_id == email_id)
        .where(ScheduledEmail.sent.is_(False))
        .values(
            status=STATUS_FAILED,
            retry_count=ScheduledEmail.retry_count + 1,
            last_error=(error or "")[:_MAX_ERROR_LENGTH],
            updated_at=_as_utc(now),
        )
        .execution_options(synchronize_session=False)
    )
    with get_session() as session:
        result = session.execute(stmt)
        return result.rowcount == 1


def status_counts(max_retries: int) -> dict[str, int]:
    """Return row counts per status plus ``parked`` (unsent rows with an exhausted retry budget)."""
    counts = {
        STATUS_PENDING: 0,
        STATUS_IN_PROGRESS: 0,
        STATUS_SENT: 0,
        STATUS_FAILED: 0,
    }
    with get_session() as session:
        rows = session.execute(
            select(ScheduledEmail.status, func.count(ScheduledEmail.email_id)).group_by(ScheduledEmail.status)
        ).all()
        for status, count in rows:
            counts[status] = count
        parked = session.scalar(
            select(func.count(ScheduledEmail.email_id))
            .where(ScheduledEmail.sent.is_(False))
            .where(ScheduledEmail.retry_count >= max_retries)
        )
    counts["parked"] = int(parked or 0)
    counts["total"] = sum(counts[s] for s in (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_SENT, STATUS_FAILED))
    return counts
