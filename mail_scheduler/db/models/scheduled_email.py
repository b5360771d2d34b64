"""ORM model for the scheduled email queue (one row per email to send)."""

from datetime import date, time
from typing import Optional

from sqlalchemy import Boolean, Date, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from mail_scheduler.config import SCHEDULER_TIMEZONE_DEFAULT
from mail_scheduler.db.base import Base, TimestampMixin

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class ScheduledEmail(Base, TimestampMixin):
    """A scheduled send. date/time are wall clock in ``timezone``, not UTC."""

    __tablename__ = "emailtosend"

    email_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    to_email: Mapped[str] = mapped_column(String(1024), nullable=False)
    cc_email: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    bcc_email: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    subject: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # Legacy schema: one attachment per row.
    attachment_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    date_to_send: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    time_to_send: Mapped[time] = mapped_column(Time, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default=SCHEDULER_TIMEZONE_DEFAULT)

    sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"ScheduledEmail(email_id={self.email_id!r}, status={self.status!r}, "
            f"retry_count={self.retry_count}, date={self.date_to_send}, time={self.time_to_send}, "
            f"timezone={self.timezone!r})"
        )
