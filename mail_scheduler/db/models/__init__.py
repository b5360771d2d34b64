"""Re-export all ORM models so Base.metadata has all tables."""

from mail_scheduler.db.models.scheduled_email import (
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_SENT,
    ScheduledEmail,
)

__all__ = [
    "ScheduledEmail",
    "STATUS_PENDING",
    "STATUS_IN_PROGRESS",
    "STATUS_SENT",
    "STATUS_FAILED",
]
