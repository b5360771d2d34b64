"""DB repositories: sync functions over the scheduled email queue table."""

from mail_scheduler.db.repositories.scheduled_email_repo import (
    fetch_due as scheduled_email_fetch_due,
    get_by_email_id as scheduled_email_get_by_email_id,
    insert_scheduled as scheduled_email_insert,
    mark_failed as scheduled_email_mark_failed,
    mark_in_progress as scheduled_email_mark_in_progress,
    mark_sent as scheduled_email_mark_sent,
    status_counts as scheduled_email_status_counts,
)

__all__ = [
    "scheduled_email_fetch_due",
    "scheduled_email_get_by_email_id",
    "scheduled_email_insert",
    "scheduled_email_mark_failed",
    "scheduled_email_mark_in_progress",
    "scheduled_email_mark_sent",
    "scheduled_email_status_counts",
]
