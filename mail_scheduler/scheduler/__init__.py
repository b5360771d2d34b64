"""Scheduled email dispatch: store adapter, validation, dispatcher."""

from mail_scheduler.scheduler.dispatcher import ScheduledDispatcher
from mail_scheduler.scheduler.errors import QueueStoreError
from mail_scheduler.scheduler.store import QueueStore, SqlQueueStore

__all__ = [
    "ScheduledDispatcher",
    "QueueStore",
    "SqlQueueStore",
    "QueueStoreError",
]
