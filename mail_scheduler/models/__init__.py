"""Pydantic models for the mail scheduler."""

from mail_scheduler.models.dispatch import (
    DispatchResult,
    ProcessingDetail,
    SchedulerError,
    SchedulerErrorCode,
    SchedulerResponse,
)
from mail_scheduler.models.email import EmailAttachment, EmailMessage, SendResult

__all__ = [
    "EmailAttachment",
    "EmailMessage",
    "SendResult",
    "DispatchResult",
    "ProcessingDetail",
    "SchedulerError",
    "SchedulerErrorCode",
    "SchedulerResponse",
]
