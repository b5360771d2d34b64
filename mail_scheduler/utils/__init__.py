"""Utility modules."""

from mail_scheduler.utils.aio import maybe_await
from mail_scheduler.utils.logger import bind_context, get_logger, unbind_context
from mail_scheduler.utils.timezone import (
    convert_to_utc,
    format_in_timezone,
    is_due,
    is_valid_timezone,
)

__all__ = [
    "maybe_await",
    "get_logger",
    "bind_context",
    "unbind_context",
    "convert_to_utc",
    "format_in_timezone",
    "is_due",
    "is_valid_timezone",
]
