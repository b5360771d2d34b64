"""Scheduler error messages and exceptions."""

INVALID_TIMEZONE = "Invalid timezone specified"
INVALID_EMAIL = "Invalid email address"
ATTACHMENT_TOO_LARGE = "Attachment size exceeds limit"
INVALID_ATTACHMENT_TYPE = "Invalid attachment type"
ALREADY_IN_PROGRESS = "already in progress"
UNAUTHORIZED = "Unauthorized access to scheduler endpoint"


class QueueStoreError(RuntimeError):
    """The queue store could not be reached. Fatal for a whole dispatcher run."""
