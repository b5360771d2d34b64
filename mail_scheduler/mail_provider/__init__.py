"""Mail transports: SMTP (aiosmtplib) and a file-backed outbox for dry runs."""

from mail_scheduler.mail_provider.attachments import (
    AttachmentError,
    ResolvedAttachment,
    resolve_attachment,
)
from mail_scheduler.mail_provider.outbox import OutboxTransport
from mail_scheduler.mail_provider.protocol import MailTransport
from mail_scheduler.mail_provider.smtp_transport import TRANSPORT_UNAVAILABLE, SmtpTransport

__all__ = [
    "AttachmentError",
    "ResolvedAttachment",
    "resolve_attachment",
    "MailTransport",
    "OutboxTransport",
    "SmtpTransport",
    "TRANSPORT_UNAVAILABLE",
]
