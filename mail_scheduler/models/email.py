"""Outbound email models handed to a mail transport."""

from typing import Optional, Union

from pydantic import BaseModel, Field


class EmailAttachment(BaseModel):
    """Attachment as supplied by the caller.

    ``content`` is raw bytes, a filesystem path, an http(s) URL, a data URI,
    or plain text. The transport resolves it to bytes at send time.
    """

    filename: str
    content: Union[bytes, str]
    content_type: Optional[str] = None
    size: Optional[int] = None


class EmailMessage(BaseModel):
    """Single outbound message."""

    to: list[str]
    subject: str
    html: Optional[str] = None
    text: Optional[str] = None
    from_address: Optional[str] = None
    reply_to: Optional[str] = None
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    attachments: list[EmailAttachment] = Field(default_factory=list)

    def all_recipients(self) -> list[str]:
        """Envelope recipients: to + cc + bcc, de-duplicated, order kept."""
        seen: set[str] = set()
        recipients: list[str] = []
        for addr in [*self.to, *self.cc, *self.bcc]:
            key = addr.strip().lower()
            if key and key not in seen:
                seen.add(key)
                recipients.append(addr.strip())
        return recipients


class SendResult(BaseModel):
    """Outcome of one send attempt. Transports return this instead of raising."""

    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
