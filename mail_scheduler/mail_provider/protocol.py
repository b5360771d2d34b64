"""Mail transport protocol."""

from typing import Protocol

from mail_scheduler.models.email import EmailMessage, SendResult


class MailTransport(Protocol):
    """Outbound mail transport used by the dispatcher."""

    async def send(self, message: EmailMessage) -> SendResult:
        """Send one message. Failures are reported in the result, never raised."""
        ...

    async def verify(self) -> bool:
        """Check that the transport can reach its server."""
        ...

    async def reset(self) -> None:
        """Discard the current connection and build a fresh one."""
        ...

    async def close(self) -> None:
        """Release the connection (called on shutdown)."""
        ...
