"""SMTP transport built on aiosmtplib.

One instance owns one lazily-created SMTP connection. State machine:
``uninitialized -> verified -> (verified | broken)``. ``send`` holds an
asyncio lock for its whole duration, so concurrent callers are serialized
(transport concurrency is 1).
"""

from __future__ import annotations

import asyncio
import time
from email.message import EmailMessage as MimeMessage
from email.utils import make_msgid
from typing import Any, Callable

import aiosmtplib
import httpx

from mail_scheduler.config import (
    EMAIL_FROM,
    EMAIL_RATE_LIMIT,
    MAX_ATTACHMENT_SIZE,
    EMAIL_REPLY_TO,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_SECURE,
    SMTP_TIMEOUT,
    SMTP_USERNAME,
)
from mail_scheduler.mail_provider.attachments import resolve_attachment
from mail_scheduler.models.email import EmailMessage, SendResult
from mail_scheduler.utils.body_text import html_to_text
from mail_scheduler.utils.logger import get_logger

logger = get_logger("mail_scheduler.mail_provider.smtp")

TRANSPORT_UNAVAILABLE = "transport unavailable"
HTML_FALLBACK_TEXT = "This message requires an HTML-capable email client."

STATE_UNINITIALIZED = "uninitialized"
STATE_VERIFIED = "verified"
STATE_BROKEN = "broken"

ClientFactory = Callable[[], Any]


class SmtpTransport:
    """SMTP submission with TLS required and username/password auth."""

    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        username: str = SMTP_USERNAME,
        password: str = SMTP_PASSWORD,
        secure: bool = SMTP_SECURE,
        timeout: float = SMTP_TIMEOUT,
        from_address: str = EMAIL_FROM,
        reply_to: str | None = EMAIL_REPLY_TO or None,
        rate_limit: int = EMAIL_RATE_LIMIT,
        max_attachment_size: int | None = MAX_ATTACHMENT_SIZE,
        client_factory: ClientFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._secure = secure
        self._timeout = timeout
        self._from_address = from_address
        self._reply_to = reply_to
        self._min_interval = 1.0 / rate_limit if rate_limit > 0 else 0.0
        self._max_attachment_size = max_attachment_size
        self._client_factory = client_factory or self._default_client
        self._http_client = http_client
        self._client: Any = None
        self._lock = asyncio.Lock()
        self._last_send_at: float | None = None
        self.state = STATE_UNINITIALIZED

    def _default_client(self) -> aiosmtplib.SMTP:
        logger.debug(
            "transport.client.create",
            host=self._host,
            port=self._port,
            secure=self._secure,
        )
        return aiosmtplib.SMTP(
            hostname=self._host,
            port=self._port,
            username=self._username or None,
            password=self._password or None,
            use_tls=self._secure,
            # STARTTLS is mandatory when the connection is not TLS from the start.
            start_tls=not self._secure,
            timeout=self._timeout,
        )

    async def verify(self) -> bool:
        """Connect (and log in) if needed, then NOOP. Returns False on any failure."""
        try:
            if self._client is None:
                self._client = self._client_factory()
            if not self._client.is_connected:
                await asyncio.wait_for(self._client.connect(), timeout=self._timeout)
            await asyncio.wait_for(self._client.noop(), timeout=self._timeout)
        except Exception as e:
            self.state = STATE_BROKEN
            logger.warning(
                "transport.verify.failed",
                host=self._host,
                port=self._port,
                error=str(e) or e.__class__.__name__,
            )
            return False
        if self.state != STATE_VERIFIED:
            logger.info("transport.verify.ok", host=self._host, port=self._port)
        self.state = STATE_VERIFIED
        return True

    async def _discard_client(self) -> None:
        old, self._client = self._client, None
        if old is None:
            return
        try:
            await asyncio.wait_for(old.quit(), timeout=self._timeout)
        except Exception as e:
            logger.debug("transport.quit_failed", error=str(e) or e.__class__.__name__)
            old.close()

    async def reset(self) -> None:
        """Drop the old connection completely, then construct a new client."""
        logger.info("transport.reset", host=self._host, port=self._port)
        await self._discard_client()
        self._client = self._client_factory()
        self.state = STATE_UNINITIALIZED

    async def close(self) -> None:
        await self._discard_client()
        self.state = STATE_UNINITIALIZED
        logger.debug("transport.closed")

    async def _throttle(self) -> None:
        if not self._min_interval or self._last_send_at is None:
            return
        remaining = self._min_interval - (time.monotonic() - self._last_send_at)
        if remaining > 0:
            await asyncio.sleep(remaining)

    async def _build_mime(self, message: EmailMessage) -> tuple[MimeMessage, str]:
        sender = message.from_address or self._from_address
        if not sender:
            raise ValueError("Sender address is not configured")
        domain = sender.rsplit("@", 1)[-1] if "@" in sender else None
        message_id = make_msgid(domain=domain)

        mime = MimeMessage()
        mime["Subject"] = message.subject
        mime["From"] = sender
        mime["To"] = ", ".join(message.to)
        if message.cc:
            mime["Cc"] = ", ".join(message.cc)
        reply_to = message.reply_to or self._reply_to
        if reply_to:
            mime["Reply-To"] = reply_to
        mime["Message-ID"] = message_id

        mime.set_content(message.text or html_to_text(message.html or "") or HTML_FALLBACK_TEXT)
        if message.html:
            mime.add_alternative(message.html, subtype="html")

        for attachment in message.attachments:
            resolved = await resolve_attachment(
                attachment, self._http_client, self._timeout, max_size=self._max_attachment_size
            )
            maintype, subtype = resolved.content_type.split("/", 1)
            mime.add_attachment(
                resolved.data,
                maintype=maintype,
                subtype=subtype,
                filename=resolved.filename,
            )
        return mime, message_id

    async def send(self, message: EmailMessage) -> SendResult:
        """Verify (one reset + re-verify on failure), build and submit one message."""
        async with self._lock:
            await self._throttle()
            try:
                if not await self.verify():
                    await self.reset()
                    if not await self.verify():
                        logger.error("transport.unavailable", host=self._host, port=self._port)
                        return SendResult(success=False, error=TRANSPORT_UNAVAILABLE)

                recipients = message.all_recipients()
                if not recipients:
                    return SendResult(success=False, error="Message has no recipients")
                mime, message_id = await self._build_mime(message)
                sender = message.from_address or self._from_address
                self._last_send_at = time.monotonic()
                errors, response = await asyncio.wait_for(
                    self._client.send_message(mime, sender=sender, recipients=recipients),
                    timeout=self._timeout,
                )
            except Exception as e:
                self.state = STATE_BROKEN
                error = str(e) or e.__class__.__name__
                logger.warning(
                    "transport.send.failed",
                    to=message.to,
                    subject=message.subject,
                    error=error,
                )
                return SendResult(success=False, error=error)

        if errors:
            logger.warning("transport.send.partial", rejected=list(errors))
        logger.info(
            "transport.send.ok",
            to=message.to,
            message_id=message_id,
            attachments=len(message.attachments),
            response=str(response),
        )
        return SendResult(success=True, message_id=message_id)
