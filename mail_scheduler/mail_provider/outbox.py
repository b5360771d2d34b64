"""Outbox transport: writes messages to a JSON file instead of an SMTP server."""

import asyncio
import json
from datetime import datetime, timezone
from email.utils import make_msgid
from pathlib import Path
from typing import Any

from mail_scheduler.config import EMAIL_FROM, MAX_ATTACHMENT_SIZE
from mail_scheduler.mail_provider.attachments import resolve_attachment
from mail_scheduler.models.email import EmailMessage, SendResult
from mail_scheduler.utils.logger import get_logger

logger = get_logger("mail_scheduler.mail_provider.outbox")


class OutboxTransport:
    """Dry-run transport: every sent message is appended to ``outbox_path``."""

    def __init__(
        self,
        outbox_path: Path,
        from_address: str = EMAIL_FROM,
        max_attachment_size: int | None = MAX_ATTACHMENT_SIZE,
    ):
        self._outbox_path = Path(outbox_path)
        self._from_address = from_address
        self._max_attachment_size = max_attachment_size
        self._lock = asyncio.Lock()
        logger.info("outbox.init", outbox_path=str(self._outbox_path))

    def _load(self) -> list[dict[str, Any]]:
        if not self._outbox_path.exists():
            return []
        with self._outbox_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, list) else []

    def _save(self, items: list[dict[str, Any]]) -> None:
        self._outbox_path.parent.mkdir(parents=True, exist_ok=True)
        with self._outbox_path.open("w", encoding="utf-8") as f:
            json.dump(items, f, indent=2, default=str)

    async def verify(self) -> bool:
        return True

    async def reset(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def send(self, message: EmailMessage) -> SendResult:
        async with self._lock:
            try:
                attachments = []
                for attachment in message.attachments:
                    resolved = await resolve_attachment(attachment, max_size=self._max_attachment_size)
                    attachments.append(
                        {
                            "filename": resolved.filename,
                            "content_type": resolved.content_type,
                            "size": len(resolved.data),
                        }
                    )
                message_id = make_msgid()
                entry = {
                    "message_id": message_id,
                    "sent_at": datetime.now(timezone.utc).isoformat(),
                    "from": message.from_address or self._from_address,
                    "to": message.to,
                    "cc": message.cc,
                    "bcc": message.bcc,
                    "reply_to": message.reply_to,
                    "subject": message.subject,
                    "html": message.html,
                    "text": message.text,
                    "attachments": attachments,
                }
                items = self._load()
                items.append(entry)
                self._save(items)
            except Exception as e:
                logger.warning("outbox.send.failed", to=message.to, error=str(e))
                return SendResult(success=False, error=str(e) or e.__class__.__name__)
        logger.info("outbox.send.ok", to=message.to, message_id=message_id, count=len(items))
        return SendResult(success=True, message_id=message_id)
