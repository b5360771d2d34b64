"""ScheduledDispatcher over SqlQueueStore and the in-memory database, across several runs."""

import asyncio
import os
import sys
import unittest
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import delete

from mail_scheduler.db import get_session, init_db
from mail_scheduler.db.models import ScheduledEmail
from mail_scheduler.db.repositories.scheduled_email_repo import get_by_email_id, insert_scheduled
from mail_scheduler.models.email import SendResult
from mail_scheduler.scheduler import ScheduledDispatcher, SqlQueueStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class SubjectTransport:
    """Accepts every message except those whose subject is in ``reject``."""

    def __init__(self, reject=()):
        self.reject = set(reject)
        self.sent = []

    async def send(self, message):
        if message.subject in self.reject:
            return SendResult(success=False, error="451 try again later")
        self.sent.append(message.subject)
        return SendResult(success=True, message_id=f"<{len(self.sent)}@test>")

    async def verify(self):
        return True

    async def reset(self):
        return None

    async def close(self):
        return None


class TestDispatchEndToEnd(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        init_db()

    def setUp(self):
        with get_session() as session:
            session.execute(delete(ScheduledEmail))
        for offset, email_id in enumerate(("a", "b", "c")):
            insert_scheduled(
                to_email=f"{email_id}@example.com",
                subject=f"subject-{email_id}",
                body="<p>Hello</p>",
                date_to_send=date(2024, 5, 31),
                time_to_send=time(9, 0),
                timezone_name="Europe/Berlin",
                email_id=email_id,
                created_at=NOW - timedelta(hours=1) + timedelta(seconds=offset),
            )

    def make_dispatcher(self, transport):
        store = SqlQueueStore(retry_delay_seconds=0)
        return ScheduledDispatcher(
            store,
            transport,
            batch_size=10,
            max_retries=3,
            from_address="sender@example.com",
            reply_to=None,
            bcc=None,
        )

    def test_failing_row_is_retried_until_parked(self):
        transport = SubjectTransport(reject={"subject-b"})
        dispatcher = self.make_dispatcher(transport)

        processed = []
        for _ in range(4):
            result = asyncio.run(dispatcher.process_scheduled_emails(now=NOW))
            self.assertEqual(result.processed, result.sent + result.skipped + result.failed)
            processed.append(result.processed)

        self.assertEqual(processed, [3, 1, 1, 0])
        self.assertEqual(sorted(transport.sent), ["subject-a", "subject-c"])

        parked = get_by_email_id("b")
        self.assertEqual(parked.retry_count, 3)
        self.assertEqual(parked.status, "failed")
        self.assertFalse(parked.sent)
        self.assertEqual(parked.last_error, "451 try again later")

        for email_id in ("a", "c"):
            row = get_by_email_id(email_id)
            self.assertTrue(row.sent)
            self.assertEqual(row.status, "sent")
            self.assertEqual(row.retry_count, 0)

    def test_sent_rows_are_not_sent_again(self):
        transport = SubjectTransport()
        dispatcher = self.make_dispatcher(transport)

        first = asyncio.run(dispatcher.process_scheduled_emails(now=NOW))
        second = asyncio.run(dispatcher.process_scheduled_emails(now=NOW))

        self.assertEqual((first.processed, first.sent), (3, 3))
        self.assertEqual(second.processed, 0)
        self.assertEqual(len(transport.sent), 3)


if __name__ == "__main__":
    unittest.main()
