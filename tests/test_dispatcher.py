"""Tests for ScheduledDispatcher with an in-memory store and a fake transport."""

import asyncio
import base64
import os
import sys
import unittest
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mail_scheduler.db.models import ScheduledEmail
from mail_scheduler.models.email import SendResult
from mail_scheduler.scheduler import QueueStoreError, ScheduledDispatcher
from mail_scheduler.scheduler.errors import (
    ALREADY_IN_PROGRESS,
    ATTACHMENT_TOO_LARGE,
    INVALID_ATTACHMENT_TYPE,
    INVALID_EMAIL,
    INVALID_TIMEZONE,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
YESTERDAY = TODAY - timedelta(days=1)


def make_email(email_id, **overrides):
    fields = dict(
        email_id=email_id,
        to_email="user@example.com",
        cc_email=None,
        bcc_email=None,
        subject=f"Subject {email_id}",
        body="<p>Hello</p>",
        attachment_url=None,
        date_to_send=YESTERDAY,
        time_to_send=time(9, 0),
        timezone="UTC",
        sent=False,
        status="pending",
        retry_count=0,
    )
    fields.update(overrides)
    return ScheduledEmail(**fields)


class FakeStore:
    """Sync store over a dict; fetch ignores dates so the dispatcher's own check is exercised."""

    def __init__(self, emails):
        self.rows = {e.email_id: e for e in emails}
        self.claim_refused = set()
        self.calls = []

    def fetch_due(self, now, limit, max_retries):
        self.calls.append(("fetch_due", limit, max_retries))
        return [r for r in self.rows.values() if not r.sent and r.retry_count < max_retries][:limit]

    def mark_in_progress(self, email_id):
        self.calls.append(("mark_in_progress", email_id))
        if email_id in self.claim_refused:
            return False
        self.rows[email_id].status = "in_progress"
        return True

    def mark_sent(self, email_id):
        self.calls.append(("mark_sent", email_id))
        row = self.rows[email_id]
        row.status = "sent"
        row.sent = True

    def mark_failed(self, email_id, error):
        self.calls.append(("mark_failed", email_id, error))
        row = self.rows[email_id]
        if row.sent:
            return
        row.status = "failed"
        row.retry_count += 1
        row.last_error = error

    def mutations(self):
        return [c for c in self.calls if c[0] != "fetch_due"]


class FakeTransport:
    def __init__(self, fail_subjects=(), raise_subjects=()):
        self.fail_subjects = set(fail_subjects)
        self.raise_subjects = set(raise_subjects)
        self.sent = []

    async def send(self, message):
        if message.subject in self.raise_subjects:
            raise ConnectionResetError("connection dropped")
        if message.subject in self.fail_subjects:
            return SendResult(success=False, error="550 mailbox unavailable")
        self.sent.append(message)
        return SendResult(success=True, message_id=f"<{len(self.sent)}@test>")

    async def verify(self):
        return True

    async def reset(self):
        return None

    async def close(self):
        return None


def run(dispatcher, now=NOW):
    return asyncio.run(dispatcher.process_scheduled_emails(now=now))


class TestScheduledDispatcher(unittest.TestCase):
    def make_dispatcher(self, store, transport=None, **kwargs):
        kwargs.setdefault("max_retries", 3)
        kwargs.setdefault("batch_size", 50)
        kwargs.setdefault("from_address", "sender@example.com")
        kwargs.setdefault("reply_to", None)
        kwargs.setdefault("bcc", None)
        return ScheduledDispatcher(store, transport or FakeTransport(), **kwargs)

    def test_overdue_email_in_other_timezone_is_sent(self):
        store = FakeStore([make_email("ny", timezone="America/New_York", time_to_send=time(23, 0))])
        transport = FakeTransport()
        result = run(self.make_dispatcher(store, transport))

        self.assertEqual((result.processed, result.sent, result.skipped, result.failed), (1, 1, 0, 0))
        self.assertTrue(store.rows["ny"].sent)
        self.assertEqual(store.rows["ny"].status, "sent")
        self.assertEqual(transport.sent[0].to, ["user@example.com"])
        self.assertEqual(transport.sent[0].html, "<p>Hello</p>")

    def test_not_yet_due_email_is_skipped_without_mutation(self):
        store = FakeStore(
            [make_email("kiri", date_to_send=TODAY, time_to_send=time(23, 59, 59), timezone="Pacific/Kiritimati")]
        )
        transport = FakeTransport()
        midnight = datetime.combine(TODAY, time(0, 0), tzinfo=timezone.utc)
        result = run(self.make_dispatcher(store, transport), now=midnight)

        self.assertEqual((result.processed, result.sent, result.skipped, result.failed), (1, 0, 1, 0))
        self.assertEqual(result.details[0].status, "pending")
        self.assertEqual(store.mutations(), [])
        self.assertEqual(transport.sent, [])
        self.assertEqual(store.rows["kiri"].status, "pending")

    def test_invalid_timezone_fails_immediately(self):
        store = FakeStore([make_email("bad-tz", timezone="Not/AZone")])
        transport = FakeTransport()
        result = run(self.make_dispatcher(store, transport))

        self.assertEqual(result.failed, 1)
        self.assertEqual(result.details[0].error, INVALID_TIMEZONE)
        self.assertEqual(store.rows["bad-tz"].retry_count, 1)
        self.assertEqual(store.rows["bad-tz"].status, "failed")
        self.assertEqual(transport.sent, [])

    def test_last_retry_failure_parks_the_email(self):
        store = FakeStore([make_email("last", retry_count=2, subject="doomed")])
        dispatcher = self.make_dispatcher(store, FakeTransport(fail_subjects={"doomed"}))
        result = run(dispatcher)

        self.assertEqual(result.failed, 1)
        row = store.rows["last"]
        self.assertEqual(row.retry_count, 3)
        self.assertEqual(row.status, "failed")
        self.assertFalse(row.sent)

        second = run(dispatcher)
        self.assertEqual(second.processed, 0)

    def test_one_failure_does_not_affect_the_rest_of_the_batch(self):
        store = FakeStore(
            [
                make_email("one", subject="first"),
                make_email("two", subject="second"),
                make_email("three", subject="third"),
            ]
        )
        result = run(self.make_dispatcher(store, FakeTransport(fail_subjects={"second"})))

        self.assertEqual((result.processed, result.sent, result.skipped, result.failed), (3, 2, 0, 1))
        self.assertEqual(store.rows["one"].status, "sent")
        self.assertEqual(store.rows["three"].status, "sent")
        self.assertEqual(store.rows["two"].status, "failed")
        self.assertEqual([d.email_id for d in result.details], ["one", "two", "three"])

    def test_transport_exception_is_recorded_as_failure(self):
        store = FakeStore([make_email("boom", subject="explodes"), make_email("fine")])
        result = run(self.make_dispatcher(store, FakeTransport(raise_subjects={"explodes"})))

        self.assertEqual((result.sent, result.failed), (1, 1))
        self.assertIn("connection dropped", store.rows["boom"].last_error)

    def test_counts_always_add_up(self):
        store = FakeStore(
            [
                make_email("ok"),
                make_email("later", date_to_send=TODAY + timedelta(days=3)),
                make_email("bad-tz", timezone="Mars/Olympus"),
                make_email("bad-to", to_email="not-an-address"),
            ]
        )
        result = run(self.make_dispatcher(store))
        self.assertEqual(result.processed, result.sent + result.skipped + result.failed)
        self.assertEqual(result.processed, len(result.details))
        self.assertEqual((result.sent, result.skipped, result.failed), (1, 1, 2))

    def test_invalid_recipient_is_marked_failed(self):
        store = FakeStore([make_email("cc-bad", cc_email="ok@example.com, broken@")])
        result = run(self.make_dispatcher(store))
        self.assertEqual(result.details[0].error, INVALID_EMAIL)
        self.assertEqual(store.rows["cc-bad"].retry_count, 1)

    def test_disallowed_attachment_type_is_marked_failed(self):
        store = FakeStore([make_email("exe", attachment_url="https://files.example.com/setup.exe")])
        transport = FakeTransport()
        result = run(self.make_dispatcher(store, transport))
        self.assertEqual(result.details[0].error, INVALID_ATTACHMENT_TYPE)
        self.assertEqual(transport.sent, [])

    def test_attachment_url_becomes_message_attachment(self):
        store = FakeStore([make_email("pdf", attachment_url="https://files.example.com/docs/report.pdf?sig=1")])
        transport = FakeTransport()
        run(self.make_dispatcher(store, transport))
        attachment = transport.sent[0].attachments[0]
        self.assertEqual(attachment.filename, "report.pdf")
        self.assertEqual(attachment.content, "https://files.example.com/docs/report.pdf?sig=1")

    def test_dst_gap_schedule_stays_pending(self):
        store = FakeStore(
            [make_email("gap", date_to_send=date(2024, 3, 10), time_to_send=time(2, 30), timezone="America/New_York")]
        )
        transport = FakeTransport()
        result = run(self.make_dispatcher(store, transport))

        self.assertEqual((result.processed, result.skipped, result.failed), (1, 1, 0))
        self.assertEqual(result.details[0].status, "pending")
        self.assertIsNone(result.details[0].error)
        self.assertEqual(store.mutations(), [])
        self.assertEqual(store.rows["gap"].retry_count, 0)
        self.assertEqual(transport.sent, [])

    def test_malformed_attachment_url_fails_only_its_own_row(self):
        store = FakeStore(
            [
                make_email("poison", attachment_url="https://[::1/report.pdf"),
                make_email("good", subject="fine"),
            ]
        )
        transport = FakeTransport()
        result = run(self.make_dispatcher(store, transport))

        self.assertEqual((result.processed, result.sent, result.failed), (2, 1, 1))
        self.assertEqual(store.rows["good"].status, "sent")
        self.assertEqual(store.rows["poison"].status, "failed")
        self.assertEqual(store.rows["poison"].retry_count, 1)
        self.assertTrue(store.rows["poison"].last_error)
        self.assertEqual([m.subject for m in transport.sent], ["fine"])

    def test_message_build_error_is_recorded_as_failure(self):
        class BrokenBuild(ScheduledDispatcher):
            def _build_message(self, email):
                raise KeyError(email.email_id)

        store = FakeStore([make_email("odd")])
        dispatcher = BrokenBuild(store, FakeTransport(), max_retries=3, from_address="sender@example.com")
        result = run(dispatcher)

        self.assertEqual(result.failed, 1)
        self.assertEqual(result.details[0].status, "failed")
        self.assertEqual(store.rows["odd"].retry_count, 1)

    def test_oversized_data_uri_is_rejected_before_sending(self):
        payload = base64.b64encode(b"x" * 2048).decode()
        store = FakeStore([make_email("big", attachment_url=f"data:application/pdf;base64,{payload}")])
        transport = FakeTransport()
        result = run(
            self.make_dispatcher(store, transport, max_attachment_size=1024, allowed_attachment_types=["pdf"])
        )

        self.assertEqual(result.details[0].error, ATTACHMENT_TOO_LARGE)
        self.assertEqual(store.rows["big"].status, "failed")
        self.assertEqual(transport.sent, [])

    def test_small_data_uri_is_sent(self):
        payload = base64.b64encode(b"x" * 100).decode()
        store = FakeStore([make_email("small", attachment_url=f"data:application/pdf;base64,{payload}")])
        transport = FakeTransport()
        run(self.make_dispatcher(store, transport, max_attachment_size=1024, allowed_attachment_types=["pdf"]))

        self.assertEqual(transport.sent[0].attachments[0].filename, "attachment.pdf")

    def test_invalid_timezone_is_not_recorded_without_a_claim(self):
        store = FakeStore([make_email("bad-tz", timezone="Not/AZone")])
        store.claim_refused.add("bad-tz")
        result = run(self.make_dispatcher(store))

        self.assertEqual(result.details[0].status, "pending")
        self.assertEqual(result.details[0].error, ALREADY_IN_PROGRESS)
        self.assertEqual(store.mutations(), [("mark_in_progress", "bad-tz")])
        self.assertEqual(store.rows["bad-tz"].retry_count, 0)

    def test_validation_failure_is_recorded_after_the_claim(self):
        store = FakeStore([make_email("bad-to", to_email="nope")])
        run(self.make_dispatcher(store))

        self.assertEqual(
            store.mutations(),
            [("mark_in_progress", "bad-to"), ("mark_failed", "bad-to", INVALID_EMAIL)],
        )

    def test_lost_claim_is_skipped(self):
        store = FakeStore([make_email("taken")])
        store.claim_refused.add("taken")
        transport = FakeTransport()
        result = run(self.make_dispatcher(store, transport))

        self.assertEqual(result.skipped, 1)
        self.assertEqual(result.details[0].error, ALREADY_IN_PROGRESS)
        self.assertEqual(transport.sent, [])
        self.assertNotIn(("mark_sent", "taken"), store.calls)

    def test_global_bcc_and_sender_are_applied(self):
        store = FakeStore([make_email("bcc", bcc_email="audit@example.com")])
        transport = FakeTransport()
        run(self.make_dispatcher(store, transport, bcc="archive@example.com", reply_to="help@example.com"))
        message = transport.sent[0]
        self.assertEqual(message.bcc, ["audit@example.com", "archive@example.com"])
        self.assertEqual(message.from_address, "sender@example.com")
        self.assertEqual(message.reply_to, "help@example.com")

    def test_batch_size_and_retry_bound_are_passed_to_store(self):
        store = FakeStore([])
        run(self.make_dispatcher(store, batch_size=7, max_retries=5))
        self.assertEqual(store.calls[0], ("fetch_due", 7, 5))

    def test_store_failure_on_fetch_propagates(self):
        class BrokenStore(FakeStore):
            def fetch_due(self, now, limit, max_retries):
                raise QueueStoreError("Error accessing email database: disk I/O error")

        with self.assertRaises(QueueStoreError):
            run(self.make_dispatcher(BrokenStore([])))

    def test_store_failure_while_recording_propagates(self):
        class FlakyStore(FakeStore):
            async def mark_sent(self, email_id):
                raise QueueStoreError("Error accessing email database: locked")

        with self.assertRaises(QueueStoreError):
            run(self.make_dispatcher(FlakyStore([make_email("x")])))


if __name__ == "__main__":
    unittest.main()
