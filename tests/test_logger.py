"""Tests for logging helpers."""

import os
import sys
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mail_scheduler.utils.logger import _redact_secrets, get_logger


def test_credentials_are_masked():
    event = {"event": "transport.client.create", "password": "hunter2", "api_key": "", "host": "smtp.test"}
    out = _redact_secrets(None, "info", dict(event))
    assert out["password"] == "***"
    assert out["api_key"] == ""
    assert out["host"] == "smtp.test"


def test_get_logger_binds_context():
    log = get_logger("mail_scheduler.test", component="tests")
    assert log is not None
    log.info("logger.test.event", value=1)
