"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _to_bool(value: str, default: bool = False) -> bool:
    lowered = (value or "").strip().lower()
    if not lowered:
        return default
    return lowered in {"true", "1", "yes", "y", "on"}


# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"
OUTBOX_PATH = OUTPUT_DIR / "outbox.json"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# Database (queue table lives here)
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'scheduler.db'}")

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "scheduler.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = _to_bool(os.getenv("VERBOSE_LOGGING", "false"))

LOG_DIR.mkdir(parents=True, exist_ok=True)

# SMTP
SMTP_HOST = os.getenv("SMTP_SERVER_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_SERVER_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_SERVER_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_SERVER_PASSWORD", "")
# True = implicit TLS (port 465); False = STARTTLS, which is still mandatory.
SMTP_SECURE = _to_bool(os.getenv("SMTP_SECURE", "false"))
SMTP_TIMEOUT = float(os.getenv("SMTP_TIMEOUT", "30"))

# Addresses
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@example.com")
EMAIL_REPLY_TO = os.getenv("EMAIL_REPLY_TO", "")
EMAIL_BCC = os.getenv("EMAIL_BCC", "")

# Sends per second through a single transport instance
EMAIL_RATE_LIMIT = int(os.getenv("EMAIL_RATE_LIMIT", "100"))

# Scheduler
SCHEDULER_BATCH_SIZE = int(os.getenv("EMAIL_SCHEDULER_BATCH_SIZE", "50"))
SCHEDULER_MAX_RETRIES = int(os.getenv("EMAIL_SCHEDULER_MAX_RETRIES", "3"))
SCHEDULER_RETRY_DELAY_SECONDS = int(os.getenv("EMAIL_SCHEDULER_RETRY_DELAY", "0"))
SCHEDULER_CLAIM_TIMEOUT_SECONDS = int(os.getenv("EMAIL_SCHEDULER_CLAIM_TIMEOUT", "300"))
SCHEDULER_TIMEZONE_DEFAULT = os.getenv("EMAIL_SCHEDULER_TIMEZONE_DEFAULT", "UTC")
SCHEDULER_API_KEY = os.getenv("EMAIL_SCHEDULER_API_KEY", "")

# Attachments
MAX_ATTACHMENT_SIZE = int(os.getenv("MAX_ATTACHMENT_SIZE", "10485760"))  # 10MB
ALLOWED_ATTACHMENT_TYPES = [
    ext.strip().lower().lstrip(".")
    for ext in os.getenv("ALLOWED_ATTACHMENT_TYPES", "pdf,doc,docx,txt,jpg,jpeg,png").split(",")
    if ext.strip()
]

# HTTP trigger
SCHEDULER_PORT = int(os.getenv("SCHEDULER_PORT", "8000"))
