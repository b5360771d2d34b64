"""Recipient and attachment validation run before a message reaches the transport."""

import os
import re
from pathlib import Path
from typing import Iterable, Optional

from mail_scheduler.mail_provider.attachments import AttachmentError, parse_data_uri
from mail_scheduler.scheduler.errors import ATTACHMENT_TOO_LARGE, INVALID_ATTACHMENT_TYPE

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    """Check basic email format (local@domain.tld)."""
    return bool(email and _EMAIL_RE.match(email.strip()))


def split_addresses(value: Optional[str]) -> list[str]:
    """Split a comma/semicolon separated address list; blanks are dropped."""
    if not value:
        return []
    return [part.strip() for part in re.split(r"[,;]", value) if part.strip()]


def validate_addresses(addresses: Iterable[str]) -> bool:
    return all(is_valid_email(a) for a in addresses)


def attachment_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def validate_attachment(
    filename: str,
    size: Optional[int],
    max_size: int,
    allowed_types: Iterable[str],
) -> Optional[str]:
    """Return an error message, or None when the attachment is acceptable.

    ``size`` may be None when it is unknown before download (remote URLs); only
    the extension is checked then.
    """
    if attachment_extension(filename) not in {t.lower() for t in allowed_types}:
        return INVALID_ATTACHMENT_TYPE
    if size is not None and size > max_size:
        return ATTACHMENT_TOO_LARGE
    return None


def local_file_size(reference: str) -> Optional[int]:
    """Size in bytes if ``reference`` names a local file, else None."""
    try:
        path = Path(reference)
        if path.is_file():
            return os.path.getsize(path)
    except (OSError, ValueError):
        return None
    return None


def known_attachment_size(reference: str) -> Optional[int]:
    """Size in bytes when it can be known without a download: local files and data URIs.

    A malformed data URI reports None here and fails later when the transport resolves it.
    """
    if reference.startswith("data:"):
        try:
            _, data = parse_data_uri(reference)
        except AttachmentError:
            return None
        return len(data)
    return local_file_size(reference)
