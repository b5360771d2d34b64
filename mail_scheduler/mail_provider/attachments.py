"""Resolve attachment content (bytes, path, URL, data URI, text) into raw bytes.

Byte content is passed through untouched; only the source changes.
"""

from __future__ import annotations

import base64
import binascii
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote_to_bytes, unquote, urlparse

import httpx

from mail_scheduler.models.email import EmailAttachment
from mail_scheduler.utils.logger import get_logger

logger = get_logger("mail_scheduler.mail_provider.attachments")

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class AttachmentError(ValueError):
    """Attachment content could not be resolved."""


@dataclass(frozen=True)
class ResolvedAttachment:
    """Attachment ready to be added to a MIME message."""

    filename: str
    content_type: str
    data: bytes


def _guess_type(filename: str) -> str | None:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed


def filename_from_url(url: str, default: str = "attachment") -> str:
    """Last path segment of a URL (query and fragment ignored)."""
    path = urlparse(url).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return name or default


def parse_data_uri(uri: str) -> tuple[str | None, bytes]:
    """Decode ``data:[<mediatype>][;base64],<data>`` into (media type, bytes)."""
    if not uri.startswith("data:") or "," not in uri:
        raise AttachmentError("Malformed data URI")
    header, payload = uri[5:].split(",", 1)
    params = header.split(";")
    is_base64 = params[-1].strip().lower() == "base64"
    if is_base64:
        params = params[:-1]
    media_type = params[0].strip() if params and params[0].strip() else None
    if is_base64:
        try:
            return media_type, base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise AttachmentError(f"Invalid base64 in data URI: {e}") from e
    return media_type, unquote_to_bytes(payload)


def _is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def _is_local_path(value: str) -> bool:
    # Long strings and text with newlines are content, not paths.
    if len(value) > 4096 or "\n" in value:
        return False
    try:
        return Path(value).is_file()
    except (OSError, ValueError):
        return False


def _too_large(size: int, max_size: int | None) -> bool:
    return max_size is not None and size > max_size


async def _read_capped(response: httpx.Response, max_size: int | None) -> bytes:
    declared = response.headers.get("content-length", "")
    if declared.isdigit() and _too_large(int(declared), max_size):
        raise AttachmentError(f"Attachment size exceeds limit ({declared} > {max_size} bytes)")
    chunks: list[bytes] = []
    received = 0
    async for chunk in response.aiter_bytes():
        received += len(chunk)
        if _too_large(received, max_size):
            raise AttachmentError(f"Attachment size exceeds limit (> {max_size} bytes)")
        chunks.append(chunk)
    return b"".join(chunks)


async def _stream_url(
    client: httpx.AsyncClient, url: str, max_size: int | None
) -> tuple[bytes, str | None]:
    async with client.stream("GET", url, follow_redirects=True) as response:
        response.raise_for_status()
        data = await _read_capped(response, max_size)
        content_type = response.headers.get("content-type")
    if content_type:
        content_type = content_type.split(";", 1)[0].strip() or None
    return data, content_type


async def _fetch_url(
    url: str,
    http_client: httpx.AsyncClient | None,
    timeout: float,
    max_size: int | None = None,
) -> tuple[bytes, str | None]:
    """Download ``url``, aborting as soon as more than ``max_size`` bytes arrive."""
    if http_client is not None:
        return await _stream_url(http_client, url, max_size)
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout)) as client:
        return await _stream_url(client, url, max_size)


async def resolve_attachment(
    attachment: EmailAttachment,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 30.0,
    max_size: int | None = None,
) -> ResolvedAttachment:
    """Turn an attachment of any supported source into bytes plus a content type.

    Raises AttachmentError (or httpx.HTTPError for URL fetches) on failure, including
    content larger than ``max_size`` bytes. URL downloads stop at the limit.
    """
    content = attachment.content
    filename = attachment.filename
    source_type: str | None = None

    if isinstance(content, bytes):
        data = content
        source = "bytes"
    elif _is_local_path(content):
        path = Path(content)
        if _too_large(path.stat().st_size, max_size):
            raise AttachmentError(f"Attachment size exceeds limit (> {max_size} bytes)")
        data = path.read_bytes()
        filename = filename or path.name
        source = "path"
    elif _is_url(content):
        data, source_type = await _fetch_url(content, http_client, timeout, max_size)
        filename = filename or filename_from_url(content)
        source = "url"
    elif content.startswith("data:"):
        source_type, data = parse_data_uri(content)
        source = "data_uri"
    else:
        data = content.encode("utf-8")
        source_type = "text/plain"
        source = "text"

    if _too_large(len(data), max_size):
        raise AttachmentError(f"Attachment size exceeds limit ({len(data)} > {max_size} bytes)")

    filename = filename or "attachment"
    content_type = attachment.content_type or source_type or _guess_type(filename) or DEFAULT_CONTENT_TYPE
    if "/" not in content_type:
        content_type = DEFAULT_CONTENT_TYPE
    logger.debug(
        "attachments.resolved",
        filename=filename,
        source=source,
        content_type=content_type,
        size=len(data),
    )
    return ResolvedAttachment(filename=filename, content_type=content_type, data=data)
