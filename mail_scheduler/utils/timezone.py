"""Timezone resolution for scheduled sends.

Scheduled emails store a wall-clock ``date_to_send`` / ``time_to_send`` pair in
the sender's own timezone. These helpers turn that triple into an absolute UTC
instant and answer "is it due yet".

Policy for DST transitions:

- spring-forward gap (wall clock that never happens): no instant, ``None``.
- fall-back overlap (wall clock that happens twice): the first occurrence,
  i.e. the offset in effect before the transition (``fold=0``).
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone as dt_timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from mail_scheduler.config import SCHEDULER_TIMEZONE_DEFAULT
from mail_scheduler.utils.logger import get_logger

logger = get_logger("mail_scheduler.utils.timezone")

DateLike = date | str
TimeLike = time | str


def _load_zone(name: str) -> ZoneInfo | None:
    if not isinstance(name, str) or not name.strip():
        return None
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def is_valid_timezone(name: str) -> bool:
    """Return True if the IANA timezone database recognizes ``name``."""
    return _load_zone(name) is not None


def parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def parse_time(value: TimeLike) -> time:
    """Accept ``HH``, ``HH:MM`` or ``HH:MM:SS`` (seconds default to zero)."""
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    raw = str(value).strip()
    parts = raw.split(":")
    if not raw or len(parts) > 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Malformed time: {value!r}")
    while len(parts) < 3:
        parts.append("00")
    hour, minute, second = (int(p) for p in parts)
    return time(hour, minute, second)


def convert_to_utc(
    date_value: DateLike,
    time_value: TimeLike,
    timezone: str = SCHEDULER_TIMEZONE_DEFAULT,
) -> datetime | None:
    """Interpret date + time as wall clock in ``timezone`` and return the UTC instant.

    Returns None instead of raising for an unknown zone, a malformed date/time,
    or a wall-clock time skipped by a DST transition.
    """
    zone = _load_zone(timezone)
    if zone is None:
        logger.debug("timezone.convert.unknown_zone", timezone=timezone)
        return None
    try:
        local = datetime.combine(parse_date(date_value), parse_time(time_value))
    except (TypeError, ValueError) as e:
        logger.debug(
            "timezone.convert.malformed",
            date=str(date_value),
            time=str(time_value),
            error=str(e),
        )
        return None

    aware = local.replace(tzinfo=zone, fold=0)
    utc_value = aware.astimezone(dt_timezone.utc)

    # A wall clock inside a spring-forward gap does not survive the round trip.
    if utc_value.astimezone(zone).replace(tzinfo=None) != local:
        logger.debug(
            "timezone.convert.nonexistent_local_time",
            date=str(date_value),
            time=str(time_value),
            timezone=timezone,
        )
        return None
    return utc_value


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=dt_timezone.utc)
    return now.astimezone(dt_timezone.utc)


def is_due(
    date_value: DateLike,
    time_value: TimeLike,
    timezone: str,
    now: datetime,
) -> bool:
    """True iff the scheduled instant is at or before ``now``. Unresolvable schedules are not due."""
    scheduled = convert_to_utc(date_value, time_value, timezone)
    if scheduled is None:
        return False
    return scheduled <= _as_utc(now)


def format_in_timezone(instant: datetime, timezone: str) -> tuple[str, str]:
    """Format an instant as the (``YYYY-MM-DD``, ``HH:MM:SS``) wall clock of ``timezone``."""
    zone = _load_zone(timezone)
    if zone is None:
        raise ValueError(f"Unknown timezone: {timezone!r}")
    local = _as_utc(instant).astimezone(zone)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M:%S")
