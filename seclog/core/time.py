from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Any

# Numeric timestamps below this are Unix seconds, otherwise milliseconds.
EPOCH_SECONDS_LIMIT = 1e11

_EXTRA_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%d/%b/%Y:%H:%M:%S %z",
    "%b %d %Y %H:%M:%S",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime, *, timespec: str = "milliseconds") -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec=timespec).replace("+00:00", "Z")


def _from_epoch(value: float) -> datetime | None:
    seconds = value if value < EPOCH_SECONDS_LIMIT else value / 1000.0
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_string(s: str) -> datetime | None:
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass

    for fmt in _EXTRA_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue

    try:
        return parsedate_to_datetime(s)
    except (TypeError, ValueError, IndexError):
        return None


def _as_utc(dt: datetime) -> datetime | None:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # The UTC shift leaves the representable range (years 1 and 9999).
        return None


def parse_datetime(value: Any) -> datetime | None:
    """Parse a loosely typed timestamp into an aware UTC datetime.

    Accepts datetimes, epoch seconds or milliseconds (as numbers or numeric
    strings), ISO-8601 strings, Graylog's ``YYYY-MM-DD HH:MM:SS.fff`` form and
    RFC 2822 dates. Naive values are taken as UTC. Returns ``None`` when
    nothing matches or the value cannot be expressed in UTC.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _as_utc(value)

    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None

        try:
            raw_num = float(s)
        except ValueError:
            raw_num = None

        if raw_num is not None:
            return _from_epoch(raw_num)

        dt = _parse_string(s)
        if dt is None:
            return None
        return _as_utc(dt)

    return None


def to_rfc3339(value: Any) -> str | None:
    dt = parse_datetime(value)
    if dt is None:
        return None
    return format_rfc3339(dt)


def utc_now_rfc3339() -> str:
    return format_rfc3339(utc_now())


def local_date(dt: datetime, tz: tzinfo | None = None) -> date:
    # tz=None converts to the host's local timezone.
    try:
        return dt.astimezone(tz).date()
    except (OverflowError, ValueError):
        # The shift would leave the representable range (years 1 and 9999).
        return dt.astimezone(timezone.utc).date()


def next_local_midnight(now: datetime, tz: tzinfo | None = None) -> datetime:
    local = now.astimezone(tz)
    tomorrow = local.date() + timedelta(days=1)
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=local.tzinfo)
