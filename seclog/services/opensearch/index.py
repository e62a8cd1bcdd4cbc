# Daily partition naming, creation and retention

import logging
import re
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Optional

from opensearchpy import OpenSearch

from seclog.core.time import local_date, parse_datetime, utc_now

from .client import create_index, delete_index, index_exists, list_indices
from .mappings import TEMPLATE_NAME, logs_template_body

_LOGGER = logging.getLogger(__name__)

PARTITION_PREFIX = "logs"
PARTITION_PATTERN = f"{PARTITION_PREFIX}-*"
RETENTION_DAYS = 90

_PARTITION_RE = re.compile(rf"^{PARTITION_PREFIX}-(\d{{4}})-(\d{{2}})-(\d{{2}})$")


def partition_name(day: date) -> str:
    return f"{PARTITION_PREFIX}-{day.year:04d}-{day.month:02d}-{day.day:02d}"


def partition_for(timestamp: Any, tz: Optional[tzinfo] = None) -> str:
    """
    Partition for a document timestamp: ``logs-YYYY-MM-DD``.

    The day is the timestamp's calendar date in ``tz`` (the host's local
    timezone when None). Only the timestamp matters, not arrival time.
    Unparseable timestamps raise ValueError; normalized documents always
    carry a valid one.
    """
    dt = parse_datetime(timestamp)
    if dt is None:
        raise ValueError(f"unparseable timestamp: {timestamp!r}")
    return partition_name(local_date(dt, tz))


def partition_date(name: str) -> Optional[date]:
    """Date embedded in a partition name, or None if the name is malformed."""
    match = _PARTITION_RE.match(name)
    if match is None:
        return None
    year, month, day = (int(part, 10) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def partitions_between(start: date, end: date) -> list[str]:
    """One partition name per day from ``start`` to ``end`` inclusive."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    names: list[str] = []
    day = start
    while day <= end:
        names.append(partition_name(day))
        day += timedelta(days=1)
    return names


def today_local(tz: Optional[tzinfo] = None) -> date:
    return local_date(utc_now(), tz)


class IndexRouter:
    """
    Partition side effects against the storage engine.

    Partition state: absent -> created -> (write-active) -> expired -> deleted.
    ``ensure_partition`` only creates, and ``prune_expired`` only deletes.
    """

    def __init__(self, client: OpenSearch, tz: Optional[tzinfo] = None) -> None:
        self.client = client
        self.tz = tz
        self._known: set[str] = set()
        self._template_ready = False

    def partition_for(self, timestamp: Any) -> str:
        return partition_for(timestamp, self.tz)

    def ensure_template(self) -> None:
        """Put the shared logs-* template. Safe to repeat."""
        if self._template_ready:
            return
        self.client.indices.put_index_template(
            name=TEMPLATE_NAME,
            body=logs_template_body(PARTITION_PATTERN),
        )
        if self.client.indices.exists_index_template(name=TEMPLATE_NAME):
            _LOGGER.info("index template %s ready", TEMPLATE_NAME)
        else:
            _LOGGER.warning("index template %s not visible after put", TEMPLATE_NAME)
        self._template_ready = True

    def ensure_partition(self, name: str) -> bool:
        """
        Create ``name`` if it does not exist. Returns True if this call created it.

        Check-then-create is not atomic. A concurrent creator winning the race
        is reported by the engine as already-existing and treated as success.
        """
        if name in self._known:
            return False
        if index_exists(self.client, name):
            self._known.add(name)
            return False
        created = create_index(self.client, name)
        self._known.add(name)
        if created:
            _LOGGER.info("created partition %s", name)
        return created

    def list_partitions(self) -> list[str]:
        return list_indices(self.client, PARTITION_PATTERN)

    def prune_expired(self, retention_days: int = RETENTION_DAYS, today: Optional[date] = None) -> list[str]:
        """
        Delete partitions dated strictly before ``today - retention_days``.

        Names that do not parse as ``logs-YYYY-MM-DD`` are left alone. A
        failure on one partition is logged and the rest are still processed.
        """
        if today is None:
            today = today_local(self.tz)
        cutoff = today - timedelta(days=retention_days)

        deleted: list[str] = []
        for name in self.list_partitions():
            day = partition_date(name)
            if day is None:
                _LOGGER.debug("skip malformed partition name %s", name)
                continue
            if day >= cutoff:
                continue
            try:
                delete_index(self.client, name)
            except Exception as exc:
                _LOGGER.error("delete expired partition %s failed: %s", name, exc)
                continue
            self._known.discard(name)
            deleted.append(name)
            _LOGGER.info("deleted expired partition %s (cutoff %s)", name, cutoff.isoformat())
        return deleted
