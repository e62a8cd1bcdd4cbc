from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from seclog.core.errors import PipelineError, UpstreamFetchError
from seclog.core.ticker import Ticker
from seclog.core.time import format_rfc3339, utc_now_rfc3339

from .client import DEFAULT_BATCH_SIZE, record_timestamp

_LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10


class RecordSource(Protocol):
    async def fetch_since(self, since: datetime, limit: int) -> list[dict[str, Any]]: ...


class RecordSink(Protocol):
    async def send(self, topic: str, record: Any) -> None: ...


@dataclass(frozen=True)
class PollResult:
    fetched: int
    enqueued: int
    watermark: datetime
    error: str | None = None


class WatermarkPoller:
    """
    Incremental upstream -> queue hand-off.

    The watermark lives on the shared pipeline state. It only moves past
    records that were sent to the queue, so a failed fetch or a failed send
    never skips data. A restart may re-send the last batch, which the
    storage layer absorbs by writing by id.
    """

    def __init__(
        self,
        state: Any,
        source: RecordSource,
        sink: RecordSink,
        topic: str,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.state = state
        self.source = source
        self.sink = sink
        self.topic = topic
        self.batch_size = batch_size
        self.interval = interval

    @property
    def watermark(self) -> datetime:
        return self.state.watermark

    async def poll_once(self) -> PollResult:
        since = self.state.watermark
        stats = self.state.stats
        stats.last_poll_at = utc_now_rfc3339()

        try:
            records = await self.source.fetch_since(since, self.batch_size)
        except UpstreamFetchError as exc:
            stats.fetch_errors += 1
            stats.last_error = str(exc)
            _LOGGER.error("poll failed, watermark stays at %s: %s", format_rfc3339(since), exc)
            return PollResult(fetched=0, enqueued=0, watermark=since, error=str(exc))

        if not records:
            _LOGGER.debug("no new records since %s", format_rfc3339(since))
            return PollResult(fetched=0, enqueued=0, watermark=since)

        stats.polled += len(records)
        watermark = since
        enqueued = 0
        error: str | None = None
        for record in records:
            try:
                await self.sink.send(self.topic, record)
            except PipelineError as exc:
                stats.enqueue_errors += 1
                stats.last_error = str(exc)
                error = str(exc)
                _LOGGER.error("enqueue failed after %s/%s records: %s", enqueued, len(records), exc)
                break
            enqueued += 1
            ts = record_timestamp(record)
            if ts is not None and ts > watermark:
                watermark = ts

        self.state.watermark = watermark
        if watermark != since:
            self.state.save_checkpoint()
        stats.enqueued += enqueued
        _LOGGER.info(
            "fetched %s records, enqueued %s, watermark %s",
            len(records),
            enqueued,
            format_rfc3339(watermark),
        )
        return PollResult(fetched=len(records), enqueued=enqueued, watermark=watermark, error=error)

    async def run(self) -> None:
        """Poll every ``interval`` seconds until the state's stop event is set."""
        _LOGGER.info("poller started (since %s, every %ss)", format_rfc3339(self.state.watermark), self.interval)
        async for _ in Ticker.every(self.interval, self.state.stop_event):
            await self.poll_once()
        _LOGGER.info("poller stopped at watermark %s", format_rfc3339(self.state.watermark))
