from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from opensearchpy import OpenSearch

from seclog.core.config import Settings
from seclog.core.secrets import resolve_graylog_config, resolve_kafka_config, resolve_opensearch_config
from seclog.core.time import format_rfc3339, utc_now
from seclog.services.checkpoint import WatermarkCheckpoint
from seclog.services.graylog.client import GraylogClient
from seclog.services.kafka import QueueConsumer, QueueProducer
from seclog.services.opensearch import IndexRouter, StorageWriter, close_client, create_client

_LOGGER = logging.getLogger(__name__)

# Fresh starts replay at most this much upstream history.
DEFAULT_REPLAY_WINDOW = timedelta(hours=1)

_RESOLVERS = {
    "opensearch": resolve_opensearch_config,
    "kafka": resolve_kafka_config,
    "graylog": resolve_graylog_config,
}


@dataclass
class PipelineStats:
    polled: int = 0
    enqueued: int = 0
    fetch_errors: int = 0
    enqueue_errors: int = 0
    processed: int = 0
    sanitized: int = 0
    dropped: int = 0
    skipped: int = 0
    retried: int = 0
    placeholders: int = 0
    lifecycle_runs: int = 0
    lifecycle_errors: int = 0
    last_poll_at: str | None = None
    last_lifecycle_at: str | None = None
    last_error: str | None = None

    def snapshot(self) -> dict[str, Any]:
        return asdict(self)


def resolve_timezone(name: str) -> tzinfo | None:
    """Partition timezone from settings. Empty means the host's local zone."""
    if not name.strip():
        return None
    return ZoneInfo(name.strip())


@dataclass
class PipelineState:
    """
    Everything the pipeline loops share, built once at startup.

    Clients are created on first use and cached here, so tests can pass
    fakes in through the constructor instead of patching module globals.
    """

    settings: Settings
    watermark: datetime = field(default_factory=lambda: utc_now() - DEFAULT_REPLAY_WINDOW)
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    stats: PipelineStats = field(default_factory=PipelineStats)
    partition_tz: tzinfo | None = None

    opensearch_client: OpenSearch | None = None
    queue_producer: QueueProducer | None = None
    queue_consumer: QueueConsumer | None = None
    graylog_client: GraylogClient | None = None
    index_router: IndexRouter | None = None
    storage_writer: StorageWriter | None = None

    tasks: list[asyncio.Task[None]] = field(default_factory=list)
    checkpoint: WatermarkCheckpoint | None = None
    _configs: dict[str, dict[str, Any]] = field(default_factory=dict, repr=False)

    @classmethod
    def create(cls, settings: Settings, *, since: datetime | None = None) -> "PipelineState":
        """
        Build the state. The watermark is ``since`` when given, else the saved
        checkpoint, else ``now - DEFAULT_REPLAY_WINDOW``.
        """
        state = cls(settings=settings, partition_tz=resolve_timezone(settings.partition_timezone))
        if settings.watermark_checkpoint_file.strip():
            state.checkpoint = WatermarkCheckpoint(settings.watermark_checkpoint_file.strip())
        if since is not None:
            state.watermark = since
        elif state.checkpoint is not None:
            saved = state.checkpoint.load()
            if saved is not None:
                state.watermark = saved
        return state

    def save_checkpoint(self) -> None:
        if self.checkpoint is not None:
            self.checkpoint.save(self.watermark)

    def _config(self, name: str) -> dict[str, Any]:
        # Each secret path is read from Vault at most once per process.
        if name not in self._configs:
            self._configs[name] = _RESOLVERS[name](self.settings)
        return self._configs[name]

    def preload_configs(self) -> None:
        """Resolve every client config up front. Blocking; run it off the event loop."""
        for name in _RESOLVERS:
            self._config(name)

    @property
    def watermark_rfc3339(self) -> str:
        return format_rfc3339(self.watermark)

    def get_opensearch(self) -> OpenSearch:
        if self.opensearch_client is None:
            cfg = self._config("opensearch")
            self.opensearch_client = create_client(cfg["node"], cfg["username"], cfg["password"])
            _LOGGER.info("opensearch client created for %s", cfg["node"])
        return self.opensearch_client

    def get_router(self) -> IndexRouter:
        if self.index_router is None:
            self.index_router = IndexRouter(self.get_opensearch(), tz=self.partition_tz)
        return self.index_router

    def get_writer(self) -> StorageWriter:
        if self.storage_writer is None:
            self.storage_writer = StorageWriter(self.get_opensearch(), self.get_router())
        return self.storage_writer

    def get_producer(self) -> QueueProducer:
        if self.queue_producer is None:
            cfg = self._config("kafka")
            self.queue_producer = QueueProducer(cfg["bootstrap_servers"], client_id=cfg["client_id"])
        return self.queue_producer

    def get_consumer(self) -> QueueConsumer:
        if self.queue_consumer is None:
            cfg = self._config("kafka")
            self.queue_consumer = QueueConsumer(
                self.settings.kafka_log_topic,
                bootstrap_servers=cfg["bootstrap_servers"],
                group_id=cfg["group_id"],
                client_id=cfg["client_id"],
                dead_letter=self.get_producer(),
                dead_letter_topic=self.settings.dead_letter_topic,
                max_retries=self.settings.kafka_max_retries,
                retry_delay=self.settings.kafka_retry_delay_seconds,
            )
        return self.queue_consumer

    def get_graylog(self) -> GraylogClient:
        if self.graylog_client is None:
            cfg = self._config("graylog")
            self.graylog_client = GraylogClient(
                f"http://{cfg['host']}:{cfg['port']}",
                username=cfg["username"],
                password=cfg["password"],
                stream_id=cfg["stream_id"],
                timeout=self.settings.poll_timeout_seconds,
            )
        return self.graylog_client

    def status(self) -> dict[str, Any]:
        running = [t.get_name() for t in self.tasks if not t.done()]
        return {
            "watermark": self.watermark_rfc3339,
            "running": not self.stop_event.is_set() and bool(running),
            "tasks": running,
            "dead_lettered": self.queue_consumer.dead_lettered if self.queue_consumer else 0,
            **self.stats.snapshot(),
        }

    async def close(self) -> None:
        if self.queue_consumer is not None:
            await self.queue_consumer.stop()
        if self.queue_producer is not None:
            await self.queue_producer.stop()
        if self.graylog_client is not None:
            await self.graylog_client.aclose()
        close_client(self.opensearch_client)
        self.opensearch_client = None
