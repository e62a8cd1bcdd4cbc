"""
Shared unit-test fixtures. Everything is mocked; nothing connects out.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from unittest.mock import MagicMock

import pytest

from seclog.core.config import Settings
from seclog.core.errors import QueueUnavailable, UpstreamFetchError
from seclog.core.time import parse_datetime
from seclog.services.state import PipelineState


@pytest.fixture
def mock_opensearch_client():
    client = MagicMock()
    client.indices = MagicMock()
    client.indices.exists = MagicMock(return_value=False)
    client.indices.create = MagicMock(return_value={"acknowledged": True})
    client.indices.exists_index_template = MagicMock(return_value=True)
    client.cat = MagicMock()
    client.cat.indices = MagicMock(return_value=[])
    client.index = MagicMock(return_value={"result": "created"})
    client.get = MagicMock(return_value={"_source": {}})
    return client


@pytest.fixture
def settings():
    return Settings(
        kafka_log_topic="security-logs",
        kafka_bootstrap_servers="localhost:9092",
        partition_timezone="UTC",
        watermark_checkpoint_file="",
        vault_addr="",
        vault_token="",
    )


@pytest.fixture
def pipeline_state(settings):
    return PipelineState.create(settings, since=parse_datetime("2025-01-01T00:00:00Z"))


class FakeSource:
    """In-memory upstream. Serves records newer than ``since`` in timestamp order."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self.records = list(records or [])
        self.calls: list[datetime] = []
        self.fail_next = False

    async def fetch_since(self, since: datetime, limit: int) -> list[dict[str, Any]]:
        self.calls.append(since)
        if self.fail_next:
            self.fail_next = False
            raise UpstreamFetchError("upstream down")
        newer = [r for r in self.records if parse_datetime(r["timestamp"]) > since]
        newer.sort(key=lambda r: parse_datetime(r["timestamp"]))
        return newer[:limit]


class FakeSink:
    """Records sends. ``fail_after`` makes the n-th and later sends fail."""

    def __init__(self, fail_after: int | None = None) -> None:
        self.sent: list[tuple[str, Any]] = []
        self.fail_after = fail_after

    async def send(self, topic: str, record: Any) -> None:
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise QueueUnavailable("broker unavailable")
        self.sent.append((topic, record))


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_sink():
    return FakeSink()


@dataclass
class FakeMessage:
    offset: int
    value: bytes


class FakeKafkaConsumer:
    """
    Minimal stand-in for AIOKafkaConsumer.

    Serves one partition from ``messages`` starting at the committed/seeked
    position and sets ``stop_event`` once every message has been committed.
    """

    def __init__(self, tp, messages: list[bytes], stop_event: asyncio.Event) -> None:
        self.tp = tp
        self.messages = [FakeMessage(i, v) for i, v in enumerate(messages)]
        self.stop_event = stop_event
        self.position = 0
        self.committed: list[int] = []
        self.seeks: list[int] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def getmany(self, timeout_ms: int = 0, max_records: int | None = None):
        if self.position >= len(self.messages):
            self.stop_event.set()
            return {}
        batch = self.messages[self.position:]
        if max_records:
            batch = batch[:max_records]
        self.position += len(batch)
        return {self.tp: batch}

    def seek(self, tp, offset: int) -> None:
        self.seeks.append(offset)
        self.position = offset

    async def commit(self, offsets) -> None:
        self.committed.append(offsets[self.tp])


class FakeProducer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, bytes]] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def send_and_wait(self, topic: str, value: bytes) -> None:
        self.sent.append((topic, value))


@pytest.fixture
def make_kafka_consumer():
    return FakeKafkaConsumer


@pytest.fixture
def fake_producer():
    return FakeProducer()


@pytest.fixture
def make_sink():
    return FakeSink
