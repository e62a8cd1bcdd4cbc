from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition
from aiokafka.errors import KafkaError

from seclog.core.errors import QueueUnavailable
from seclog.core.time import utc_now_rfc3339

from .results import HandlerResult, Processed, Retryable, Skipped

_LOGGER = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[HandlerResult]]


def encode_message(record: Any) -> bytes:
    if isinstance(record, bytes):
        return record
    if isinstance(record, str):
        return record.encode("utf-8")
    return json.dumps(record, default=str).encode("utf-8")


def decode_message(value: bytes | str | None) -> Any:
    """
    Message value -> RawRecord.

    A JSON object comes back as a dict. A JSON string (a record encoded
    twice) is unwrapped one level and returned as a str. Anything that is
    not JSON is returned as the raw text.
    """
    if value is None:
        return None
    text = value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value
    try:
        decoded = json.loads(text)
    except ValueError:
        return text
    if isinstance(decoded, (dict, str)):
        return decoded
    return text


class QueueProducer:
    """Lazily started producer shared by the poller and the dead-letter path."""

    def __init__(
        self,
        bootstrap_servers: list[str],
        *,
        client_id: str = "seclog-ingest",
        producer: Any | None = None,
    ) -> None:
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self._producer = producer
        self._started = producer is not None
        self._lock = asyncio.Lock()

    async def _ensure_started(self) -> Any:
        if self._started:
            return self._producer
        async with self._lock:
            if not self._started:
                self._producer = AIOKafkaProducer(
                    bootstrap_servers=self.bootstrap_servers,
                    client_id=self.client_id,
                    acks="all",
                    enable_idempotence=True,
                )
                try:
                    await self._producer.start()
                except KafkaError as exc:
                    self._producer = None
                    raise QueueUnavailable(f"kafka producer start failed: {exc}") from exc
                self._started = True
                _LOGGER.info("kafka producer connected to %s", ",".join(self.bootstrap_servers))
        return self._producer

    async def send(self, topic: str, record: Any) -> None:
        producer = await self._ensure_started()
        try:
            await producer.send_and_wait(topic, encode_message(record))
        except KafkaError as exc:
            raise QueueUnavailable(f"send to {topic} failed: {exc}") from exc

    async def stop(self) -> None:
        if self._producer is not None and self._started:
            await self._producer.stop()
        self._producer = None
        self._started = False


class QueueConsumer:
    """
    Consumer-group reader with commits driven by the handler's result.

    Auto-commit is off. ``Processed`` and ``Skipped`` commit the message.
    ``Retryable`` seeks back to the same offset and redelivers after
    ``retry_delay`` seconds. Once ``max_retries`` redeliveries are used up
    the message is published to the dead-letter topic and committed. Within
    a partition messages are handled strictly in order.
    """

    def __init__(
        self,
        topic: str,
        *,
        bootstrap_servers: list[str],
        group_id: str,
        client_id: str = "seclog-ingest",
        dead_letter: QueueProducer | None = None,
        dead_letter_topic: str | None = None,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        consumer: Any | None = None,
        batch_size: int = 100,
    ) -> None:
        self.topic = topic
        self.bootstrap_servers = bootstrap_servers
        self.group_id = group_id
        self.client_id = client_id
        self.dead_letter = dead_letter
        self.dead_letter_topic = dead_letter_topic or f"{topic}.dlq"
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.batch_size = batch_size
        self._consumer = consumer
        self._started = False
        self._attempts: dict[tuple[TopicPartition, int], int] = {}
        self.dead_lettered = 0

    async def _ensure_started(self) -> Any:
        if self._started:
            return self._consumer
        if self._consumer is None:
            self._consumer = AIOKafkaConsumer(
                self.topic,
                bootstrap_servers=self.bootstrap_servers,
                group_id=self.group_id,
                client_id=self.client_id,
                enable_auto_commit=False,
                auto_offset_reset="latest",
            )
        try:
            await self._consumer.start()
        except KafkaError as exc:
            raise QueueUnavailable(f"kafka consumer start failed: {exc}") from exc
        self._started = True
        _LOGGER.info("kafka consumer subscribed to %s (group=%s)", self.topic, self.group_id)
        return self._consumer

    async def run(self, handler: Handler, stop_event: asyncio.Event) -> None:
        """Consume until ``stop_event`` is set. Kafka errors propagate to the caller."""
        consumer = await self._ensure_started()
        while not stop_event.is_set():
            try:
                batches = await consumer.getmany(timeout_ms=1000, max_records=self.batch_size)
            except KafkaError as exc:
                raise QueueUnavailable(f"kafka fetch failed: {exc}") from exc

            for tp, messages in batches.items():
                for message in messages:
                    if stop_event.is_set():
                        # Uncommitted messages are redelivered on restart.
                        return
                    committed = await self._dispatch(consumer, tp, message, handler)
                    if not committed:
                        # Rewound to this offset; later messages of the
                        # partition come again after it.
                        await self._wait_retry(stop_event)
                        break

    async def _wait_retry(self, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.retry_delay)
        except asyncio.TimeoutError:
            pass

    async def _dispatch(self, consumer: Any, tp: TopicPartition, message: Any, handler: Handler) -> bool:
        key = (tp, message.offset)
        payload = decode_message(message.value)
        try:
            result = await handler(payload)
        except Exception as exc:
            _LOGGER.exception("handler raised on %s@%s", tp, message.offset)
            result = Retryable(error=f"{type(exc).__name__}: {exc}")

        if isinstance(result, Skipped):
            _LOGGER.warning("skipped %s@%s: %s", tp, message.offset, result.reason)
        elif isinstance(result, Retryable):
            attempts = self._attempts.get(key, 0) + 1
            if attempts <= self.max_retries:
                self._attempts[key] = attempts
                _LOGGER.warning(
                    "retryable failure on %s@%s (attempt %s/%s): %s",
                    tp,
                    message.offset,
                    attempts,
                    self.max_retries,
                    result.error,
                )
                consumer.seek(tp, message.offset)
                return False
            await self._dead_letter(tp, message, result.error, attempts)

        self._attempts.pop(key, None)
        try:
            await consumer.commit({tp: message.offset + 1})
        except KafkaError as exc:
            raise QueueUnavailable(f"commit {tp}@{message.offset} failed: {exc}") from exc
        return True

    async def _dead_letter(self, tp: TopicPartition, message: Any, error: str, attempts: int) -> None:
        envelope = {
            "topic": tp.topic,
            "partition": tp.partition,
            "offset": message.offset,
            "attempts": attempts,
            "error": error,
            "failed_at": utc_now_rfc3339(),
            "value": decode_message(message.value),
        }
        if self.dead_letter is None:
            _LOGGER.error("no dead-letter producer; dropping %s@%s: %s", tp, message.offset, error)
            return
        await self.dead_letter.send(self.dead_letter_topic, envelope)
        self.dead_lettered += 1
        _LOGGER.error("dead-lettered %s@%s to %s: %s", tp, message.offset, self.dead_letter_topic, error)

    async def stop(self) -> None:
        if self._consumer is not None and self._started:
            await self._consumer.stop()
        self._started = False


__all__ = [
    "Handler",
    "QueueProducer",
    "QueueConsumer",
    "decode_message",
    "encode_message",
    "Processed",
    "Skipped",
    "Retryable",
]
