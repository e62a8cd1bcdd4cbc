from __future__ import annotations

import asyncio
import json

import pytest
from aiokafka import TopicPartition
from aiokafka.errors import KafkaConnectionError

from seclog.core.errors import QueueUnavailable
from seclog.services.kafka import (
    Processed,
    QueueConsumer,
    QueueProducer,
    Retryable,
    Skipped,
    decode_message,
    encode_message,
)

pytestmark = [pytest.mark.unit]

TP = TopicPartition("security-logs", 0)


def _consumer(fake, producer=None, **kwargs):
    return QueueConsumer(
        "security-logs",
        bootstrap_servers=["localhost:9092"],
        group_id="test",
        dead_letter=producer,
        retry_delay=0,
        consumer=fake,
        **kwargs,
    )


def test_decode_message_shapes():
    assert decode_message(b'{"a": 1}') == {"a": 1}
    assert decode_message(b'"{\\"a\\": 1}"') == '{"a": 1}'
    assert decode_message(b"plain text") == "plain text"
    assert decode_message(b"[1, 2]") == "[1, 2]"
    assert decode_message(None) is None


def test_encode_message_passthrough_and_json():
    assert encode_message(b"raw") == b"raw"
    assert encode_message("text") == b"text"
    assert json.loads(encode_message({"id": "x"})) == {"id": "x"}


async def test_processed_and_skipped_commit_in_order(make_kafka_consumer):
    stop = asyncio.Event()
    fake = make_kafka_consumer(TP, [b'{"id": "a"}', b"", b'{"id": "c"}'], stop)
    seen = []

    async def handler(payload):
        seen.append(payload)
        return Skipped(reason="empty") if payload == "" else Processed()

    await _consumer(fake).run(handler, stop)

    assert seen == [{"id": "a"}, "", {"id": "c"}]
    assert fake.committed == [1, 2, 3]
    assert fake.seeks == []


async def test_retryable_is_redelivered_then_committed(make_kafka_consumer):
    stop = asyncio.Event()
    fake = make_kafka_consumer(TP, [b'{"id": "a"}', b'{"id": "b"}'], stop)
    results = iter([Retryable(error="opensearch down"), Processed(), Processed()])
    seen = []

    async def handler(payload):
        seen.append(payload["id"])
        return next(results)

    await _consumer(fake, max_retries=3).run(handler, stop)

    # Message "b" is not handled before "a" succeeds.
    assert seen == ["a", "a", "b"]
    assert fake.seeks == [0]
    assert fake.committed == [1, 2]


async def test_exhausted_retries_go_to_dead_letter(make_kafka_consumer, fake_producer):
    stop = asyncio.Event()
    fake = make_kafka_consumer(TP, [b'{"id": "poison"}'], stop)
    producer = QueueProducer(["localhost:9092"], producer=fake_producer)
    calls = 0

    async def handler(payload):
        nonlocal calls
        calls += 1
        raise RuntimeError("always fails")

    consumer = _consumer(fake, producer, max_retries=2)
    await consumer.run(handler, stop)

    assert calls == 3
    assert fake.seeks == [0, 0]
    assert fake.committed == [1]
    assert consumer.dead_lettered == 1

    topic, value = fake_producer.sent[0]
    envelope = json.loads(value)
    assert topic == "security-logs.dlq"
    assert envelope["offset"] == 0
    assert envelope["attempts"] == 3
    assert envelope["value"] == {"id": "poison"}
    assert "always fails" in envelope["error"]


async def test_stop_event_halts_before_next_message(make_kafka_consumer):
    stop = asyncio.Event()
    fake = make_kafka_consumer(TP, [b"1", b"2", b"3"], stop)

    async def handler(payload):
        stop.set()
        return Processed()

    await _consumer(fake).run(handler, stop)
    assert fake.committed == [1]


async def test_producer_send_maps_kafka_errors():
    class Broken:
        async def send_and_wait(self, topic, value):
            raise KafkaConnectionError()

    producer = QueueProducer(["localhost:9092"], producer=Broken())
    with pytest.raises(QueueUnavailable):
        await producer.send("security-logs", {"id": "x"})


async def test_producer_send_encodes_records(fake_producer):
    producer = QueueProducer(["localhost:9092"], producer=fake_producer)
    await producer.send("security-logs", {"id": "x"})
    assert fake_producer.sent == [("security-logs", b'{"id": "x"}')]
