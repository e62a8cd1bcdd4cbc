from __future__ import annotations

import asyncio
import logging
import os
from functools import partial
from typing import Any

from seclog.core.errors import StorageUnavailable
from seclog.services.graylog import WatermarkPoller
from seclog.services.kafka import HandlerResult, Processed, Retryable, Skipped
from seclog.services.lifecycle import LifecycleScheduler
from seclog.services.normalizer import normalize
from seclog.services.opensearch import WriteOutcome, partition_name
from seclog.services.opensearch.index import today_local
from seclog.services.state import PipelineState

_LOGGER = logging.getLogger(__name__)


class IngestHandler:
    """Queue message -> canonical document -> daily partition."""

    def __init__(self, state: PipelineState) -> None:
        self.state = state

    async def __call__(self, payload: Any) -> HandlerResult:
        stats = self.state.stats
        if payload is None or (isinstance(payload, str) and not payload.strip()):
            stats.skipped += 1
            return Skipped(reason="empty message")

        document = normalize(payload)
        if "error" in document:
            stats.placeholders += 1

        writer = self.state.get_writer()
        partition = writer.router.partition_for(document["@timestamp"])
        try:
            outcome = await asyncio.to_thread(writer.write, partition, document)
        except StorageUnavailable as exc:
            stats.retried += 1
            stats.last_error = str(exc)
            return Retryable(error=str(exc))

        if outcome is WriteOutcome.DROPPED:
            stats.dropped += 1
            return Skipped(reason=f"document {document['id']} rejected by {partition} after sanitizing")

        if outcome is WriteOutcome.WRITTEN_SANITIZED:
            stats.sanitized += 1
        stats.processed += 1
        return Processed(detail=f"{partition}/{document['id']}")


def bootstrap_storage(state: PipelineState) -> None:
    """Shared template first, then today's partition."""
    router = state.get_router()
    router.ensure_template()
    router.ensure_partition(partition_name(today_local(router.tz)))


def prepare_pipeline(state: PipelineState) -> None:
    """Blocking startup work: secret lookups and storage bootstrap."""
    state.preload_configs()
    bootstrap_storage(state)


def _on_task_done(state: PipelineState, task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is None:
        return
    state.stats.last_error = f"{task.get_name()}: {exc}"
    if state.stop_event.is_set():
        _LOGGER.error("pipeline task %s failed during shutdown: %s", task.get_name(), exc)
        return
    # A dead loop is fatal for the process; the supervisor restarts it.
    _LOGGER.critical("pipeline task %s crashed (fatal): %s", task.get_name(), exc, exc_info=exc)
    os._exit(1)


async def start_pipeline(state: PipelineState) -> None:
    if any(not t.done() for t in state.tasks):
        return
    settings = state.settings
    await asyncio.to_thread(prepare_pipeline, state)

    poller = WatermarkPoller(
        state,
        state.get_graylog(),
        state.get_producer(),
        settings.kafka_log_topic,
        batch_size=settings.poll_batch_size,
        interval=settings.poll_interval_seconds,
    )
    consumer = state.get_consumer()
    scheduler = LifecycleScheduler(state)

    state.stop_event.clear()
    state.tasks = [
        asyncio.create_task(poller.run(), name="poller"),
        asyncio.create_task(consumer.run(IngestHandler(state), state.stop_event), name="consumer"),
        asyncio.create_task(scheduler.run(), name="lifecycle"),
    ]
    for task in state.tasks:
        task.add_done_callback(partial(_on_task_done, state))
    _LOGGER.info("ingest pipeline started (topic=%s)", settings.kafka_log_topic)


async def stop_pipeline(state: PipelineState) -> None:
    state.stop_event.set()
    tasks = list(state.tasks)
    if tasks:
        # In-flight polls and messages finish; loops exit at their next check.
        await asyncio.gather(*tasks, return_exceptions=True)
        state.save_checkpoint()
    state.tasks = []
    await state.close()
    _LOGGER.info("ingest pipeline stopped at watermark %s", state.watermark_rfc3339)
