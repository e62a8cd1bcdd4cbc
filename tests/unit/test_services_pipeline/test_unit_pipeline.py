from __future__ import annotations

from datetime import timezone
from unittest.mock import MagicMock

import pytest
from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError
from opensearchpy.exceptions import RequestError

from seclog.services.kafka import Processed, Retryable, Skipped
from seclog.services.opensearch import IndexRouter, StorageWriter
from seclog.services import state as state_module
from seclog.services.pipeline import IngestHandler, bootstrap_storage

pytestmark = [pytest.mark.unit]


@pytest.fixture
def wired_state(pipeline_state, mock_opensearch_client):
    router = IndexRouter(mock_opensearch_client, tz=timezone.utc)
    pipeline_state.opensearch_client = mock_opensearch_client
    pipeline_state.index_router = router
    pipeline_state.storage_writer = StorageWriter(mock_opensearch_client, router)
    return pipeline_state


async def test_handler_writes_into_timestamp_partition(wired_state, mock_opensearch_client):
    result = await IngestHandler(wired_state)({"id": "a1", "timestamp": "2025-03-01T23:59:59Z"})

    assert isinstance(result, Processed)
    kwargs = mock_opensearch_client.index.call_args.kwargs
    assert kwargs["index"] == "logs-2025-03-01"
    assert kwargs["id"] == "a1"
    assert wired_state.stats.processed == 1


@pytest.mark.parametrize("payload", [None, "", "   "])
async def test_handler_skips_empty_messages(wired_state, mock_opensearch_client, payload):
    result = await IngestHandler(wired_state)(payload)
    assert isinstance(result, Skipped)
    mock_opensearch_client.index.assert_not_called()


async def test_handler_stores_free_text_under_raw_log(wired_state, mock_opensearch_client):
    result = await IngestHandler(wired_state)("free text that is not json")
    assert isinstance(result, Processed)
    body = mock_opensearch_client.index.call_args.kwargs["body"]
    assert body["raw_log"] == {"message": "free text that is not json"}


async def test_handler_storage_outage_is_retryable(wired_state, mock_opensearch_client):
    mock_opensearch_client.index.side_effect = OpenSearchConnectionError("N/A", "refused", None)
    result = await IngestHandler(wired_state)({"id": "a1"})
    assert isinstance(result, Retryable)
    assert wired_state.stats.retried == 1


async def test_handler_dropped_document_is_skipped(wired_state, mock_opensearch_client):
    error = RequestError(400, "mapper_parsing_exception", {})
    mock_opensearch_client.index.side_effect = [error, error]
    result = await IngestHandler(wired_state)({"id": "a1"})
    assert isinstance(result, Skipped)
    assert "a1" in result.reason
    assert wired_state.stats.dropped == 1


async def test_handler_counts_sanitized_writes(wired_state, mock_opensearch_client):
    error = RequestError(400, "mapper_parsing_exception", {})
    mock_opensearch_client.index.side_effect = [error, {"result": "created"}]
    result = await IngestHandler(wired_state)({"id": "a1", "src_ip": "10.0.0.1"})
    assert isinstance(result, Processed)
    assert wired_state.stats.sanitized == 1


def test_bootstrap_storage_puts_template_then_today(pipeline_state):
    router = MagicMock()
    router.tz = timezone.utc
    pipeline_state.index_router = router

    bootstrap_storage(pipeline_state)

    router.ensure_template.assert_called_once()
    (name,), _ = router.ensure_partition.call_args
    assert name.startswith("logs-")


def test_preload_configs_resolves_each_secret_once(monkeypatch, pipeline_state):
    calls: list[str] = []

    def resolver(name, cfg):
        def _resolve(settings):
            calls.append(name)
            return cfg

        return _resolve

    kafka = {"bootstrap_servers": "localhost:9092", "client_id": "c", "group_id": "g"}
    graylog = {"host": "gl", "port": "9000", "username": "u", "password": "p", "stream_id": ""}
    opensearch = {"node": "http://localhost:9200", "username": "admin", "password": "x"}
    monkeypatch.setattr(
        state_module,
        "_RESOLVERS",
        {
            "opensearch": resolver("opensearch", opensearch),
            "kafka": resolver("kafka", kafka),
            "graylog": resolver("graylog", graylog),
        },
    )

    pipeline_state.preload_configs()
    pipeline_state.get_producer()
    pipeline_state.get_consumer()
    pipeline_state.get_graylog()

    assert sorted(calls) == ["graylog", "kafka", "opensearch"]
