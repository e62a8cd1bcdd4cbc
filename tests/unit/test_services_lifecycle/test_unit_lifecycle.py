from __future__ import annotations

from datetime import date, datetime, timezone
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from seclog.services.lifecycle import LifecycleScheduler, run_lifecycle_once, seconds_until_midnight
from seclog.services.opensearch import IndexRouter

pytestmark = [pytest.mark.unit]


def test_seconds_until_midnight():
    now = datetime(2025, 1, 15, 23, 59, 0, tzinfo=timezone.utc)
    assert seconds_until_midnight(now, timezone.utc) == 60
    tokyo = ZoneInfo("Asia/Tokyo")
    # 15:00 UTC is exactly midnight in Tokyo; the next one is a day away.
    assert seconds_until_midnight(datetime(2025, 1, 15, 15, 0, tzinfo=timezone.utc), tokyo) == 86400


def test_run_lifecycle_creates_tomorrow_and_prunes(mock_opensearch_client):
    mock_opensearch_client.cat.indices.return_value = [
        {"index": "logs-2024-10-01"},
        {"index": "logs-2024-12-31"},
    ]
    router = IndexRouter(mock_opensearch_client, tz=timezone.utc)

    report = run_lifecycle_once(router, today=date(2024, 12, 31), retention_days=90)

    assert report.created == "logs-2025-01-01"
    assert report.deleted == ["logs-2024-10-01"]
    assert report.errors == []
    mock_opensearch_client.indices.create.assert_called_once_with(index="logs-2025-01-01")


def test_run_lifecycle_is_idempotent(mock_opensearch_client):
    router = IndexRouter(mock_opensearch_client, tz=timezone.utc)
    run_lifecycle_once(router, today=date(2025, 1, 1))
    run_lifecycle_once(router, today=date(2025, 1, 1))
    mock_opensearch_client.indices.create.assert_called_once_with(index="logs-2025-01-02")


def test_run_lifecycle_still_prunes_when_create_fails(mock_opensearch_client):
    mock_opensearch_client.indices.exists.side_effect = RuntimeError("cluster red")
    mock_opensearch_client.cat.indices.return_value = [{"index": "logs-2020-01-01"}]
    router = IndexRouter(mock_opensearch_client, tz=timezone.utc)

    report = run_lifecycle_once(router, today=date(2025, 1, 1))

    assert report.created is None
    assert report.deleted == ["logs-2020-01-01"]
    assert len(report.errors) == 1


async def test_scheduler_run_now_updates_stats(pipeline_state, mock_opensearch_client):
    pipeline_state.index_router = IndexRouter(mock_opensearch_client, tz=timezone.utc)
    scheduler = LifecycleScheduler(pipeline_state)

    report = await scheduler.run_now()

    assert report.errors == []
    assert pipeline_state.stats.lifecycle_runs == 1
    assert pipeline_state.stats.last_lifecycle_at is not None


async def test_scheduler_counts_failed_runs(pipeline_state):
    router = MagicMock()
    router.tz = timezone.utc
    router.ensure_partition.side_effect = RuntimeError("boom")
    router.prune_expired.return_value = []
    pipeline_state.index_router = router

    await LifecycleScheduler(pipeline_state).run_now()

    assert pipeline_state.stats.lifecycle_errors == 1
    assert "boom" in pipeline_state.stats.last_error


def test_scheduler_delay_uses_clock(pipeline_state):
    clock = lambda: datetime(2025, 1, 15, 23, 0, tzinfo=timezone.utc)  # noqa: E731
    pipeline_state.partition_tz = timezone.utc
    assert LifecycleScheduler(pipeline_state, clock=clock)._delay() == 3600
