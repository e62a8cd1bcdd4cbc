from __future__ import annotations

import asyncio
import json
from dataclasses import replace

import pytest

from seclog.core.time import parse_datetime
from seclog.services.checkpoint import WatermarkCheckpoint
from seclog.services.graylog import WatermarkPoller
from seclog.services.pipeline import stop_pipeline
from seclog.services.state import PipelineState

pytestmark = [pytest.mark.unit]

SAVED = parse_datetime("2020-01-01T00:00:00Z")


def test_missing_checkpoint_loads_none(tmp_path):
    assert WatermarkCheckpoint(tmp_path / "none.json").load() is None


def test_save_then_load(tmp_path):
    path = tmp_path / "state" / "checkpoint.json"
    checkpoint = WatermarkCheckpoint(path)

    assert checkpoint.save(SAVED) is True

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["lastTimestamp"] == "2020-01-01T00:00:00.000Z"
    assert "savedAt" in payload
    assert not path.with_name("checkpoint.json.tmp").exists()
    assert checkpoint.load() == SAVED


@pytest.mark.parametrize("content", ["{not json", "[]", '{"lastTimestamp": "soon"}', "{}"])
def test_unusable_checkpoint_is_ignored(tmp_path, content):
    path = tmp_path / "checkpoint.json"
    path.write_text(content, encoding="utf-8")
    assert WatermarkCheckpoint(path).load() is None


def test_state_resumes_from_checkpoint(tmp_path, settings):
    path = tmp_path / "checkpoint.json"
    WatermarkCheckpoint(path).save(SAVED)
    settings = replace(settings, watermark_checkpoint_file=str(path))

    assert PipelineState.create(settings).watermark == SAVED

    # An explicit start point wins over the saved one.
    since = parse_datetime("2025-06-01T00:00:00Z")
    assert PipelineState.create(settings, since=since).watermark == since


def test_state_without_checkpoint_file_uses_default_window(settings):
    state = PipelineState.create(settings)
    assert state.checkpoint is None
    assert state.watermark > SAVED


async def test_poller_saves_checkpoint_when_watermark_moves(tmp_path, settings, fake_source, fake_sink):
    path = tmp_path / "checkpoint.json"
    state = PipelineState.create(
        replace(settings, watermark_checkpoint_file=str(path)),
        since=parse_datetime("2025-01-01T00:00:00Z"),
    )
    poller = WatermarkPoller(state, fake_source, fake_sink, "security-logs")

    await poller.poll_once()
    assert not path.exists()

    fake_source.records = [{"_id": "r1", "timestamp": "2025-01-01T00:00:05.000Z"}]
    await poller.poll_once()

    restarted = PipelineState.create(replace(settings, watermark_checkpoint_file=str(path)))
    assert restarted.watermark == parse_datetime("2025-01-01T00:00:05Z")


async def test_stop_pipeline_saves_checkpoint(tmp_path, settings):
    path = tmp_path / "checkpoint.json"
    state = PipelineState.create(replace(settings, watermark_checkpoint_file=str(path)), since=SAVED)

    async def finished():
        return None

    state.tasks = [asyncio.ensure_future(finished())]
    await stop_pipeline(state)

    assert WatermarkCheckpoint(path).load() == SAVED
