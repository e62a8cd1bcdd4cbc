"""
Watermark checkpoint on local disk.

The poller's watermark is saved as ``{"lastTimestamp": ..., "savedAt": ...}``
after every batch that moves it and again on shutdown, and is read back at
startup, so a restart resumes where the last run stopped instead of
replaying only the default window.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from seclog.core.time import format_rfc3339, parse_datetime, utc_now_rfc3339

_LOGGER = logging.getLogger(__name__)


class WatermarkCheckpoint:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> datetime | None:
        """Saved watermark, or None when there is no usable checkpoint."""
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            _LOGGER.warning("ignoring unreadable checkpoint %s: %s", self.path, exc)
            return None

        watermark = parse_datetime(payload.get("lastTimestamp")) if isinstance(payload, dict) else None
        if watermark is None:
            _LOGGER.warning("checkpoint %s has no valid lastTimestamp", self.path)
            return None
        _LOGGER.info("loaded checkpoint %s saved at %s", format_rfc3339(watermark), payload.get("savedAt"))
        return watermark

    def save(self, watermark: datetime) -> bool:
        """Write the watermark. Failures are logged; the pipeline keeps running."""
        payload = {"lastTimestamp": format_rfc3339(watermark), "savedAt": utc_now_rfc3339()}
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            # Readers never see a half-written file.
            os.replace(tmp, self.path)
        except OSError as exc:
            _LOGGER.error("saving checkpoint %s failed: %s", self.path, exc)
            return False
        _LOGGER.debug("checkpoint saved: %s", payload["lastTimestamp"])
        return True
