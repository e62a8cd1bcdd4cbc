from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any

import httpx

from seclog.core.errors import UpstreamFetchError
from seclog.core.time import parse_datetime, utc_now

_LOGGER = logging.getLogger(__name__)

SEARCH_PATH = "/api/search/universal/relative"
DEFAULT_BATCH_SIZE = 100


def graylog_timestamp(dt: datetime) -> str:
    # Graylog's search syntax expects UTC "yyyy-MM-dd HH:mm:ss.SSS".
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S.") + f"{dt.microsecond // 1000:03d}"


def record_timestamp(record: dict[str, Any]) -> datetime | None:
    return parse_datetime(record.get("timestamp"))


class GraylogClient:
    """
    Reads messages from a Graylog stream newer than a watermark.

    Uses the relative search endpoint with a range wide enough to cover the
    watermark, an exclusive lower bound on ``timestamp`` and ascending sort.
    Records at or before the watermark are filtered out again here in case
    the server-side range query is lenient.
    """

    def __init__(
        self,
        base_url: str,
        *,
        username: str,
        password: str,
        stream_id: str = "",
        timeout: float = 10.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.stream_id = stream_id
        self._auth = (username, password)
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=min(2.0, timeout)))

    def build_params(self, since: datetime, limit: int, *, now: datetime | None = None) -> dict[str, Any]:
        now = now or utc_now()
        range_seconds = max(1, math.ceil((now - since).total_seconds()) + 1)
        params: dict[str, Any] = {
            "query": f'timestamp:{{"{graylog_timestamp(since)}" TO *}}',
            "range": range_seconds,
            "limit": limit,
            "offset": 0,
            "fields": "*",
            "sort": "timestamp:asc",
        }
        if self.stream_id:
            params["filter"] = f"streams:{self.stream_id}"
        return params

    async def fetch_since(self, since: datetime, limit: int = DEFAULT_BATCH_SIZE) -> list[dict[str, Any]]:
        url = f"{self.base_url}{SEARCH_PATH}"
        try:
            resp = await self._http.get(
                url,
                params=self.build_params(since, limit),
                auth=self._auth,
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamFetchError(f"graylog search failed: {exc}") from exc

        messages = payload.get("messages") if isinstance(payload, dict) else None
        if not isinstance(messages, list):
            return []

        records: list[tuple[datetime, dict[str, Any]]] = []
        for envelope in messages:
            message = envelope.get("message") if isinstance(envelope, dict) else None
            if not isinstance(message, dict):
                continue
            ts = record_timestamp(message)
            if ts is None:
                # The watermark cannot pass it, so it would be re-sent every tick.
                _LOGGER.warning("dropping graylog message %s without a usable timestamp", message.get("_id"))
                continue
            if ts <= since:
                continue
            records.append((ts, message))

        records.sort(key=lambda item: item[0])
        return [message for _, message in records[:limit]]

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
