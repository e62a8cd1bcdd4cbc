"""
Parsers for raw records that arrive as plain strings.

JSON is the common case. Fortigate firewalls ship ``key=value`` lines
(``date=2025-01-01 time=10:00:00 srcip=10.0.0.1 dstip=... action="deny"``),
which are turned into a flat dict so the network extractors can read the
same ``srcip``/``dstip``/``proto`` keys they read from Wazuh ``data`` blocks.
"""

from __future__ import annotations

import json
import re
from typing import Any

_KV_RE = re.compile(r'([A-Za-z0-9_]+)=(?:"([^"]*)"|(\S*))')
_FORTIGATE_MARKERS = ("srcip=", "dstip=", "logid=", "devname=", "devid=")


def looks_like_fortigate(text: str) -> bool:
    return "=" in text and any(marker in text for marker in _FORTIGATE_MARKERS)


def parse_fortigate_log(text: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for match in _KV_RE.finditer(text):
        key = match.group(1)
        value = match.group(2) if match.group(2) is not None else match.group(3)
        result[key] = value
    return result


def parse_json_object(text: Any) -> dict[str, Any] | None:
    """Decode ``text`` as a JSON object. Anything else yields ``None``."""
    if not isinstance(text, str):
        return None
    s = text.strip()
    if not s.startswith("{"):
        return None
    try:
        value = json.loads(s)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def decode_json_record(text: str) -> dict[str, Any] | None:
    """JSON object, or a JSON string holding one (double-encoded producers)."""
    try:
        value = json.loads(text)
    except ValueError:
        return None
    if isinstance(value, str):
        value = parse_json_object(value)
    return value if isinstance(value, dict) else None


def dialect_record(text: str) -> dict[str, Any]:
    """
    Record for a string that is not JSON.

    Fortigate lines become ``{"data": pairs}`` with a timestamp built from
    their date/time pair. Anything else becomes an empty record.
    """
    if not looks_like_fortigate(text):
        return {}
    pairs = parse_fortigate_log(text)
    record: dict[str, Any] = {"data": pairs}
    if pairs.get("date") and pairs.get("time"):
        record["timestamp"] = f"{pairs['date']} {pairs['time']}"
    return record
