from __future__ import annotations

import logging
import random
import string
import time
from typing import Any

from seclog.core.time import utc_now_rfc3339

from .dialects import decode_json_record, dialect_record
from .extractors import (
    AGENT_DEFAULTS,
    ID_EXTRACTORS,
    NETWORK_DEFAULTS,
    RULE_DEFAULTS,
    TIMESTAMP_EXTRACTORS,
    COMPLIANCE_SOURCE_KEYS,
    MITRE_KEYS,
    Sources,
    extract_agent,
    extract_ai_ml_logs,
    extract_data,
    extract_network,
    extract_rule,
    extract_syscheck,
    first_found,
)

_LOGGER = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str = "gen") -> str:
    suffix = "".join(random.choices(_ID_ALPHABET, k=7))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def _coerce_record(raw: Any) -> tuple[dict[str, Any], Any]:
    """Split ``raw`` into (record to extract from, value kept under raw_log)."""
    if isinstance(raw, dict):
        return raw, raw

    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")

    if isinstance(raw, str):
        decoded = decode_json_record(raw)
        if decoded is not None:
            return decoded, decoded
        # raw_log is a mapped object; the original text goes under its
        # searchable message sub-field.
        return dialect_record(raw), {"message": raw}

    if raw is None:
        return {}, {}
    return {}, {"value": raw}


def empty_document() -> dict[str, Any]:
    """A document that satisfies every invariant and carries no event data."""
    rule = dict(RULE_DEFAULTS)
    rule["description"] = "Unknown log format"
    rule["groups"] = []
    rule["mitre"] = {key: [] for key in MITRE_KEYS}
    for name in COMPLIANCE_SOURCE_KEYS:
        rule[name] = []

    syscheck = extract_syscheck(Sources(record={}))

    return {
        "@timestamp": utc_now_rfc3339(),
        "id": generate_id("unknown"),
        "agent": dict(AGENT_DEFAULTS),
        "rule": rule,
        "network": dict(NETWORK_DEFAULTS),
        "data": {},
        "syscheck": syscheck,
        "ai_ml_logs": {},
        "raw_log": {},
    }


def placeholder_document(raw: Any, error: BaseException) -> dict[str, Any]:
    doc = empty_document()
    doc["id"] = generate_id("error")
    doc["error"] = "Failed to transform log"
    doc["error_message"] = str(error)
    try:
        doc["raw_log"] = _coerce_record(raw)[1]
    except Exception:
        doc["raw_log"] = {"message": repr(raw)}
    return doc


def _normalize(raw: Any) -> dict[str, Any]:
    record, raw_log = _coerce_record(raw)
    sources = Sources.from_record(record)

    return {
        "@timestamp": first_found(TIMESTAMP_EXTRACTORS, sources) or utc_now_rfc3339(),
        "id": first_found(ID_EXTRACTORS, sources) or generate_id(),
        "agent": extract_agent(sources),
        "rule": extract_rule(sources),
        "network": extract_network(sources),
        "data": extract_data(sources),
        "syscheck": extract_syscheck(sources),
        "ai_ml_logs": extract_ai_ml_logs(sources),
        "raw_log": raw_log,
    }


def normalize(raw: Any) -> dict[str, Any]:
    """
    Convert one raw record of any shape into a canonical document.

    Never raises. Malformed input yields a best-effort document. An internal
    failure yields a placeholder carrying ``error``/``error_message`` with the
    input preserved under ``raw_log``.
    """
    try:
        return _normalize(raw)
    except Exception as exc:
        _LOGGER.warning("normalize failed, storing placeholder: %s", exc, exc_info=True)
        return placeholder_document(raw, exc)


__all__ = ["normalize", "empty_document", "placeholder_document", "generate_id"]
