"""
Field extractors for the normalizer.

Every canonical field owns an ordered list of extractors. Each extractor
returns ``(value, found)``, and the first one reporting ``found=True`` wins.
The lists read, in order, the record's flat top-level keys, the nested object
on the record, and the same nested object inside the JSON payload embedded in
the record's ``message`` string. The embedded payload therefore only fills
fields that the record itself left empty.
"""

from __future__ import annotations

import copy
import math
import re
from dataclasses import dataclass, field as dc_field
from typing import Any, Callable, Iterable

from seclog.core.time import to_rfc3339, utc_now_rfc3339

from .dialects import parse_json_object
from .ip import clean_ip

Found = tuple[Any, bool]
Extractor = Callable[["Sources"], Found]

NOT_FOUND: Found = (None, False)

RECORD = "record"
MESSAGE = "message"


@dataclass(frozen=True)
class Sources:
    record: dict[str, Any]
    message: dict[str, Any] = dc_field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Sources":
        return cls(record=record, message=parse_json_object(record.get("message")) or {})

    def lookup(self, origin: str, path: Iterable[str]) -> Any:
        cur: Any = self.record if origin == RECORD else self.message
        for part in path:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(part)
        return cur


# ---------- value helpers ----------

def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, dict)):
        return bool(value)
    return True


def is_dict(value: Any) -> bool:
    return isinstance(value, dict)


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    return [value]


_LEADING_INT_RE = re.compile(r"^\s*([+-]?[0-9]+)")


def to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT_RE.match(value)
        if match:
            return int(match.group(1), 10)
    return None


def to_port(value: Any) -> int | None:
    port = to_int(value)
    if port is None or not 0 <= port <= 65535:
        return None
    return port


def to_id(value: Any) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    s = str(value).strip()
    return s or None


def field(
    origin: str,
    *path: str,
    accept: Callable[[Any], bool] = is_present,
    convert: Callable[[Any], Any] | None = None,
) -> Extractor:
    """Extractor reading ``path`` from the record or the embedded message payload.

    ``convert`` returning ``None`` counts as not found, so a malformed value
    at one location falls through to the next extractor.
    """

    def _extract(sources: Sources) -> Found:
        value = sources.lookup(origin, path)
        if not accept(value):
            return NOT_FOUND
        if convert is not None:
            value = convert(value)
            if value is None:
                return NOT_FOUND
        return value, True

    _extract.__name__ = f"{origin}:{'.'.join(path)}"
    return _extract


def both(*path: str, **kwargs: Any) -> list[Extractor]:
    """The same path on the record and then on the embedded payload."""
    return [field(RECORD, *path, **kwargs), field(MESSAGE, *path, **kwargs)]


def first_found(extractors: Iterable[Extractor], sources: Sources, default: Any = None) -> Any:
    for extractor in extractors:
        value, found = extractor(sources)
        if found:
            return value
    return copy.deepcopy(default)


def extract_fields(table: dict[str, list[Extractor]], defaults: dict[str, Any], sources: Sources) -> dict[str, Any]:
    return {name: first_found(extractors, sources, defaults.get(name)) for name, extractors in table.items()}


# ---------- timestamp / id ----------

TIMESTAMP_FIELDS = (
    "timestamp",
    "@timestamp",
    "time",
    "date",
    "Timestamp",
    "TimeStamp",
    "TIMESTAMP",
    "created_at",
    "createdAt",
)

ID_FIELDS = ("id", "_id", "ID", "Id", "log_id", "logId", "uniqueIdentifier")

TIMESTAMP_EXTRACTORS: list[Extractor] = [
    field(RECORD, name, convert=to_rfc3339) for name in TIMESTAMP_FIELDS
] + [field(MESSAGE, name, convert=to_rfc3339) for name in TIMESTAMP_FIELDS]

ID_EXTRACTORS: list[Extractor] = [
    field(RECORD, name, convert=to_id) for name in ID_FIELDS
] + [field(MESSAGE, name, convert=to_id) for name in ID_FIELDS]


# ---------- agent ----------

AGENT_DEFAULTS: dict[str, Any] = {"name": "unknown", "id": "unknown", "ip": None}

AGENT_FIELDS: dict[str, list[Extractor]] = {
    "name": [
        field(RECORD, "agent_name", convert=to_id),
        field(RECORD, "agent", "name", convert=to_id),
        field(RECORD, "agent", "agent_name", convert=to_id),
        field(MESSAGE, "agent_name", convert=to_id),
        field(MESSAGE, "agent", "name", convert=to_id),
    ],
    "id": [
        field(RECORD, "agent_id", convert=to_id),
        field(RECORD, "agent", "id", convert=to_id),
        field(RECORD, "agent", "agent_id", convert=to_id),
        field(MESSAGE, "agent", "id", convert=to_id),
    ],
    "ip": [
        field(RECORD, "agent_ip", convert=clean_ip),
        field(RECORD, "agent", "ip", convert=clean_ip),
        field(MESSAGE, "agent", "ip", convert=clean_ip),
    ],
}


def extract_agent(sources: Sources) -> dict[str, Any]:
    return extract_fields(AGENT_FIELDS, AGENT_DEFAULTS, sources)


# ---------- rule ----------

COMPLIANCE_SOURCE_KEYS: dict[str, tuple[str, ...]] = {
    "gdpr": ("gdpr",),
    "hipaa": ("hipaa",),
    "gpg13": ("gpg13",),
    "nist": ("nist_800_53", "nist"),
    "pci_dss": ("pci_dss",),
    "tsc": ("tsc",),
}

MITRE_KEYS = ("id", "tactic", "technique")

RULE_DEFAULTS: dict[str, Any] = {
    "id": "unknown",
    "level": 0,
    "description": "No description",
    "groups": [],
}


def _compliance_extractors(keys: tuple[str, ...]) -> list[Extractor]:
    extractors: list[Extractor] = []
    for origin in (RECORD, MESSAGE):
        for key in keys:
            extractors.append(field(origin, "rule", key, convert=as_list))
    return extractors


RULE_FIELDS: dict[str, list[Extractor]] = {
    "id": [
        field(RECORD, "rule_id", convert=to_id),
        *both("rule", "id", convert=to_id),
    ],
    "level": [
        field(RECORD, "rule_level", convert=to_int),
        *both("rule", "level", convert=to_int),
    ],
    "description": [
        field(RECORD, "rule_description", convert=to_id),
        *both("rule", "description", convert=to_id),
    ],
    "groups": [
        field(RECORD, "rule_groups", convert=as_list),
        *both("rule", "groups", convert=as_list),
    ],
}
RULE_FIELDS.update({name: _compliance_extractors(keys) for name, keys in COMPLIANCE_SOURCE_KEYS.items()})


def _mitre_shorthand(origin: str) -> Extractor:
    # rule.mitre given as a bare ID string or a list of IDs.
    def _extract(sources: Sources) -> Found:
        value = sources.lookup(origin, ("rule", "mitre"))
        if isinstance(value, (str, list)) and is_present(value):
            return as_list(value), True
        return NOT_FOUND

    _extract.__name__ = f"{origin}:rule.mitre[shorthand]"
    return _extract


MITRE_FIELDS: dict[str, list[Extractor]] = {
    key: both("rule", "mitre", key, convert=as_list) for key in MITRE_KEYS
}
MITRE_FIELDS["id"] = [
    field(RECORD, "rule", "mitre", "id", convert=as_list),
    _mitre_shorthand(RECORD),
    field(MESSAGE, "rule", "mitre", "id", convert=as_list),
    _mitre_shorthand(MESSAGE),
]


def extract_rule(sources: Sources) -> dict[str, Any]:
    rule = extract_fields(RULE_FIELDS, RULE_DEFAULTS, sources)
    rule["mitre"] = extract_fields(MITRE_FIELDS, {}, sources)
    # Unmatched list fields come back as None from first_found.
    for name in ("groups", *COMPLIANCE_SOURCE_KEYS):
        rule[name] = as_list(rule.get(name))
    for key in MITRE_KEYS:
        rule["mitre"][key] = as_list(rule["mitre"].get(key))
    return {
        "id": rule["id"],
        "level": rule["level"],
        "description": rule["description"],
        "groups": rule["groups"],
        "mitre": rule["mitre"],
        **{name: rule[name] for name in COMPLIANCE_SOURCE_KEYS},
    }


# ---------- network ----------

NETWORK_DEFAULTS: dict[str, Any] = {
    "srcIp": None,
    "destIp": None,
    "protocol": "unknown",
    "srcPort": None,
    "destPort": None,
}


def _network_extractors(flat: tuple[str, ...], nested: tuple[str, ...], canonical: str, **kwargs: Any) -> list[Extractor]:
    extractors = [field(RECORD, key, **kwargs) for key in flat]
    extractors.append(field(RECORD, "network", canonical, **kwargs))
    extractors += [field(RECORD, "data", key, **kwargs) for key in nested]
    extractors += [field(MESSAGE, "data", key, **kwargs) for key in nested]
    return extractors


NETWORK_FIELDS: dict[str, list[Extractor]] = {
    "srcIp": _network_extractors(
        ("src_ip", "srcip", "source_ip"), ("srcip", "src_ip"), "srcIp", convert=clean_ip
    ),
    "destIp": _network_extractors(
        ("dest_ip", "dst_ip", "dstip", "destination_ip"), ("dstip", "dst_ip", "dest_ip"), "destIp", convert=clean_ip
    ),
    "protocol": _network_extractors(("protocol", "proto"), ("proto", "protocol"), "protocol", convert=to_id),
    "srcPort": _network_extractors(("src_port", "srcport"), ("srcport", "src_port"), "srcPort", convert=to_port),
    "destPort": _network_extractors(
        ("dest_port", "dst_port", "dstport"), ("dstport", "dst_port", "dest_port"), "destPort", convert=to_port
    ),
}


def extract_network(sources: Sources) -> dict[str, Any]:
    return extract_fields(NETWORK_FIELDS, NETWORK_DEFAULTS, sources)


# ---------- data ----------

DATA_EXTRACTORS: list[Extractor] = both("data", accept=is_dict)


def extract_data(sources: Sources) -> dict[str, Any]:
    # Pass-through: returned as-is, not copied or re-validated.
    for extractor in DATA_EXTRACTORS:
        value, found = extractor(sources)
        if found:
            return value
    return {}


# ---------- syscheck (file integrity monitoring) ----------

SYSCHECK_DEFAULTS: dict[str, Any] = {
    "path": None,
    "mode": None,
    "size_after": None,
    "size_before": None,
    "uid_after": None,
    "uid_before": None,
    "gid_after": None,
    "gid_before": None,
    "md5_after": None,
    "md5_before": None,
    "sha1_after": None,
    "sha1_before": None,
    "sha256_after": None,
    "sha256_before": None,
    "uname_after": None,
    "uname_before": None,
    "mtime_after": None,
    "mtime_before": None,
    "changed_attributes": [],
    "event": None,
    "diff": None,
    "attrs_after": [],
    "attrs_before": [],
    "win_perm_after": [],
    "win_perm_before": [],
    "audit": {
        "user": {"id": None, "name": None},
        "process": {"id": None, "name": None},
    },
}

SYSCHECK_LIST_FIELDS = ("changed_attributes", "attrs_after", "attrs_before")
SYSCHECK_PERM_FIELDS = ("win_perm_after", "win_perm_before")
SYSCHECK_DATE_FIELDS = ("mtime_after", "mtime_before")

SYSCHECK_EXTRACTORS: list[Extractor] = both("syscheck", accept=is_dict)


def _fill_missing(target: dict[str, Any], source: dict[str, Any]) -> None:
    for key, value in source.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _fill_missing(current, value)
        elif not is_present(current) and is_present(value):
            target[key] = value


def _win_perms(value: Any) -> list[dict[str, Any]]:
    perms: list[dict[str, Any]] = []
    for item in as_list(value):
        if isinstance(item, dict):
            perms.append({"name": item.get("name"), "allowed": as_list(item.get("allowed"))})
        elif is_present(item):
            perms.append({"name": str(item), "allowed": []})
    return perms


def extract_syscheck(sources: Sources) -> dict[str, Any]:
    syscheck = copy.deepcopy(SYSCHECK_DEFAULTS)
    for extractor in SYSCHECK_EXTRACTORS:
        block, found = extractor(sources)
        if found:
            _fill_missing(syscheck, copy.deepcopy(block))

    for name in SYSCHECK_LIST_FIELDS:
        syscheck[name] = as_list(syscheck.get(name))
    for name in SYSCHECK_PERM_FIELDS:
        syscheck[name] = _win_perms(syscheck.get(name))
    for name in SYSCHECK_DATE_FIELDS:
        # Typed as date in the template; unparseable values are dropped.
        syscheck[name] = to_rfc3339(syscheck.get(name))
    if not isinstance(syscheck.get("audit"), dict):
        syscheck["audit"] = copy.deepcopy(SYSCHECK_DEFAULTS["audit"])
    return syscheck


# ---------- ai_ml_logs ----------

AI_ML_DATE_FIELDS = ("timestamp", "analysis_timestamp")


def _ai_response(origin: str) -> Extractor:
    # Older agents put the model output at data.AI_response.
    def _extract(sources: Sources) -> Found:
        response = sources.lookup(origin, ("data", "AI_response"))
        if not is_present(response):
            return NOT_FOUND
        ts = to_rfc3339(sources.lookup(origin, ("timestamp",))) or utc_now_rfc3339()
        return {"ai_response": response, "timestamp": ts}, True

    _extract.__name__ = f"{origin}:data.AI_response"
    return _extract


AI_ML_EXTRACTORS: list[Extractor] = [
    *both("ai_ml_logs", accept=lambda v: is_dict(v) and bool(v)),
    _ai_response(RECORD),
    _ai_response(MESSAGE),
]


def extract_ai_ml_logs(sources: Sources) -> dict[str, Any]:
    payload = first_found(AI_ML_EXTRACTORS, sources, {})
    if payload:
        payload = dict(payload)
        for name in AI_ML_DATE_FIELDS:
            if name in payload:
                payload[name] = to_rfc3339(payload[name])
    return payload
