from __future__ import annotations

import ipaddress
import re
from typing import Any

_IPV4_RE = re.compile(r"^([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})\.([0-9]{1,3})$")

# Values some agents emit instead of leaving the field empty.
_PLACEHOLDERS = {"", "unknown", "n/a", "na", "none", "null", "-", "any"}


def is_valid_ipv4(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    match = _IPV4_RE.match(value.strip())
    if match is None:
        return False
    return all(0 <= int(octet, 10) <= 255 for octet in match.groups())


def is_valid_ip(value: Any) -> bool:
    """True for a dotted-quad IPv4 (octets 0-255) or a parseable IPv6 address."""
    if not isinstance(value, str):
        return False
    s = value.strip()
    if s.lower() in _PLACEHOLDERS:
        return False
    if is_valid_ipv4(s):
        return True
    if ":" not in s:
        return False
    try:
        ipaddress.IPv6Address(s.split("%", 1)[0])
    except ValueError:
        return False
    return True


def clean_ip(value: Any) -> str | None:
    if is_valid_ip(value):
        return value.strip()
    return None
