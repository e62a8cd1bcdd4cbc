from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Processed:
    """Handled. Commit the offset."""

    detail: str = ""


@dataclass(frozen=True)
class Skipped:
    """Deliberately not processed. Commit the offset and log the reason."""

    reason: str


@dataclass(frozen=True)
class Retryable:
    """Failed in a way that may heal. Redeliver, then dead-letter."""

    error: str


HandlerResult = Union[Processed, Skipped, Retryable]
