# Canonical document persistence (idempotent upsert + sanitized retry)

import copy
import json
import logging
from enum import Enum
from typing import Any

from opensearchpy import OpenSearch
from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError
from opensearchpy.exceptions import RequestError, TransportError

from seclog.core.errors import SchemaRejected, StorageUnavailable

from .index import IndexRouter

_LOGGER = logging.getLogger(__name__)

# Typed ip fields that noisy sources fill with non-IP values.
SANITIZED_IP_FIELDS = (
    ("agent", "ip"),
    ("network", "srcIp"),
    ("network", "destIp"),
)


class WriteOutcome(str, Enum):
    WRITTEN = "written"
    WRITTEN_SANITIZED = "written_sanitized"
    DROPPED = "dropped"


def sanitize_document(document: dict[str, Any]) -> dict[str, Any]:
    """
    Copy of ``document`` with the fields known to break strict typing cleared.

    The ip fields are nulled. A non-string ``raw_log.message`` is
    JSON-encoded, since that sub-field is mapped as text.
    """
    safe = copy.deepcopy(document)
    for parent, leaf in SANITIZED_IP_FIELDS:
        obj = safe.get(parent)
        if isinstance(obj, dict):
            obj[leaf] = None

    raw_log = safe.get("raw_log")
    if isinstance(raw_log, dict) and "message" in raw_log and not isinstance(raw_log["message"], str):
        try:
            raw_log["message"] = json.dumps(raw_log["message"], default=str)
        except (TypeError, ValueError):
            raw_log["message"] = str(raw_log["message"])
    return safe


def _rejection_reason(error: RequestError) -> str:
    info = error.info if isinstance(error.info, dict) else {}
    detail = info.get("error")
    reason = detail.get("reason") if isinstance(detail, dict) else None
    return f"{error.error}: {reason}" if reason else str(error.error)


class StorageWriter:
    """
    Writes canonical documents into their daily partition.

    Documents are indexed by their ``id``, so redelivery overwrites instead
    of duplicating. A schema rejection gets one retry with a sanitized copy,
    and if that is rejected too the document is dropped and its id logged.
    Transport failures raise :class:`StorageUnavailable` so the caller can
    decide to redeliver.
    """

    def __init__(self, client: OpenSearch, router: IndexRouter) -> None:
        self.client = client
        self.router = router

    def _index(self, partition: str, document: dict[str, Any]) -> None:
        doc_id = document.get("id")
        try:
            self.client.index(index=partition, id=doc_id, body=document, refresh=False)
        except RequestError as exc:
            raise SchemaRejected(_rejection_reason(exc), doc_id=doc_id) from exc
        except (OpenSearchConnectionError, TransportError) as exc:
            raise StorageUnavailable(f"index {doc_id} into {partition} failed: {exc}") from exc

    def _ensure_partition(self, partition: str) -> None:
        try:
            self.router.ensure_partition(partition)
        except RequestError as exc:
            # Indexing still auto-creates the partition from the template.
            _LOGGER.warning("ensure partition %s failed: %s", partition, exc)
        except (OpenSearchConnectionError, TransportError) as exc:
            raise StorageUnavailable(f"ensure partition {partition} failed: {exc}") from exc

    def write(self, partition: str, document: dict[str, Any]) -> WriteOutcome:
        doc_id = document.get("id")
        self._ensure_partition(partition)

        try:
            self._index(partition, document)
            _LOGGER.debug("indexed %s into %s", doc_id, partition)
            return WriteOutcome.WRITTEN
        except SchemaRejected as exc:
            _LOGGER.warning("document %s rejected by %s (%s), retrying sanitized", exc.doc_id, partition, exc)

        try:
            self._index(partition, sanitize_document(document))
        except SchemaRejected as exc:
            _LOGGER.error(
                "dropping document id=%s partition=%s: sanitized write rejected (%s)",
                exc.doc_id,
                partition,
                exc,
            )
            return WriteOutcome.DROPPED

        _LOGGER.info("indexed sanitized document %s into %s", doc_id, partition)
        return WriteOutcome.WRITTEN_SANITIZED
