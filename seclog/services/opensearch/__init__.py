"""
OpenSearch storage layer

Responsibilities:
  - daily partitions ``logs-YYYY-MM-DD`` routed by document timestamp
  - the shared ``logs-*`` index template
  - idempotent document writes with a sanitized retry on schema rejection
  - retention pruning of expired partitions

Public interface:
  - partition_for(): partition name for a timestamp
  - IndexRouter: ensure_template / ensure_partition / prune_expired
  - StorageWriter: write(partition, document) -> WriteOutcome
  - create_client(): build an OpenSearch client
"""

from .client import create_client, close_client, get_document, refresh_index
from .index import (
    PARTITION_PATTERN,
    RETENTION_DAYS,
    IndexRouter,
    partition_date,
    partition_for,
    partition_name,
    partitions_between,
)
from .storage import StorageWriter, WriteOutcome, sanitize_document

__all__ = [
    "create_client",
    "close_client",
    "get_document",
    "refresh_index",
    "PARTITION_PATTERN",
    "RETENTION_DAYS",
    "IndexRouter",
    "partition_date",
    "partition_for",
    "partition_name",
    "partitions_between",
    "StorageWriter",
    "WriteOutcome",
    "sanitize_document",
]
