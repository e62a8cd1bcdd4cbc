from __future__ import annotations


class PipelineError(Exception):
    """Base class for ingestion pipeline failures."""


class UpstreamFetchError(PipelineError):
    """The log aggregator could not be queried. Retried on the next poll tick."""


class QueueUnavailable(PipelineError):
    """The Kafka producer/consumer could not connect or send."""


class StorageUnavailable(PipelineError):
    """OpenSearch was unreachable (transport or connection failure)."""


class SchemaRejected(PipelineError):
    """OpenSearch refused a document because it violates the index mapping."""

    def __init__(self, message: str, *, doc_id: str | None = None) -> None:
        super().__init__(message)
        self.doc_id = doc_id
