from .client import Handler, QueueConsumer, QueueProducer, decode_message, encode_message
from .results import HandlerResult, Processed, Retryable, Skipped

__all__ = [
    "Handler",
    "HandlerResult",
    "Processed",
    "Skipped",
    "Retryable",
    "QueueConsumer",
    "QueueProducer",
    "decode_message",
    "encode_message",
]
