from .client import GraylogClient, graylog_timestamp, record_timestamp
from .poller import PollResult, WatermarkPoller

__all__ = ["GraylogClient", "graylog_timestamp", "record_timestamp", "PollResult", "WatermarkPoller"]
