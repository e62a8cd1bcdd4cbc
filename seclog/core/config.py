from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Real environment variables win over the .env file.
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH, override=False)


def _env_int(name: str, default: int, *, lo: int = 1, hi: int = 86400) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw, 10)
    except ValueError:
        return default
    return max(lo, min(value, hi))


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_flag(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "Security Log Ingest")
    app_env: str = os.getenv("APP_ENV", "dev")
    app_version: str = os.getenv("APP_VERSION", "0.1.0")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    pipeline_enabled: bool = _env_flag("PIPELINE_ENABLED", True)

    # OpenSearch
    opensearch_node: str = os.getenv("OPENSEARCH_NODE", "http://localhost:9200")
    opensearch_username: str = os.getenv("OPENSEARCH_USERNAME", "admin")
    opensearch_password: str = os.getenv("OPENSEARCH_PASSWORD", "admin")

    # Kafka
    kafka_bootstrap_servers: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    kafka_client_id: str = os.getenv("KAFKA_CLIENT_ID", "seclog-ingest")
    kafka_consumer_group_id: str = os.getenv("KAFKA_CONSUMER_GROUP_ID", "seclog-ingest")
    kafka_log_topic: str = os.getenv("KAFKA_LOG_TOPIC", "security-logs")
    kafka_dead_letter_topic: str = os.getenv("KAFKA_DEAD_LETTER_TOPIC", "")
    kafka_max_retries: int = _env_int("KAFKA_MAX_RETRIES", 3, lo=0, hi=100)
    kafka_retry_delay_seconds: float = _env_float("KAFKA_RETRY_DELAY_SECONDS", 2.0)

    # Graylog
    graylog_host: str = os.getenv("GRAYLOG_HOST", "localhost")
    graylog_port: str = os.getenv("GRAYLOG_PORT", "9000")
    graylog_username: str = os.getenv("GRAYLOG_USERNAME", "admin")
    graylog_password: str = os.getenv("GRAYLOG_PASSWORD", "")
    graylog_stream_id: str = os.getenv("GRAYLOG_STREAM_ID", "")
    poll_interval_seconds: int = _env_int("GRAYLOG_POLL_INTERVAL_SECONDS", 10, hi=3600)
    poll_batch_size: int = _env_int("GRAYLOG_BATCH_SIZE", 100, hi=10000)
    poll_timeout_seconds: float = _env_float("GRAYLOG_TIMEOUT_SECONDS", 10.0)

    # Empty means the ingestion host's local timezone.
    partition_timezone: str = os.getenv("PARTITION_TIMEZONE", "")

    # Poller watermark survives restarts here. Empty disables the checkpoint.
    watermark_checkpoint_file: str = os.getenv("WATERMARK_CHECKPOINT_FILE", "graylog_checkpoint.json")

    # Vault (KV v2)
    vault_addr: str = os.getenv("VAULT_ADDR", "")
    vault_token: str = os.getenv("VAULT_TOKEN", "")
    vault_mount: str = os.getenv("VAULT_MOUNT", "secret")

    @property
    def dead_letter_topic(self) -> str:
        return self.kafka_dead_letter_topic or f"{self.kafka_log_topic}.dlq"


settings = Settings()
