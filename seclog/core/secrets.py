"""
Secret lookup against Vault's KV v2 HTTP API.

Every lookup is best-effort. When Vault is not configured or unreachable the
caller gets an empty dict, and the ``resolve_*`` helpers fall back to the
environment-backed :class:`Settings` values. Startup never blocks on Vault.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import Settings

_LOGGER = logging.getLogger(__name__)

_VAULT_TIMEOUT = httpx.Timeout(3.0, connect=2.0)


def get_secret(path: str, settings: Settings, *, http: httpx.Client | None = None) -> dict[str, Any]:
    if not settings.vault_addr or not settings.vault_token:
        return {}

    url = f"{settings.vault_addr.rstrip('/')}/v1/{settings.vault_mount}/data/{path.strip('/')}"
    try:
        if http is None:
            with httpx.Client(timeout=_VAULT_TIMEOUT) as client:
                resp = client.get(url, headers={"X-Vault-Token": settings.vault_token})
        else:
            resp = http.get(url, headers={"X-Vault-Token": settings.vault_token})
        resp.raise_for_status()
        payload = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        _LOGGER.warning("vault lookup for %r failed, using environment: %s", path, exc)
        return {}

    data = (payload or {}).get("data", {})
    secret = data.get("data") if isinstance(data, dict) else None
    if not isinstance(secret, dict):
        _LOGGER.warning("vault secret %r has no data, using environment", path)
        return {}
    return secret


def _pick(secret: dict[str, Any], key: str, fallback: Any) -> Any:
    value = secret.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return fallback
    return value


def resolve_opensearch_config(settings: Settings, secret: dict[str, Any] | None = None) -> dict[str, Any]:
    if secret is None:
        secret = get_secret("opensearch", settings)
    return {
        "node": _pick(secret, "host", settings.opensearch_node),
        "username": _pick(secret, "username", settings.opensearch_username),
        "password": _pick(secret, "password", settings.opensearch_password),
    }


def resolve_kafka_config(settings: Settings, secret: dict[str, Any] | None = None) -> dict[str, Any]:
    if secret is None:
        secret = get_secret("kafka", settings)
    brokers = _pick(secret, "brokers", settings.kafka_bootstrap_servers)
    if isinstance(brokers, str):
        brokers = [b.strip() for b in brokers.split(",") if b.strip()]
    return {
        "bootstrap_servers": list(brokers),
        "client_id": _pick(secret, "clientId", settings.kafka_client_id),
        "group_id": _pick(secret, "consumerGroupId", settings.kafka_consumer_group_id),
    }


def resolve_graylog_config(settings: Settings, secret: dict[str, Any] | None = None) -> dict[str, Any]:
    if secret is None:
        secret = get_secret("graylog", settings)
    return {
        "host": _pick(secret, "host", settings.graylog_host),
        "port": str(_pick(secret, "port", settings.graylog_port)),
        "username": _pick(secret, "username", settings.graylog_username),
        "password": _pick(secret, "password", settings.graylog_password),
        "stream_id": _pick(secret, "streamId", settings.graylog_stream_id),
    }
