# OpenSearch client construction and basic index operations

import logging
from typing import Any, Optional
from urllib.parse import urlparse

from opensearchpy import OpenSearch, RequestsHttpConnection
from opensearchpy.exceptions import NotFoundError, RequestError

_LOGGER = logging.getLogger(__name__)


def build_client_config(node_url: str, username: str, password: str) -> dict[str, Any]:
    parsed = urlparse(node_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or 9200
    use_ssl = parsed.scheme == "https"

    config: dict[str, Any] = {
        "hosts": [{"host": host, "port": port}],
        "use_ssl": use_ssl,
        "connection_class": RequestsHttpConnection,
        "timeout": 30,
        "max_retries": 2,
        "retry_on_timeout": True,
        "retry_on_status": [502, 503, 504],
    }

    # Credentials only matter when the security plugin (TLS) is on.
    if use_ssl:
        config["verify_certs"] = False
        config["ssl_show_warn"] = False
        config["http_auth"] = (username, password)

    return config


def create_client(node_url: str, username: str, password: str) -> OpenSearch:
    """Build a client. Connecting is lazy; the first request opens the pool."""
    return OpenSearch(**build_client_config(node_url, username, password))


def close_client(client: Optional[OpenSearch]) -> None:
    if client is None:
        return
    try:
        client.close()
    except Exception as exc:
        _LOGGER.debug("closing opensearch client failed: %s", exc)


def index_exists(client: OpenSearch, index_name: str) -> bool:
    return bool(client.indices.exists(index=index_name))


def create_index(client: OpenSearch, index_name: str, body: Optional[dict[str, Any]] = None) -> bool:
    """
    Create an index. Returns False when another writer created it first.

    Settings and mappings normally come from the index template, so ``body``
    is usually omitted.
    """
    try:
        if body:
            client.indices.create(index=index_name, body=body)
        else:
            client.indices.create(index=index_name)
        return True
    except RequestError as error:
        if error.error == "resource_already_exists_exception":
            return False
        raise


def delete_index(client: OpenSearch, index_name: str) -> bool:
    try:
        client.indices.delete(index=index_name)
        return True
    except NotFoundError:
        return False


def list_indices(client: OpenSearch, pattern: str) -> list[str]:
    rows = client.cat.indices(index=pattern, format="json")
    names: list[str] = []
    for row in rows or []:
        name = row.get("index") if isinstance(row, dict) else None
        if isinstance(name, str):
            names.append(name)
    return sorted(names)


def get_document(client: OpenSearch, index_name: str, doc_id: str) -> Optional[dict[str, Any]]:
    try:
        response = client.get(index=index_name, id=doc_id)
    except NotFoundError:
        return None
    return response["_source"]


def refresh_index(client: OpenSearch, index_name: str) -> None:
    """Make freshly written documents searchable. Failures are only logged."""
    try:
        client.indices.refresh(index=index_name)
    except Exception as error:
        _LOGGER.warning("refresh %s failed: %s", index_name, error)
