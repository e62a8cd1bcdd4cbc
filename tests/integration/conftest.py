"""
Integration fixtures. These talk to a real OpenSearch.
"""
from __future__ import annotations

import os
from datetime import timezone

import pytest


def _set_default_env(name: str, value: str) -> None:
    if os.getenv(name, "").strip():
        return
    os.environ[name] = value


_set_default_env("OPENSEARCH_NODE", "http://localhost:9200")
_set_default_env("OPENSEARCH_USERNAME", "admin")
_set_default_env("OPENSEARCH_PASSWORD", "admin")

# Far in the past so retention and live traffic never touch them.
TEST_PARTITIONS = ["logs-2001-01-01", "logs-2001-01-02"]


@pytest.fixture(scope="session")
def opensearch_client():
    from seclog.services.opensearch import close_client, create_client

    client = create_client(
        os.environ["OPENSEARCH_NODE"],
        os.environ["OPENSEARCH_USERNAME"],
        os.environ["OPENSEARCH_PASSWORD"],
    )
    yield client
    close_client(client)


@pytest.fixture
def router(opensearch_client):
    from seclog.services.opensearch import IndexRouter

    return IndexRouter(opensearch_client, tz=timezone.utc)


@pytest.fixture
def clean_test_partitions(opensearch_client):
    def _clean():
        for name in TEST_PARTITIONS:
            try:
                if opensearch_client.indices.exists(index=name):
                    opensearch_client.indices.delete(index=name)
            except Exception:
                # Best-effort cleanup: a missing index shouldn't fail the run.
                pass

    _clean()
    yield TEST_PARTITIONS
    _clean()
