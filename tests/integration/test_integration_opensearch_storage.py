from __future__ import annotations

from datetime import date

import pytest

from seclog.services.normalizer import normalize
from seclog.services.opensearch import StorageWriter, WriteOutcome, get_document, refresh_index

pytestmark = [pytest.mark.integration, pytest.mark.requires_opensearch]


def test_template_applies_to_new_partition(router, opensearch_client, clean_test_partitions):
    router.ensure_template()
    router.ensure_partition("logs-2001-01-01")

    mapping = opensearch_client.indices.get_mapping(index="logs-2001-01-01")
    props = mapping["logs-2001-01-01"]["mappings"]["properties"]
    assert props["agent"]["properties"]["ip"]["type"] == "ip"
    assert props["@timestamp"]["type"] == "date"


def test_write_is_idempotent_by_id(router, opensearch_client, clean_test_partitions):
    router.ensure_template()
    writer = StorageWriter(opensearch_client, router)
    doc = normalize({"id": "it-1", "timestamp": "2001-01-01T12:00:00Z", "src_ip": "10.0.0.1"})
    partition = router.partition_for(doc["@timestamp"])

    assert partition == "logs-2001-01-01"
    assert writer.write(partition, doc) is WriteOutcome.WRITTEN
    assert writer.write(partition, doc) is WriteOutcome.WRITTEN
    refresh_index(opensearch_client, partition)

    assert opensearch_client.count(index=partition)["count"] == 1
    assert get_document(opensearch_client, partition, "it-1")["network"]["srcIp"] == "10.0.0.1"


def test_prune_removes_only_expired(router, opensearch_client, clean_test_partitions):
    router.ensure_template()
    for name in clean_test_partitions:
        router.ensure_partition(name)

    deleted = router.prune_expired(90, today=date(2001, 4, 2))

    assert "logs-2001-01-01" in deleted
    assert "logs-2001-01-02" not in deleted
    assert opensearch_client.indices.exists(index="logs-2001-01-02")
