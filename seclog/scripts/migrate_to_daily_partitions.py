#!/usr/bin/env python3
"""
Move documents from the legacy tiered indices into daily partitions.

Older deployments kept logs in ``logs-current`` / ``logs-recent`` /
``logs-archive``. Each document is re-indexed into ``logs-YYYY-MM-DD``
picked from its ``@timestamp`` and keeps its ``_id``, so running the
migration twice does not duplicate anything.

Usage:
    python -m seclog.scripts.migrate_to_daily_partitions --dry-run
    python -m seclog.scripts.migrate_to_daily_partitions --source logs-recent --delete-source
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from typing import Any, Iterable, Iterator

from opensearchpy import OpenSearch
from opensearchpy.helpers import bulk, scan

from seclog.core.config import settings
from seclog.core.logging import configure_logging
from seclog.core.secrets import resolve_opensearch_config
from seclog.services.opensearch import IndexRouter, close_client, create_client
from seclog.services.opensearch.client import delete_index, index_exists
from seclog.services.state import resolve_timezone

_LOGGER = logging.getLogger(__name__)

LEGACY_INDICES = ("logs-current", "logs-recent", "logs-archive")


def plan_actions(
    hits: Iterable[dict[str, Any]],
    router: IndexRouter,
    counts: Counter,
) -> Iterator[dict[str, Any]]:
    """Bulk index actions for scanned hits. Hits without a usable timestamp are skipped."""
    for hit in hits:
        source = hit.get("_source") or {}
        try:
            partition = router.partition_for(source.get("@timestamp"))
        except ValueError:
            counts["skipped"] += 1
            _LOGGER.warning("skip %s/%s: no usable @timestamp", hit.get("_index"), hit.get("_id"))
            continue
        counts[partition] += 1
        yield {
            "_op_type": "index",
            "_index": partition,
            "_id": hit.get("_id"),
            "_source": source,
        }


def migrate_index(
    client: OpenSearch,
    router: IndexRouter,
    source_index: str,
    *,
    dry_run: bool = False,
    batch_size: int = 500,
) -> Counter:
    counts: Counter = Counter()
    hits = scan(client, index=source_index, query={"query": {"match_all": {}}}, size=batch_size)
    actions = plan_actions(hits, router, counts)

    if dry_run:
        for _ in actions:
            pass
        return counts

    def with_partitions() -> Iterator[dict[str, Any]]:
        for action in actions:
            router.ensure_partition(action["_index"])
            yield action

    success, failed = bulk(client, with_partitions(), chunk_size=batch_size, raise_on_error=False)
    counts["indexed"] = success
    counts["failed"] = len(failed)
    for item in failed[:10]:
        _LOGGER.error("bulk failure: %s", item)
    return counts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate legacy log indices into daily partitions")
    parser.add_argument(
        "--source",
        action="append",
        choices=LEGACY_INDICES,
        help="legacy index to migrate (repeatable, default: all)",
    )
    parser.add_argument("--dry-run", action="store_true", help="only report the target partitions")
    parser.add_argument("--delete-source", action="store_true", help="delete a legacy index once it migrated cleanly")
    parser.add_argument("--batch-size", type=int, default=500)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)

    cfg = resolve_opensearch_config(settings)
    client = create_client(cfg["node"], cfg["username"], cfg["password"])
    router = IndexRouter(client, tz=resolve_timezone(settings.partition_timezone))
    exit_code = 0
    try:
        if not args.dry_run:
            router.ensure_template()

        for source_index in args.source or LEGACY_INDICES:
            if not index_exists(client, source_index):
                print(f"[SKIP] {source_index}: not found")
                continue

            counts = migrate_index(
                client,
                router,
                source_index,
                dry_run=args.dry_run,
                batch_size=args.batch_size,
            )
            partitions = sorted(k for k in counts if k.startswith("logs-"))
            print(f"[{'PLAN' if args.dry_run else 'OK'}] {source_index}: {len(partitions)} partitions")
            for name in partitions:
                print(f"    {name}: {counts[name]}")
            if counts["skipped"]:
                print(f"    skipped (no timestamp): {counts['skipped']}")

            if args.dry_run:
                continue
            if counts["failed"]:
                print(f"[ERROR] {source_index}: {counts['failed']} documents failed, source kept")
                exit_code = 1
                continue
            if args.delete_source:
                delete_index(client, source_index)
                print(f"[OK] deleted legacy index {source_index}")
    finally:
        close_client(client)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
