from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# ========== tests/conftest.py -> repo root ==========
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    # `import seclog` must work when pytest runs from a venv entrypoint.
    sys.path.insert(0, str(REPO_ROOT))

# Never start the background loops when the app is imported by a test.
os.environ.setdefault("PIPELINE_ENABLED", "false")


def _env_flag(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: unit tests (no external services)")
    config.addinivalue_line("markers", "integration: integration tests (external services)")
    config.addinivalue_line("markers", "slow: long-running tests")
    config.addinivalue_line("markers", "requires_opensearch: needs a running OpenSearch")
    config.addinivalue_line("markers", "requires_kafka: needs a running Kafka broker")


def pytest_runtest_setup(item: pytest.Item) -> None:
    # Keep unit tests runnable on a developer machine without bringing up infra.
    if "requires_opensearch" in item.keywords and not _env_flag("RUN_OPENSEARCH_TESTS"):
        pytest.skip("Set RUN_OPENSEARCH_TESTS=1 to run OpenSearch-dependent tests.")
    if "requires_kafka" in item.keywords and not _env_flag("RUN_KAFKA_TESTS"):
        pytest.skip("Set RUN_KAFKA_TESTS=1 to run Kafka-dependent tests.")
