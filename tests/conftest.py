"""Shared test fixtures and configuration."""

from collections.abc import Callable, Iterator
import json
import os
from pathlib import Path
from typing import Any

import pytest

from workflow_index.domain.model import WorkflowRecord, complexity_for
from workflow_index.search.store import WorkflowIndexStore


# Complete test environment that overrides ALL config values
TEST_ENV = {
    "WORKFLOWS_DIR": "workflows",
    "DATABASE_PATH": "database/workflows.db",
    "CATEGORIES_PATH": "search_categories.json",
    "STATS_CACHE_TTL_SECONDS": "5.0",
    "TOP_INTEGRATIONS_LIMIT": "20",
    "DEFAULT_PAGE_SIZE": "20",
    "MAX_PAGE_SIZE": "100",
    "SIMILARITY_THRESHOLD": "0.7",
    "SIMILARITY_RESULT_LIMIT": "20",
    "SQLITE_BUSY_TIMEOUT_MS": "30000",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
    "LOG_LOGGER_LEVELS": "",
    "SERVICE_NAME": "workflow-index-test",
}


for key, value in TEST_ENV.items():
    os.environ[key] = value


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Reset configuration environment variables before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


def workflow_payload(*node_types: str, name: str = "", **extra: Any) -> dict[str, Any]:
    """Build an n8n-style workflow whose nodes are chained in declaration order."""
    nodes = [
        {"name": f"Node {index}", "type": node_type, "position": [index * 200, 0], "parameters": {}}
        for index, node_type in enumerate(node_types)
    ]
    connections = {
        nodes[index]["name"]: {"main": [[{"node": nodes[index + 1]["name"], "type": "main", "index": 0}]]}
        for index in range(len(nodes) - 1)
    }
    payload: dict[str, Any] = {"name": name, "nodes": nodes, "connections": connections}
    payload.update(extra)
    return payload


@pytest.fixture
def payload_factory() -> Callable[..., dict[str, Any]]:
    return workflow_payload


@pytest.fixture
def corpus_dir(tmp_path: Path) -> Path:
    path = tmp_path / "workflows"
    path.mkdir()
    return path


@pytest.fixture
def write_workflow(corpus_dir: Path) -> Callable[..., Path]:
    """Write a workflow document (dict, str or bytes) into the corpus directory."""

    def _write(filename: str, payload: dict[str, Any] | str | bytes) -> Path:
        path = corpus_dir / filename
        if isinstance(payload, bytes):
            path.write_bytes(payload)
        elif isinstance(payload, str):
            path.write_text(payload, encoding="utf-8")
        else:
            path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "database" / "workflows.db"


@pytest.fixture
def store(db_path: Path) -> Iterator[WorkflowIndexStore]:
    index_store = WorkflowIndexStore(db_path)
    index_store.initialize()
    yield index_store
    index_store.close()


def make_record(filename: str, **fields: Any) -> WorkflowRecord:
    """Build a consistent record; complexity follows node_count unless given."""
    node_count = fields.pop("node_count", 1)
    defaults: dict[str, Any] = {
        "name": filename.removesuffix(".json").replace("_", " ").title(),
        "trigger_type": "Manual",
        "integrations": [],
        "file_hash": f"hash-{filename}",
    }
    defaults.update(fields)
    defaults.setdefault("complexity", complexity_for(node_count))
    return WorkflowRecord(filename=filename, node_count=node_count, **defaults)


@pytest.fixture
def record_factory() -> Callable[..., WorkflowRecord]:
    return make_record
