# Replisync Test Fixtures
# Pytest fixtures for Replisync tests

import asyncio
import logging
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any, Optional

import pytest
import yaml

from replisync.sync.checkpoint import MemoryCheckpointStore
from replisync.sync.collection import MemoryCollection


class FakeRemote:
    """
    Remote authority used by tests.

    Every accepted document is stamped with a rising 'updated_at', so the last
    push to arrive for a document id wins. Pull returns documents newer than
    the checkpoint, at most 'limit' per call.
    """

    def __init__(self, limit: int = 10):
        self.limit = limit
        self.documents: dict[Any, dict] = {}
        self.clock = 0
        self.push_calls: list[list[dict]] = []
        self.pull_calls: list[Any] = []
        self.fail_pushes = 0
        self.fail_pulls = 0

    def seed(self, count: int) -> None:
        for _ in range(count):
            self.clock += 1
            doc_id = f"remote-{self.clock}"
            self.documents[doc_id] = {"id": doc_id, "updated_at": self.clock}

    async def push(self, documents: list[dict]) -> None:
        self.push_calls.append([dict(doc) for doc in documents])
        if self.fail_pushes:
            self.fail_pushes -= 1
            raise ConnectionError("remote unreachable")
        for document in documents:
            self.clock += 1
            self.documents[document["id"]] = {**document, "updated_at": self.clock}

    async def pull(self, checkpoint: Optional[int]) -> dict:
        self.pull_calls.append(checkpoint)
        if self.fail_pulls:
            self.fail_pulls -= 1
            raise ConnectionError("remote unreachable")
        newer = sorted(
            (doc for doc in self.documents.values() if checkpoint is None or doc["updated_at"] > checkpoint),
            key=lambda doc: doc["updated_at"],
        )
        batch = newer[: self.limit]
        return {"documents": [dict(doc) for doc in batch], "has_more_documents": len(newer) > len(batch)}


class Gate:
    """Handler wrapper that blocks until released, tracking concurrent calls."""

    def __init__(self, result: Any = None):
        self.result = result
        self.released = asyncio.Event()
        self.entered = asyncio.Event()
        self.calls = 0
        self.running = 0
        self.max_running = 0

    async def __call__(self, *args: Any) -> Any:
        self.calls += 1
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        self.entered.set()
        try:
            await self.released.wait()
        finally:
            self.running -= 1
        return self.result


@pytest.fixture(autouse=True)
def reset_replisync_logger() -> Generator[None, None, None]:
    """Undo logging configuration done by CLI runs."""
    yield
    logger = logging.getLogger("replisync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary home directory."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("REPLISYNC_CONFIG", raising=False)
    return home


@pytest.fixture
def collection() -> MemoryCollection:
    """An empty in-memory collection."""
    return MemoryCollection("todos")


@pytest.fixture
def store() -> MemoryCheckpointStore:
    """An empty in-memory checkpoint store."""
    return MemoryCheckpointStore()


@pytest.fixture
def remote() -> FakeRemote:
    """A fake remote authority with last-arrival-wins conflict handling."""
    return FakeRemote()


@pytest.fixture
def gate_factory():
    """Build Gate handlers."""
    return Gate


@pytest.fixture
def replication_settings() -> dict:
    """Replication settings with short timers for tests."""
    return {
        "replication_identifier": "todos-remote",
        "collection": "todos",
        "live": True,
        "live_interval": 0,
        "retry_time": 50,
        "push": {"batch_size": 2},
        "pull": {"checkpoint_field": "updated_at"},
    }


@pytest.fixture
def handler_module(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Write an importable module with handlers and a collection factory."""
    module_dir = temp_dir / "handlers"
    module_dir.mkdir()
    (module_dir / "fake_backend.py").write_text(
        '''
from replisync.sync.collection import MemoryCollection

SERVER = {}
FAILING = {"push": False}


def open_collection(name):
    collection = MemoryCollection(name)
    collection.upsert({"id": "local-1", "title": "written offline"})
    return collection


async def push(documents):
    if FAILING["push"]:
        raise ConnectionError("remote unreachable")
    for document in documents:
        SERVER[document["id"]] = dict(document, updated_at=len(SERVER) + 1)


async def pull(checkpoint):
    documents = sorted(
        (doc for doc in SERVER.values() if checkpoint is None or doc["updated_at"] > checkpoint),
        key=lambda doc: doc["updated_at"],
    )
    return {"documents": documents, "hasMoreDocuments": False}


def tag(document):
    return dict(document, tagged=True)


def open_renamed(name):
    return MemoryCollection(name + "-copy")
''',
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(module_dir))
    monkeypatch.delitem(sys.modules, "fake_backend", raising=False)
    return "fake_backend"


@pytest.fixture
def sample_config(temp_home: Path, handler_module: str) -> dict:
    """Create sample configuration dict."""
    return {
        "collection_factory": f"{handler_module}:open_collection",
        "checkpoint_path": str(temp_home / ".config" / "replisync" / "checkpoints.yaml"),
        "replications": {
            "todos": {
                "replication_identifier": "todos-remote",
                "collection": "todos",
                "live": True,
                "live_interval": 0,
                "retry_time": 50,
                "push": {"batch_size": 2, "handler": f"{handler_module}:push"},
                "pull": {"checkpoint_field": "updated_at", "handler": f"{handler_module}:pull"},
            },
        },
        "output": {"verbose": False, "colored": False},
    }


@pytest.fixture
def config_file(temp_home: Path, sample_config: dict) -> Path:
    """Create a configuration file."""
    config_dir = temp_home / ".config" / "replisync"
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / "config.yaml"

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(sample_config, f, default_flow_style=False)

    return config_path
