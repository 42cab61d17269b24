# Replisync Checkpoint Store
# Persistence of pull checkpoints, keyed per collection and replication

import abc
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml

from replisync.errors import StorageError
from replisync.utils.paths import atomic_write


def checkpoint_key(collection: str, replication_identifier: str) -> str:
    """Build the storage key for a replication of a collection."""
    return f"{collection}:{replication_identifier}"


@dataclass
class CheckpointRecord:
    """A stored checkpoint and when it was last written."""

    key: str
    value: Any
    updated_at: Optional[str] = None  # ISO format datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckpointRecord":
        """Create from dictionary."""
        return cls(
            key=data.get("key", ""),
            value=data.get("value"),
            updated_at=data.get("updated_at"),
        )


class CheckpointStore(abc.ABC):
    """
    Durable cursor per replication.

    The replication engine is the only writer. Writes are synchronous so that
    a checkpoint is on disk before the next pull request is made.
    """

    @abc.abstractmethod
    def get_record(self, key: str) -> Optional[CheckpointRecord]:
        """Return the stored record for key, or None."""

    @abc.abstractmethod
    def save(self, key: str, value: Any) -> CheckpointRecord:
        """Store value as the checkpoint for key."""

    @abc.abstractmethod
    def reset(self, key: str) -> bool:
        """Forget the checkpoint for key. Returns True if one existed."""

    @abc.abstractmethod
    def reset_all(self) -> int:
        """Forget every checkpoint. Returns the number removed."""

    @abc.abstractmethod
    def records(self) -> list[CheckpointRecord]:
        """All stored records."""

    def load(self, key: str) -> Any:
        """Return the checkpoint value for key, or None on first run."""
        record = self.get_record(key)
        return record.value if record else None


class MemoryCheckpointStore(CheckpointStore):
    """Checkpoint store that lives only as long as the process."""

    def __init__(self) -> None:
        self._records: dict[str, CheckpointRecord] = {}

    def get_record(self, key: str) -> Optional[CheckpointRecord]:
        return self._records.get(key)

    def save(self, key: str, value: Any) -> CheckpointRecord:
        record = CheckpointRecord(key=key, value=value, updated_at=datetime.now().isoformat())
        self._records[key] = record
        return record

    def reset(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    def reset_all(self) -> int:
        count = len(self._records)
        self._records.clear()
        return count

    def records(self) -> list[CheckpointRecord]:
        return list(self._records.values())


class FileCheckpointStore(CheckpointStore):
    """
    Checkpoint store backed by a YAML file.

    The whole file is rewritten atomically on every save. Checkpoint values
    must be YAML-serializable (numbers, strings, lists or mappings of those).
    """

    VERSION = "1.0"

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize checkpoint store.

        Args:
            path: Path to the checkpoint file. Defaults to ~/.config/replisync/checkpoints.yaml
        """
        if path is None:
            path = Path.home() / ".config" / "replisync" / "checkpoints.yaml"
        self.path = path
        self._records: Optional[dict[str, CheckpointRecord]] = None

    @property
    def _loaded(self) -> dict[str, CheckpointRecord]:
        if self._records is None:
            self._records = self._read()
        return self._records

    def _read(self) -> dict[str, CheckpointRecord]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Cannot read checkpoint file {self.path}: {e}") from e

        if not data:
            return {}
        if not isinstance(data, dict):
            raise StorageError(f"Checkpoint file {self.path} is not a mapping")

        records = {}
        for key, record_data in (data.get("checkpoints") or {}).items():
            record = CheckpointRecord.from_dict({"key": key, **record_data})
            records[key] = record
        return records

    def _write(self) -> None:
        data = {
            "version": self.VERSION,
            "checkpoints": {
                key: {k: v for k, v in record.to_dict().items() if k != "key"}
                for key, record in self._loaded.items()
            },
        }
        try:
            content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
            atomic_write(self.path, content)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Cannot write checkpoint file {self.path}: {e}") from e

    def get_record(self, key: str) -> Optional[CheckpointRecord]:
        return self._loaded.get(key)

    def save(self, key: str, value: Any) -> CheckpointRecord:
        previous = self._loaded.get(key)
        record = CheckpointRecord(key=key, value=value, updated_at=datetime.now().isoformat())
        self._loaded[key] = record
        try:
            self._write()
        except StorageError:
            # Keep memory and disk in agreement
            if previous is None:
                del self._loaded[key]
            else:
                self._loaded[key] = previous
            raise
        return record

    def reset(self, key: str) -> bool:
        if key not in self._loaded:
            return False
        del self._loaded[key]
        self._write()
        return True

    def reset_all(self) -> int:
        count = len(self._loaded)
        self._records = {}
        self._write()
        return count

    def records(self) -> list[CheckpointRecord]:
        return list(self._loaded.values())
