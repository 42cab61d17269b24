# Replisync Configuration Schema
# Pydantic models for YAML configuration validation

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

DEFAULT_LIVE_INTERVAL = 10_000
DEFAULT_RETRY_TIME = 5_000
DEFAULT_BATCH_SIZE = 5
DEFAULT_CHECKPOINT_FIELD = "updated_at"


class PushConfig(BaseModel):
    """Settings for the push direction."""

    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, description="Maximum documents per push call")
    handler: str | None = Field(default=None, description="Push handler as 'package.module:function'")
    modifier: str | None = Field(default=None, description="Per-document transform applied before pushing")


class PullConfig(BaseModel):
    """Settings for the pull direction."""

    checkpoint_field: str = Field(
        default=DEFAULT_CHECKPOINT_FIELD,
        min_length=1,
        description="Document field whose maximum value becomes the checkpoint",
    )
    handler: str | None = Field(default=None, description="Pull handler as 'package.module:function'")
    modifier: str | None = Field(default=None, description="Per-document transform applied after pulling")


class ReplicationConfig(BaseModel):
    """Configuration for a single replication of one collection against one remote."""

    replication_identifier: str = Field(min_length=1, description="Stable key for checkpoint storage")
    collection: str = Field(default="documents", min_length=1, description="Name of the replicated collection")
    live: bool = Field(default=True, description="Keep replicating after the initial cycle")
    live_interval: int = Field(
        default=DEFAULT_LIVE_INTERVAL,
        ge=0,
        description="Milliseconds between idle-triggered cycles; 0 disables the timer",
    )
    retry_time: int = Field(default=DEFAULT_RETRY_TIME, ge=0, description="Milliseconds before retrying a failed cycle")
    auto_start: bool = Field(default=True, description="Start the first cycle as soon as the replication is created")
    push: PushConfig | None = Field(default=None, description="Push settings; absent disables pushing")
    pull: PullConfig | None = Field(default=None, description="Pull settings; absent disables pulling")

    @property
    def checkpoint_key(self) -> str:
        """Storage key combining collection identity and replication identifier."""
        return f"{self.collection}:{self.replication_identifier}"


class OutputConfig(BaseModel):
    """Output and logging configuration."""

    verbose: bool = Field(default=False, description="Enable verbose output")
    colored: bool = Field(default=True, description="Enable colored output")
    log_file: str | None = Field(default=None, description="Path to log file")
    log_level: str = Field(default="INFO", description="Log level for the replisync logger")

    @field_validator("log_file")
    @classmethod
    def expand_optional_paths(cls, v: str | None) -> str | None:
        """Expand ~ in optional paths."""
        if v is None:
            return None
        return str(Path(v).expanduser())

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept log level names in any case."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level


class ReplisyncConfig(BaseModel):
    """Root configuration model for Replisync."""

    replications: dict[str, ReplicationConfig] = Field(
        default_factory=dict, description="Named replication definitions"
    )
    collection_factory: str | None = Field(
        default=None,
        description="Callable 'package.module:function' returning a collection for a collection name",
    )
    checkpoint_path: str = Field(
        default="~/.config/replisync/checkpoints.yaml",
        description="File holding persisted checkpoints",
    )
    output: OutputConfig = Field(default_factory=OutputConfig, description="Output settings")

    @field_validator("checkpoint_path")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ in path."""
        return str(Path(v).expanduser())

    def get_replication(self, name: str) -> ReplicationConfig | None:
        """Get a replication by name."""
        return self.replications.get(name)
