"""Replisync - replication of a local document collection against one remote.

Local writes are pushed and remote changes are pulled through
application-supplied handlers, with checkpointing, single-flight cycles and
fixed-interval retries.
"""

__version__ = "1.0.0"
__author__ = "Equitania Software GmbH"
__email__ = "info@equitania.de"

__all__ = [
    "__version__",
    "replicate",
    "ReplicationState",
    "ReplicationConfig",
    "PushConfig",
    "PullConfig",
    "MemoryCollection",
    "ReplicatedCollection",
    "PullResponse",
    "FileCheckpointStore",
    "MemoryCheckpointStore",
    "ReplicationError",
    "ReplicationCancelledError",
]


def __getattr__(name: str):
    """Lazy import to avoid loading dependencies during setup."""
    if name in ("replicate", "ReplicationState"):
        from replisync.sync import state

        return getattr(state, name)
    if name in ("ReplicationConfig", "PushConfig", "PullConfig"):
        from replisync.config import schema

        return getattr(schema, name)
    if name in ("MemoryCollection", "ReplicatedCollection"):
        from replisync.sync import collection

        return getattr(collection, name)
    if name == "PullResponse":
        from replisync.sync.phases import PullResponse

        return PullResponse
    if name in ("FileCheckpointStore", "MemoryCheckpointStore"):
        from replisync.sync import checkpoint

        return getattr(checkpoint, name)
    if name in ("ReplicationError", "ReplicationCancelledError"):
        from replisync import errors

        return getattr(errors, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
