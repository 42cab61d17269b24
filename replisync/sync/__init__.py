# Replisync Sync Module
# Replication engine and its components

from replisync.sync.checkpoint import (
    CheckpointRecord,
    CheckpointStore,
    FileCheckpointStore,
    MemoryCheckpointStore,
    checkpoint_key,
)
from replisync.sync.collection import MemoryCollection, PendingWrite, ReplicatedCollection, WriteEvent
from replisync.sync.events import EventHub, EventStream, Subscription, ValueStream
from replisync.sync.phases import PullPhase, PullResponse, PushPhase, parse_pull_response
from replisync.sync.retry import DelayedCall, RetryScheduler
from replisync.sync.runner import CycleInProgressError, CycleResult, CycleRunner, ReplicationStatus
from replisync.sync.state import ReplicationState, replicate
from replisync.sync.trigger import CycleTrigger

__all__ = [
    # Checkpoints
    "CheckpointRecord",
    "CheckpointStore",
    "FileCheckpointStore",
    "MemoryCheckpointStore",
    "checkpoint_key",
    # Collection
    "ReplicatedCollection",
    "MemoryCollection",
    "PendingWrite",
    "WriteEvent",
    # Events
    "EventHub",
    "EventStream",
    "ValueStream",
    "Subscription",
    # Phases
    "PushPhase",
    "PullPhase",
    "PullResponse",
    "parse_pull_response",
    # Scheduling
    "DelayedCall",
    "RetryScheduler",
    "CycleTrigger",
    # Runner
    "CycleRunner",
    "CycleResult",
    "CycleInProgressError",
    "ReplicationStatus",
    # State
    "ReplicationState",
    "replicate",
]
