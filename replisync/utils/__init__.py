# Replisync Utilities Module
# Helper functions for file writes and handler resolution

from replisync.utils.callables import call_maybe_async, resolve_callable
from replisync.utils.paths import atomic_write, ensure_dir, expand_path

__all__ = [
    # Paths
    "expand_path",
    "ensure_dir",
    "atomic_write",
    # Callables
    "resolve_callable",
    "call_maybe_async",
]
