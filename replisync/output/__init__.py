# Replisync Output Module
# Rich-based console output

from replisync.output.console import Console, create_console

__all__ = [
    "Console",
    "create_console",
]
