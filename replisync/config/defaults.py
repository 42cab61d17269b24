# Replisync Default Configuration
# Default configuration as Python dict and YAML generator

import copy
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "collection_factory": None,
    "checkpoint_path": "~/.config/replisync/checkpoints.yaml",
    "replications": {
        "example": {
            "replication_identifier": "example-remote",
            "collection": "documents",
            "live": True,
            "live_interval": 10000,
            "retry_time": 5000,
            "auto_start": True,
            "push": {
                "batch_size": 5,
                "handler": None,
                "modifier": None,
            },
            "pull": {
                "checkpoint_field": "updated_at",
                "handler": None,
                "modifier": None,
            },
        },
    },
    "output": {
        "verbose": False,
        "colored": True,
        "log_file": None,
        "log_level": "INFO",
    },
}


def get_default_config() -> dict[str, Any]:
    """Return a deep copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def generate_default_config() -> str:
    """Generate default configuration as YAML string with comments."""
    header = """# Replisync Configuration
# Version: 1.0
#
# Each entry under 'replications' replicates one local collection against one
# remote. Handlers are referenced as 'package.module:function'.
#
#   push.handler(documents)      -> raise on failure
#   pull.handler(checkpoint)     -> {"documents": [...], "has_more_documents": bool}
#   push.modifier / pull.modifier(document) -> document, or None to drop it
#
# Leaving a handler empty disables that direction.
# Times are milliseconds. live_interval: 0 disables the periodic timer.

"""
    return header + yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False, allow_unicode=True)
