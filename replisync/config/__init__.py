# Replisync Configuration Module
# Handles YAML-based configuration loading, validation, and defaults

from replisync.config.defaults import DEFAULT_CONFIG, generate_default_config, get_default_config
from replisync.config.loader import (
    ensure_config_exists,
    get_config_path,
    load_config,
    save_config,
    validate_config_file,
)
from replisync.config.schema import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHECKPOINT_FIELD,
    DEFAULT_LIVE_INTERVAL,
    DEFAULT_RETRY_TIME,
    OutputConfig,
    PullConfig,
    PushConfig,
    ReplicationConfig,
    ReplisyncConfig,
)

__all__ = [
    # Schema
    "ReplisyncConfig",
    "ReplicationConfig",
    "PushConfig",
    "PullConfig",
    "OutputConfig",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CHECKPOINT_FIELD",
    "DEFAULT_LIVE_INTERVAL",
    "DEFAULT_RETRY_TIME",
    # Loader
    "load_config",
    "save_config",
    "get_config_path",
    "ensure_config_exists",
    "validate_config_file",
    # Defaults
    "DEFAULT_CONFIG",
    "get_default_config",
    "generate_default_config",
]
