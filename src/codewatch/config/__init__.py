"""Config module exports."""

from codewatch.config.loader import load_config, merge_watcher_configs
from codewatch.config.models import (
    CodeWatchConfig,
    LoggingConfig,
    ManagerConfig,
    WatcherConfig,
)

__all__ = [
    "load_config",
    "merge_watcher_configs",
    "CodeWatchConfig",
    "LoggingConfig",
    "ManagerConfig",
    "WatcherConfig",
]
