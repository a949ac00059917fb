"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODEWATCH__SECTION__KEY)
3. YAML file (explicit path or ~/.config/codewatch/config.yaml)
4. Built-in defaults (this file)

Per-watcher settings have one more layer on top: values passed to
WatcherManager.start_watching() override the manager-level WatcherConfig,
which overrides the defaults below. Only explicitly set fields take part in
that merge.

Environment Variable Format:
    CODEWATCH__<SECTION>__<KEY>=<VALUE>

Examples:
    CODEWATCH__LOGGING__LEVEL=DEBUG
    CODEWATCH__WATCHER__DEBOUNCE_MS=500
    CODEWATCH__MANAGER__MAX_WATCHERS=4
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from codewatch.core.excludes import DEFAULT_IGNORE_PATTERNS, DEFAULT_SUPPORTED_EXTENSIONS

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_MAX_WATCHERS = 10
DEFAULT_RECOVERY_COOLDOWN_SEC = 1.0


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODEWATCH__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every accepted change.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class WatcherConfig(BaseModel):
    """Per-root change aggregation settings.

    Env vars:
        CODEWATCH__WATCHER__DEBOUNCE_MS: Quiet period before a batch is emitted
        CODEWATCH__WATCHER__BURST_DEBOUNCE_MS: Quiet period while in burst mode
        CODEWATCH__WATCHER__BURST_THRESHOLD: Events in the window that start burst mode
        CODEWATCH__WATCHER__BURST_WINDOW_MS: Sliding window for burst detection
    """

    debounce_ms: int = Field(
        default=1000,
        gt=0,
        description="Quiet period (ms) after the last change before a batch is emitted.",
    )
    burst_debounce_ms: int = Field(
        default=5000,
        gt=0,
        description="Quiet period (ms) used instead of debounce_ms while in burst mode.",
    )
    burst_threshold: int = Field(
        default=50,
        ge=1,
        description="Number of changes within burst_window_ms that enables burst mode.",
    )
    burst_window_ms: int = Field(
        default=2000,
        gt=0,
        description="Sliding window (ms) for burst detection.",
    )
    supported_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_EXTENSIONS),
        description="File extensions to report. Replaces the default list when set.",
    )
    ignore_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS),
        description="Root-relative globs to ignore. Replaces the default list when set.",
    )
    max_depth: int = Field(
        default=99,
        ge=0,
        description="Maximum directory depth below the root to report changes for.",
    )

    @field_validator("supported_extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        normalized: list[str] = []
        for ext in v:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized

    def debounce_for(self, burst: bool) -> float:
        """Active debounce in seconds."""
        return (self.burst_debounce_ms if burst else self.debounce_ms) / 1000.0


class ManagerConfig(BaseModel):
    """Watcher registry configuration.

    Env vars:
        CODEWATCH__MANAGER__MAX_WATCHERS: Maximum concurrently watched roots
        CODEWATCH__MANAGER__RECOVERY_COOLDOWN_SEC: Delay before restarting a failed watcher
    """

    max_watchers: int = Field(
        default=DEFAULT_MAX_WATCHERS,
        ge=1,
        description="Maximum concurrently watched roots. Each holds a live OS watch.",
    )
    recovery_cooldown_sec: float = Field(
        default=DEFAULT_RECOVERY_COOLDOWN_SEC,
        ge=0,
        description="Delay before the single restart attempt after a source error.",
    )


class CodeWatchConfig(BaseModel):
    """Root configuration for CodeWatch."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
