"""Build a CodeWatchConfig from keyword overrides, CODEWATCH__ environment
variables and a YAML file, in that order of precedence, over model defaults.

The YAML file is the one passed explicitly, or ~/.config/codewatch/config.yaml
when it exists.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from codewatch.config.models import CodeWatchConfig, LoggingConfig, ManagerConfig, WatcherConfig
from codewatch.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/codewatch/config.yaml").expanduser()


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top-level value must be a mapping")
    return data


class _YamlSource(PydanticBaseSettingsSource):
    """Lowest-priority settings source backed by the parsed YAML mapping."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """BaseSettings subclass bound to one parsed YAML mapping."""

    class CodeWatchSettings(BaseSettings):
        """Root config. Env vars: CODEWATCH__LOGGING__LEVEL, CODEWATCH__WATCHER__DEBOUNCE_MS, etc."""

        model_config = SettingsConfigDict(
            env_prefix="CODEWATCH__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        watcher: WatcherConfig = WatcherConfig()
        manager: ManagerConfig = ManagerConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml file
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return CodeWatchSettings


def load_config(config_path: Path | None = None, **kwargs: Any) -> CodeWatchConfig:
    """Load config: defaults < YAML file < env vars < kwargs.

    Args:
        config_path: YAML file to read. Must exist when given.
                     Defaults to ~/.config/codewatch/config.yaml if present.
        **kwargs: Override values per section (highest precedence).

    Returns:
        Fully resolved configuration object. Sections keep track of which
        fields were explicitly set, so the watcher section can act as a
        manager-level default layer.

    Raises:
        ConfigError: On a missing explicit file, invalid YAML or validation errors.
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError.parse_error(str(config_path), "file does not exist")
        yaml_config = _read_yaml(config_path)
    else:
        yaml_config = _read_yaml(GLOBAL_CONFIG_PATH)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        raise ConfigError.from_validation(e) from e

    return CodeWatchConfig(
        logging=settings.logging,  # type: ignore[attr-defined]
        watcher=settings.watcher,  # type: ignore[attr-defined]
        manager=settings.manager,  # type: ignore[attr-defined]
    )


def coerce_watcher_config(value: WatcherConfig | Mapping[str, Any] | None) -> WatcherConfig:
    """Validate a per-call watcher config, keeping track of explicitly set fields."""
    if value is None:
        return WatcherConfig()
    if isinstance(value, WatcherConfig):
        return value
    try:
        return WatcherConfig.model_validate(dict(value))
    except ValidationError as e:
        raise ConfigError.from_validation(e) from e


def merge_watcher_configs(*layers: WatcherConfig | None) -> WatcherConfig:
    """Merge watcher configs, later layers winning for fields they set explicitly.

    Hard defaults apply to any field no layer sets.
    """
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer is not None:
            merged.update(layer.model_dump(exclude_unset=True))
    return WatcherConfig.model_validate(merged)
