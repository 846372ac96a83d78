"""Configuration management for magstream.

Loads configuration hierarchically: defaults -> TOML file -> environment
-> CLI overrides, validating the merged result with pydantic.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from magstream.models import Config
from magstream.utils.exceptions import ConfigurationError
from magstream.utils.logging_config import setup_logging

CONFIG_FILE_NAME = "magstream.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    "MAGSTREAM_HOST": "stream.host",
    "MAGSTREAM_PORT": "stream.port",
    "MAGSTREAM_DOWNLOAD_DIR": "stream.download_dir",
    "MAGSTREAM_PROGRESS_INTERVAL": "stream.progress_interval",
    "MAGSTREAM_STALL_TIMEOUT": "stream.stall_timeout",
    "MAGSTREAM_EXIT_ON_COMPLETE": "stream.exit_on_complete",
    "MAGSTREAM_LISTEN_INTERFACES": "swarm.listen_interfaces",
    "MAGSTREAM_ENABLE_DHT": "swarm.enable_dht",
    "MAGSTREAM_TRACKERS": "swarm.trackers",
    "MAGSTREAM_METADATA_TIMEOUT": "swarm.metadata_timeout",
    "MAGSTREAM_PLAYER": "player.command",
    "MAGSTREAM_PLAYER_ENABLED": "player.enabled",
    "MAGSTREAM_LOG_LEVEL": "observability.log_level",
    "MAGSTREAM_LOG_FILE": "observability.log_file",
}

_LIST_PATHS = {"swarm.trackers", "player.extra_args"}
_BOOL_PATHS = {
    "stream.exit_on_complete",
    "swarm.enable_dht",
    "player.enabled",
}
_INT_PATHS = {"stream.port"}
_FLOAT_PATHS = {
    "stream.progress_interval",
    "stream.stall_timeout",
    "swarm.metadata_timeout",
}


def _parse_env_value(raw: str, path: str) -> bool | int | float | str | list[str]:
    if path in _LIST_PATHS:
        return [item.strip() for item in raw.split(",") if item.strip()]
    if path in _BOOL_PATHS:
        low = raw.lower()
        if low in {"true", "1", "yes", "on"}:
            return True
        if low in {"false", "0", "no", "off"}:
            return False
        msg = f"Invalid boolean for {path}: {raw!r}"
        raise ConfigurationError(msg)
    try:
        if path in _INT_PATHS:
            return int(raw)
        if path in _FLOAT_PATHS:
            return float(raw)
    except ValueError as e:
        msg = f"Invalid number for {path}: {raw!r}"
        raise ConfigurationError(msg) from e
    return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for magstream.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / ".config" / "magstream" / CONFIG_FILE_NAME,
        ]
        for path in search_paths:
            if path.exists():
                return path
        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if not self.config_file.exists():
                msg = f"Config file not found: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except toml.TomlDecodeError as e:
                msg = f"Failed to parse config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        config_data = self._merge_config(config_data, self._get_env_config())
        return self._validate(config_data)

    @staticmethod
    def _validate(config_data: dict[str, Any]) -> Config:
        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))
        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def apply_overrides(self, overrides: dict[str, Any]) -> Config:
        """Apply dotted-path overrides (``{"stream.port": 9000}``) and revalidate.

        ``None`` values are ignored so unset CLI options keep lower layers.
        """
        nested: dict[str, Any] = {}
        for path, value in overrides.items():
            if value is None:
                continue
            _set_nested(nested, path, value)
        if not nested:
            return self.config
        merged = self._merge_config(self.config.model_dump(mode="json"), nested)
        self.config = self._validate(merged)
        logging.getLogger(__name__).debug("Applied overrides: %s", sorted(nested))
        return self.config

    def setup_logging(self, verbosity: int = 0) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability, verbosity=verbosity)

    def export(self) -> str:
        """Export the current configuration as TOML."""
        return toml.dumps(self.config.model_dump(mode="json", exclude_none=True))


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Create a configuration manager for one session."""
    return ConfigManager(config_file)
