"""Configuration management for linear-manager using YAML files."""

import os
from pathlib import Path
from typing import Any

import structlog
import yaml

from linear_manager.exceptions import ConfigurationError

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".linear-manager"

# Keys that may be overridden from the environment.
ENV_OVERRIDES = {
    "linear.api_key": "LINEAR_API_KEY",
    "linear.team_id": "LINEAR_TEAM_ID",
}

KNOWN_KEYS = {
    "backend": "Tracker backend: linear or memory",
    "linear.api_key": "Linear personal API key",
    "linear.api_url": "Linear GraphQL endpoint",
    "linear.team_id": "Team used when a command gets no --team-id",
    "throttle.delay": "Minimum seconds between two mutating calls",
    "throttle.per_minute": "Optional sustained limit of mutating calls per minute",
}

BACKENDS = ("linear", "memory")

_NUMERIC_KEYS = {"throttle.delay", "throttle.per_minute"}


class Config:
    """Configuration manager using YAML file storage.

    Local config lives in ``.linear-manager/config.yaml`` in the current
    directory, global config in ``~/.linear-manager/config.yaml``. Reads look
    at the environment overrides first, then local, then global config.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None, home: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
            home: Directory holding the global config (defaults to the user's home)
        """
        global_dir = (home or Path.home()) / CONFIG_DIR_NAME
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = global_dir
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"
        self._config: dict[str, Any] = self._load(self.config_file)

        self._global_config: dict[str, Any] = {}
        if not self.is_global:
            global_file = global_dir / "config.yaml"
            if global_file.exists() and global_file != self.config_file:
                try:
                    self._global_config = self._load(global_file)
                except ConfigurationError as e:
                    logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    @staticmethod
    def _load(path: Path) -> dict[str, Any]:
        if not path.exists():
            logger.debug("Config file does not exist, initializing empty config", path=str(path))
            return {}
        try:
            with open(path, "r") as f:
                config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}") from e
        if not isinstance(config, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        logger.debug("Config loaded successfully", keys=list(config.keys()))
        return config

    def _save(self) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to save config to {self.config_file}: {e}") from e
        logger.debug("Config saved successfully")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key, e.g. ``linear.api_key``
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        env_name = ENV_OVERRIDES.get(key)
        if env_name and os.environ.get(env_name):
            logger.debug("Getting config value from environment", key=key, variable=env_name)
            return os.environ[env_name]
        if key in self._config:
            return self._config[key]
        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]
        return default

    def get_float(self, key: str, default: float | None = None) -> float | None:
        """Get a numeric configuration value.

        Raises:
            ConfigurationError: If the stored value is not a number
        """
        value = self.get(key)
        if value is None or value == "":
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Config value {key} must be a number, got {value!r}") from None

    def set(self, key: str, value: str) -> None:
        """Set a configuration value."""
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        """Remove a configuration value."""
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, Any]:
        """List all configuration settings, local taking precedence over global."""
        if self.is_global:
            return self._config.copy()
        merged = self._global_config.copy()
        merged.update(self._config)
        return merged


def validate_setting(key: str, value: str) -> str:
    """Check a value before it is stored.

    Unknown keys are accepted with a warning so that settings for newer
    versions can still be written.

    Returns:
        The value with surrounding whitespace removed

    Raises:
        ConfigurationError: If the value is not valid for a known key
    """
    value = value.strip()
    if key not in KNOWN_KEYS:
        logger.warning("Unknown config key", key=key)
        return value
    if key == "backend" and value not in BACKENDS:
        raise ConfigurationError(f"backend must be one of {', '.join(BACKENDS)}, got {value!r}")
    if key in _NUMERIC_KEYS:
        try:
            number = float(value)
        except ValueError:
            raise ConfigurationError(f"{key} must be a number, got {value!r}") from None
        if number < 0 or (key == "throttle.per_minute" and number == 0):
            raise ConfigurationError(f"{key} must be positive, got {value!r}")
    if not value:
        raise ConfigurationError(f"{key} must not be empty")
    return value


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.
    """
    return Config(use_global=use_global)
