"""Configuration management for entity-links using YAML files."""

import os
from pathlib import Path
from typing import Any

import structlog
import yaml

logger = structlog.get_logger()

CONFIG_DIR_NAME = ".entity-links"

_TRUE_STRINGS = ("1", "true", "yes", "on")
_BOOL_STRINGS = (*_TRUE_STRINGS, "0", "false", "no", "off")

# Environment variables consulted when a key is set in neither config file.
ENV_VARS = {
    "supabase.url": "SUPABASE_URL",
    "supabase.key": "SUPABASE_KEY",
    "user": "ENTITY_LINKS_USER",
}

DEFAULTS: dict[str, Any] = {
    "backend": "local",
    "local.path": f"{CONFIG_DIR_NAME}/data.yaml",
    "logging.slow_query_ms": 100,
    "links.warn_uncommon": True,
}

BACKENDS = ("local", "supabase")

SECRET_KEYS = {"supabase.key"}

KNOWN_KEYS = [*DEFAULTS, *ENV_VARS]


def validate_setting(key: str, value: str) -> str:
    """Check a value before it is written to a config file.

    Raises:
        ValueError: If the key is unknown or the value does not fit it
    """
    if key not in KNOWN_KEYS:
        raise ValueError(f"Unknown config key '{key}'. Valid keys: {', '.join(KNOWN_KEYS)}")
    if key == "backend" and value not in BACKENDS:
        raise ValueError(f"Unknown backend: {value}. Valid backends: {', '.join(BACKENDS)}")
    if key == "logging.slow_query_ms" and not value.strip().isdigit():
        raise ValueError(f"Config value {key} must be an integer, got {value!r}")
    if key == "links.warn_uncommon" and value.strip().lower() not in _BOOL_STRINGS:
        raise ValueError(f"Config value {key} must be true or false, got {value!r}")
    return value


def mask(key: str, value: Any) -> Any:
    return "****" if key in SECRET_KEYS and value else value


class Config:
    """Configuration manager using YAML file storage.

    Supports both local (repository-level) and global (user-level) configuration.
    Local config is stored in .entity-links/config.yaml in the current directory.
    Global config is stored in ~/.entity-links/config.yaml.

    When reading, values are looked up in local config first, then global config,
    then the environment.
    """

    def __init__(self, use_global: bool = False, config_dir: Path | None = None) -> None:
        """Initialize configuration manager.

        Args:
            use_global: If True, use global config only. If False, use local config with global fallback.
            config_dir: Custom directory to store config file (overrides use_global)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
            self.is_global = use_global
        elif use_global:
            self.config_dir = Path.home() / CONFIG_DIR_NAME
            self.is_global = True
        else:
            self.config_dir = Path.cwd() / CONFIG_DIR_NAME
            self.is_global = False

        self.config_file = self.config_dir / "config.yaml"
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self._config: dict[str, Any] = self._load()

        self._global_config: dict[str, Any] = {}
        if not self.is_global:
            global_config_file = Path.home() / CONFIG_DIR_NAME / "config.yaml"
            if global_config_file.exists() and global_config_file != self.config_file:
                try:
                    with open(global_config_file, "r") as f:
                        self._global_config = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    logger.warning("Failed to load global config", error=str(e))

        logger.debug("Config initialized", config_file=str(self.config_file), is_global=self.is_global)

    def _load(self) -> dict[str, Any]:
        if not self.config_file.exists():
            logger.debug("Config file does not exist, initializing empty config")
            return {}

        try:
            with open(self.config_file, "r") as f:
                config = yaml.safe_load(f) or {}
                logger.debug("Config loaded successfully", keys=list(config.keys()))
                return config
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load config", error=str(e))
            raise ValueError(f"Failed to load config from {self.config_file}: {e}") from e

    def _save(self) -> None:
        try:
            with open(self.config_file, "w") as f:
                yaml.safe_dump(self._config, f, default_flow_style=False, sort_keys=False)
            logger.debug("Config saved successfully")
        except OSError as e:
            logger.error("Failed to save config", error=str(e))
            raise ValueError(f"Failed to save config to {self.config_file}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Lookup order: local file, global file, environment, built-in default,
        then ``default``.
        """
        if key in self._config:
            logger.debug("Getting config value from local", key=key)
            return self._config[key]

        if not self.is_global and key in self._global_config:
            logger.debug("Getting config value from global", key=key)
            return self._global_config[key]

        env_var = ENV_VARS.get(key)
        if env_var and os.environ.get(env_var):
            logger.debug("Getting config value from environment", key=key, env_var=env_var)
            return os.environ[env_var]

        if default is None and key in DEFAULTS:
            return DEFAULTS[key]

        logger.debug("Config value not found", key=key)
        return default

    def get_int(self, key: str, default: int | None = None) -> int | None:
        value = self.get(key, default)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Config value {key} must be an integer, got {value!r}") from e

    def get_bool(self, key: str, default: bool | None = None) -> bool | None:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return None if value is None else bool(value)

    def source(self, key: str) -> str | None:
        """Where the effective value of a key comes from: local, global, environment or default."""
        if key in self._config:
            return "global" if self.is_global else "local"
        if not self.is_global and key in self._global_config:
            return "global"
        env_var = ENV_VARS.get(key)
        if env_var and os.environ.get(env_var):
            return "environment"
        if key in DEFAULTS:
            return "default"
        return None

    def set(self, key: str, value: str) -> None:
        logger.debug("Setting config value", key=key)
        self._config[key] = value
        self._save()

    def unset(self, key: str) -> None:
        logger.debug("Unsetting config value", key=key)
        if key in self._config:
            del self._config[key]
            self._save()

    def list(self) -> dict[str, Any]:
        """List all configuration settings.

        For local config, merges global config with local config (local takes precedence).
        """
        if self.is_global:
            logger.debug("Listing global config values", count=len(self._config))
            return self._config.copy()
        merged = self._global_config.copy()
        merged.update(self._config)
        logger.debug("Listing merged config values", count=len(merged))
        return merged


def get_config(use_global: bool = False) -> Config:
    """Get a configuration instance.

    Args:
        use_global: If True, return global config. If False, return local config with global fallback.
    """
    return Config(use_global=use_global)
