"""
Settings management for the workspace provider.

Handles loading and accessing provider configuration.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional
import logging

from .defaults import DEFAULT_SETTINGS, ENV_OVERRIDES

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


class Settings:
    """
    Provider settings.

    Settings are resolved in three layers, later layers winning:
    1. DEFAULT_SETTINGS
    2. A JSON file (explicit path, or the user config directory)
    3. Environment variables (see ENV_OVERRIDES)

    Path:
        ~/.config/tofuworkspace/settings.json
    """

    def __init__(
        self,
        config_file: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize settings.

        Args:
            config_file: JSON settings file; defaults to the user config directory
            environ: Environment to read overrides from; defaults to os.environ
        """
        self.config_file = Path(config_file) if config_file else self._get_config_dir() / "settings.json"
        self._environ = os.environ if environ is None else environ
        self._settings: dict = {}
        self.load()

    @staticmethod
    def _get_config_dir() -> Path:
        """
        Get the configuration directory.

        Returns:
            Path to configuration directory
        """
        base = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
        return Path(base) / 'tofuworkspace'

    def load(self):
        """
        Load settings from file and environment.

        If the file doesn't exist or is invalid, defaults are used.
        """
        self._settings = copy.deepcopy(DEFAULT_SETTINGS)

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    loaded_settings = json.load(f)
                self._deep_update(self._settings, loaded_settings)
                logger.info(f"Loaded settings from {self.config_file}")
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Failed to load settings: {e}, using defaults")
        else:
            logger.debug("No config file found, using defaults")

        self._apply_environment()

    def _apply_environment(self):
        for env_name, (key, kind) in ENV_OVERRIDES.items():
            raw = self._environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                if kind is bool:
                    value: Any = raw.strip().lower() in _TRUE_VALUES
                else:
                    value = kind(raw)
            except ValueError:
                logger.error(f"Ignoring invalid value for {env_name}: {raw!r}")
                continue
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get setting value.

        Supports nested keys with dot notation.

        Args:
            key: Setting key (use dots for nested values)
            default: Default value if key not found

        Returns:
            Setting value or default
        """
        keys = key.split('.')
        value = self._settings

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any):
        """
        Set setting value.

        Supports nested keys with dot notation.

        Args:
            key: Setting key (use dots for nested values)
            value: Value to set
        """
        keys = key.split('.')
        target = self._settings

        for k in keys[:-1]:
            if k not in target or not isinstance(target[k], dict):
                target[k] = {}
            target = target[k]

        target[keys[-1]] = value

    @property
    def tf_dir(self) -> str:
        return self.get("tf_dir")

    @property
    def tmp_dir(self) -> str:
        """Root of the transient credentials tree, e.g. /tmp/tofu."""
        return os.path.join(self.get("tmp_root"), self.get("tf_dir").lstrip("/"))

    @property
    def plugin_cache_dir(self) -> str:
        return self.get("plugin_cache_dir") or os.path.join(self.tf_dir, "plugin-cache")

    @staticmethod
    def _deep_update(base: dict, updates: dict):
        """
        Recursively update base dict with values from updates dict.

        Args:
            base: Dictionary to update
            updates: Dictionary with new values
        """
        for key, value in updates.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                Settings._deep_update(base[key], value)
            else:
                base[key] = value
