"""Simple YAML configuration loader for gapwatch."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from ..models.observer import ObserverConfig, ObserverMode, Frequency

logger = logging.getLogger(__name__)

# Keys holding filesystem paths, resolved against the config file location
PATH_KEYS = (
    ('storage', 'data_directory'),
    ('logging', 'file_path'),
)


class GapwatchConfig:
    """gapwatch configuration loader."""

    def __init__(self, config_path: str):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_file = Path(config_path)

        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e

        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping")

        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in PATH_KEYS:
            if section in config and isinstance(config[section], dict) and key in config[section]:
                path = config[section][key]
                if path and not os.path.isabs(path):
                    config[section][key] = str(config_dir / path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'observer.mode').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'observer.frequency')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_data_directory(self) -> str:
        """Get data directory path."""
        data_dir = self.get('storage.data_directory', 'data')
        return str(Path(data_dir).absolute())

    def get_judgment_url(self) -> str:
        """Get the judgment service URL - raises if not configured."""
        url = self.get('observer.judgment_url')
        if not url:
            raise ValueError("observer.judgment_url not configured")
        return url

    def get_observer_config(self) -> ObserverConfig:
        """Build the initial observer settings from the observer section."""
        try:
            mode = ObserverMode(self.get('observer.mode', 'active'))
            frequency = Frequency(self.get('observer.frequency', 'balanced'))
        except ValueError as e:
            raise ValueError(f"Invalid observer setting: {e}") from e
        return ObserverConfig(mode=mode, frequency=frequency)
