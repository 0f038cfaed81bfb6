"""
Configuration management for the CHIP-8 interpreter host.

This module provides tools for loading, validating, and managing the host
settings: the calculator model, timer rate, logging, key script input, run
limits and output paths. JSON and YAML files are supported.
"""

import copy
import json
import logging
import os
from typing import Any, Dict, List, Optional

import yaml

from ..constants import TIMER_FREQUENCY
from ..system_configs import SYSTEM_CONFIGS

logger = logging.getLogger("Chip8Handheld.ConfigManager")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigManager:
    """
    Configuration management for the interpreter host.

    Settings are nested dictionaries addressed with dotted key paths
    (``timer.frequency_hz``). User values are validated, deep-merged over
    the defaults and tracked so the modified subset can be inspected.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to configuration file (None for default values)
        """
        # Default configuration
        self.defaults = {
            "model": "ti89",
            "timer": {
                "frequency_hz": TIMER_FREQUENCY
            },
            "logging": {
                "level": "INFO",
                "file": None,
                "console": True
            },
            "input": {
                "key_script": None,
                "frame_rate": 60.0
            },
            "run": {
                "max_steps": None,
                "save_on_limit": False
            },
            "output": {
                "save_path": None,
                "screenshot": None
            }
        }

        # Current configuration (copy of defaults initially)
        self.config = copy.deepcopy(self.defaults)

        # Set of keys that have been modified from defaults
        self.modified_keys = set()

        if config_path:
            self.load_config(config_path)

        logger.debug("ConfigManager initialized")

    def load_config(self, config_path: str) -> bool:
        """
        Load configuration from file.

        Args:
            config_path: Path to configuration file

        Returns:
            True if configuration loaded successfully, False otherwise
        """
        if not os.path.exists(config_path):
            logger.error(f"Configuration file not found: {config_path}")
            return False

        # Determine file format based on extension
        _, ext = os.path.splitext(config_path)
        ext = ext.lower()

        try:
            with open(config_path, 'r') as f:
                if ext == '.json':
                    user_config = json.load(f)
                elif ext in ['.yaml', '.yml']:
                    user_config = yaml.safe_load(f) or {}
                else:
                    logger.error(f"Unsupported configuration format: {ext}")
                    return False
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error loading configuration: {e}")
            return False

        if not self.load_from_dict(user_config):
            return False

        logger.info(f"Configuration loaded from {config_path}")
        return True

    def _merge_config(self, user_config: Dict[str, Any], target: Dict[str, Any], path: str = "") -> None:
        """
        Merge user configuration into ``target``, tracking modified keys.

        Args:
            user_config: User configuration dictionary
            target: Dictionary being merged into
            path: Current key path for tracking (internal use)
        """
        for key, value in user_config.items():
            current_path = f"{path}.{key}" if path else key

            if isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge_config(value, target[key], current_path)
            else:
                target[key] = value
                self.modified_keys.add(current_path)

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate configuration against schema.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not isinstance(config, dict):
            return [f"Configuration must be a mapping, got {type(config).__name__}"]

        if "model" in config and config["model"] not in SYSTEM_CONFIGS:
            valid_models = ", ".join(SYSTEM_CONFIGS.keys())
            errors.append(f"Invalid model: {config['model']}. Valid options: {valid_models}")

        for section in ("timer", "logging", "input", "run", "output"):
            if section in config and not isinstance(config[section], dict):
                errors.append(f"Invalid {section}: {config[section]}. Must be a mapping")
                return errors

        if "timer" in config:
            frequency = config["timer"].get("frequency_hz", TIMER_FREQUENCY)
            if not _is_number(frequency) or frequency <= 0:
                errors.append(f"Invalid timer.frequency_hz: {frequency}. Must be a positive number")

        if "logging" in config:
            log_config = config["logging"]

            if "level" in log_config and log_config["level"] not in LOG_LEVELS:
                errors.append(f"Invalid logging.level: {log_config['level']}. "
                              f"Valid options: {', '.join(LOG_LEVELS)}")

            if "console" in log_config and not isinstance(log_config["console"], bool):
                errors.append(f"Invalid logging.console: {log_config['console']}. Must be a boolean")

        if "input" in config:
            input_config = config["input"]

            if "frame_rate" in input_config:
                rate = input_config["frame_rate"]
                if not _is_number(rate) or rate <= 0:
                    errors.append(f"Invalid input.frame_rate: {rate}. Must be a positive number")

        if "run" in config:
            run_config = config["run"]

            if run_config.get("max_steps") is not None:
                steps = run_config["max_steps"]
                if not isinstance(steps, int) or isinstance(steps, bool) or steps < 1:
                    errors.append(f"Invalid run.max_steps: {steps}. Must be a positive integer or null")

            if "save_on_limit" in run_config and not isinstance(run_config["save_on_limit"], bool):
                errors.append(f"Invalid run.save_on_limit: {run_config['save_on_limit']}. Must be a boolean")

        for key, section in (("key_script", "input"), ("file", "logging"),
                             ("save_path", "output"), ("screenshot", "output")):
            value = config.get(section, {}).get(key)
            if value is not None and not isinstance(value, str):
                errors.append(f"Invalid {section}.{key}: {value}. Must be a path or null")

        return errors

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key path.

        Args:
            key: Configuration key path (e.g., 'timer.frequency_hz')
            default: Default value if key not found

        Returns:
            Configuration value or default if not found
        """
        value = self.config

        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value by key path.

        Args:
            key: Configuration key path (e.g., 'run.max_steps')
            value: Value to set
        """
        keys = key.split('.')
        config = self.config

        # Navigate to the nested dictionary
        for k in keys[:-1]:
            if k not in config or not isinstance(config[k], dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self.modified_keys.add(key)

        logger.debug(f"Configuration updated: {key} = {value}")

    def reset(self, key: Optional[str] = None) -> None:
        """
        Reset configuration to defaults.

        Args:
            key: Key path to reset (None for all)
        """
        if key is None:
            self.config = copy.deepcopy(self.defaults)
            self.modified_keys.clear()
            logger.info("Configuration reset to defaults")
            return

        keys = key.split('.')
        config = self.config
        for k in keys[:-1]:
            if k not in config:
                return
            config = config[k]

        config[keys[-1]] = self._get_default_value(keys)

        self.modified_keys = {k for k in self.modified_keys
                              if k != key and not k.startswith(key + '.')}
        logger.info(f"Configuration key reset to default: {key}")

    def _get_default_value(self, keys: List[str]) -> Any:
        value = self.defaults
        for k in keys:
            if not isinstance(value, dict) or k not in value:
                return None
            value = value[k]
        return copy.deepcopy(value)

    def save_config(self, config_path: str, format: str = 'json') -> bool:
        """
        Save current configuration to file.

        Args:
            config_path: Path to output file
            format: Output format ('json' or 'yaml')

        Returns:
            True if saved successfully, False otherwise
        """
        if format.lower() not in ('json', 'yaml', 'yml'):
            logger.error(f"Unsupported configuration format: {format}")
            return False

        try:
            directory = os.path.dirname(config_path)
            if directory and not os.path.exists(directory):
                os.makedirs(directory)

            with open(config_path, 'w') as f:
                if format.lower() == 'json':
                    json.dump(self.config, f, indent=2)
                else:
                    yaml.dump(self.config, f, default_flow_style=False)
        except OSError as e:
            logger.error(f"Error saving configuration: {e}")
            return False

        logger.info(f"Configuration saved to {config_path}")
        return True

    def get_modified_config(self) -> Dict[str, Any]:
        """
        Get a dictionary containing only modified configuration values.

        Returns:
            Dictionary with modified values
        """
        modified_config = {}

        for key in sorted(self.modified_keys):
            keys = key.split('.')
            current = modified_config

            for k in keys[:-1]:
                current = current.setdefault(k, {})

            current[keys[-1]] = copy.deepcopy(self.get(key))

        return modified_config

    def load_from_dict(self, config_dict: Dict[str, Any]) -> bool:
        """
        Load configuration from dictionary.

        Args:
            config_dict: Configuration dictionary

        Returns:
            True if loaded successfully, False otherwise
        """
        validation_errors = self.validate_config(config_dict)
        if validation_errors:
            for error in validation_errors:
                logger.error(f"Configuration validation error: {error}")
            return False

        self._merge_config(config_dict, self.config)

        logger.debug("Configuration loaded from dictionary")
        return True

    def get_system_config(self) -> Dict[str, Any]:
        """
        Get the hardware description of the configured model.

        Returns:
            Model configuration dictionary
        """
        return SYSTEM_CONFIGS.get(self.get("model", "ti89"), {})

    def as_dict(self) -> Dict[str, Any]:
        """
        Get full configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return copy.deepcopy(self.config)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
