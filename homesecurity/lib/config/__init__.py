"""Configuration management library with YAML support.

This library provides configuration management for the home security
monitor, including:

- YAML file loading and saving
- Configuration validation with errors and operational warnings
- Environment variable overrides (``HOMESEC_*``)
- Configuration merging and defaults

Usage:
    from homesecurity.lib.config import ConfigManager

    config_manager = ConfigManager("config.yaml")
    config = config_manager.load_config()

    # Create a default file on first run
    config_manager = ConfigManager("config.yaml", create_if_missing=True)
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, Union

import structlog
import yaml

from ...models.monitor_configuration import MonitorConfiguration
from .validation import (
    ConfigValidationError,
    ConfigValidator,
    ValidationResult,
    generate_example_config,
)


logger = structlog.get_logger(__name__)

ENV_PREFIX = "HOMESEC_"

_TRUE_VALUES = ('true', '1', 'yes', 'on')


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""
    pass


class ConfigManager:
    """Configuration manager with YAML support and validation."""

    def __init__(
        self,
        config_path: Union[str, Path],
        validate: bool = True,
        strict_validation: bool = False,
        create_if_missing: bool = False
    ):
        self.config_path = Path(config_path)
        self.validate = validate
        self.strict_validation = strict_validation
        self.create_if_missing = create_if_missing

        self._current_config: Optional[MonitorConfiguration] = None

        self.env_prefix = ENV_PREFIX

        if self.create_if_missing and not self.config_path.exists():
            self._create_default_config()

    def load_config(self) -> MonitorConfiguration:
        """Load and return the current configuration."""
        config = self._load_data(self._load_yaml_file())
        logger.info("Configuration loaded", path=str(self.config_path))
        return config

    def load_default_config(self) -> MonitorConfiguration:
        """Built-in defaults with environment overrides, without reading the file."""
        config = self._load_data(generate_example_config())
        logger.info("Using default configuration")
        return config

    def _load_data(self, config_data: Dict[str, Any]) -> MonitorConfiguration:
        config_data = self._apply_env_overrides(config_data)

        if self.validate:
            validation_result = self._validate_config(config_data)

            if not validation_result.is_valid:
                raise ConfigurationError(
                    f"Configuration validation failed: {validation_result.errors[0]}"
                )

            for warning in validation_result.warnings:
                logger.warning("Configuration warning", detail=warning, path=str(self.config_path))

        self._current_config = self._build(config_data)
        return self._current_config

    def save_config(self, config: MonitorConfiguration) -> None:
        """Save configuration to YAML file."""
        self._save_yaml_file(config.export_dict())
        self._current_config = config

    def export_config_yaml(self, output_path: Optional[Path] = None) -> str:
        """Export current configuration to YAML string or file."""
        if not self._current_config:
            raise ConfigurationError("No configuration loaded")

        yaml_content = self._dict_to_yaml(self._current_config.export_dict())

        if output_path:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(yaml_content)

        return yaml_content

    def merge_config(self, override_data: Dict[str, Any]) -> MonitorConfiguration:
        """Merge override data with the current (or default) configuration."""
        if not self._current_config:
            base_data = generate_example_config()
        else:
            base_data = self._current_config.export_dict()

        merged_data = self._deep_merge(base_data, override_data)

        if self.validate:
            validation_result = self._validate_config(merged_data)
            if not validation_result.is_valid:
                raise ConfigurationError(
                    f"Merged configuration validation failed: {validation_result.errors[0]}"
                )

        return self._build(merged_data)

    def _build(self, config_data: Dict[str, Any]) -> MonitorConfiguration:
        try:
            return MonitorConfiguration(**config_data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _load_yaml_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML parsing error: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error reading config file: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration file must contain a mapping")
        return data

    def _save_yaml_file(self, config_data: Dict[str, Any]) -> None:
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                f.write(self._dict_to_yaml(config_data))
        except OSError as e:
            raise ConfigurationError(f"Error writing config file: {e}") from e

    def _dict_to_yaml(self, data: Dict[str, Any]) -> str:
        header = f"""# Home Security Monitor Configuration
# Generated: {datetime.now().isoformat()}
#
# Sensors publish integer readings on <base_topic><kind>:
#   flame, gas, water, light

"""
        yaml_content = yaml.dump(
            data,
            default_flow_style=False,
            indent=2,
            sort_keys=False,
            allow_unicode=True
        )
        return header + yaml_content

    def _validate_config(self, config_data: Dict[str, Any]) -> ValidationResult:
        validator = ConfigValidator(strict_mode=self.strict_validation)
        return validator.validate_config(config_data)

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        env_mappings = {
            f"{self.env_prefix}BROKER_HOST": ["broker", "host"],
            f"{self.env_prefix}BROKER_PORT": ["broker", "port"],
            f"{self.env_prefix}BASE_TOPIC": ["topics", "base_topic"],
            f"{self.env_prefix}DEBUG": ["enable_debug_logging"],
            f"{self.env_prefix}AUTO_RECONNECT": ["reconnect", "enabled"],
        }

        modified_data = self._deep_merge({}, config_data)

        for env_var, path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                converted_value = self._convert_env_value(env_var, env_value, path)
                self._set_nested_value(modified_data, path, converted_value)
                logger.debug("Environment override applied", variable=env_var)

        return modified_data

    def _convert_env_value(self, env_var: str, value: str, path: list) -> Any:
        if path[-1] in ("enable_debug_logging", "enabled"):
            return value.lower() in _TRUE_VALUES

        if path[-1] == "port":
            try:
                return int(value)
            except ValueError:
                raise ConfigurationError(f"{env_var} must be an integer, got {value!r}")

        return value

    def _set_nested_value(self, data: Dict[str, Any], path: list, value: Any) -> None:
        current = data
        for key in path[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = dict(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            elif isinstance(value, dict):
                result[key] = self._deep_merge({}, value)
            else:
                result[key] = value

        return result

    def _create_default_config(self) -> None:
        logger.info("Creating default configuration", path=str(self.config_path))
        self._save_yaml_file(generate_example_config())


# Convenience functions
def load_config_from_file(
    config_path: Union[str, Path],
    validate: bool = True
) -> MonitorConfiguration:
    """Load configuration from YAML file (convenience function)."""
    return ConfigManager(config_path, validate=validate).load_config()


def save_config_to_file(
    config: MonitorConfiguration,
    config_path: Union[str, Path]
) -> None:
    """Save configuration to YAML file (convenience function)."""
    ConfigManager(config_path, validate=False).save_config(config)


def create_default_config_file(config_path: Union[str, Path]) -> None:
    """Create default configuration file (convenience function)."""
    ConfigManager(config_path, create_if_missing=True, validate=False)


__all__ = [
    'ConfigManager',
    'ConfigurationError',
    'ConfigValidationError',
    'ConfigValidator',
    'ValidationResult',
    'generate_example_config',
    'load_config_from_file',
    'save_config_to_file',
    'create_default_config_file',
]
