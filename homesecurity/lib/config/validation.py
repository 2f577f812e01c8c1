"""Configuration validation utilities for YAML config files.

Checks a raw configuration dictionary against the MonitorConfiguration model
and adds the operational warnings the model itself cannot express.
"""

from pathlib import Path
from typing import Dict, List, Any, Optional, Union

import yaml
from pydantic import ValidationError

from ...models.monitor_configuration import MonitorConfiguration


# Public brokers accept anyone, so anyone can publish fake readings.
PUBLIC_BROKERS = {
    "broker.hivemq.com",
    "test.mosquitto.org",
    "broker.emqx.io",
    "mqtt.eclipseprojects.io",
}

KNOWN_SECTIONS = {"broker", "topics", "alerts", "reconnect", "enable_debug_logging", "json_logs"}


class ConfigValidationError(Exception):
    """Custom exception for configuration validation errors."""

    def __init__(self, message: str, path: str = "", details: Optional[Dict] = None):
        self.message = message
        self.path = path
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.path:
            return f"Config validation error at '{self.path}': {self.message}"
        return f"Config validation error: {self.message}"


class ValidationResult:
    """Result of configuration validation."""

    def __init__(self):
        self.is_valid = True
        self.errors: List[ConfigValidationError] = []
        self.warnings: List[str] = []

    def add_error(self, error: ConfigValidationError) -> None:
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, message: str, path: str = "") -> None:
        warning_msg = f"Warning at '{path}': {message}" if path else f"Warning: {message}"
        self.warnings.append(warning_msg)

    def get_summary(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": [str(error) for error in self.errors],
            "warnings": self.warnings,
        }

    def print_results(self, verbose: bool = True) -> None:
        """Print validation results to console."""
        if self.is_valid:
            print("✓ Configuration validation passed")
        else:
            print("✗ Configuration validation failed")

        if self.errors:
            print(f"\nErrors ({len(self.errors)}):")
            for error in self.errors:
                print(f"  • {error}")

        if self.warnings and verbose:
            print(f"\nWarnings ({len(self.warnings)}):")
            for warning in self.warnings:
                print(f"  • {warning}")


class ConfigValidator:
    """Validates monitor configuration dictionaries and files."""

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode
        self.result = ValidationResult()

    def validate_config(self, config_data: Dict[str, Any]) -> ValidationResult:
        """Validate complete configuration dictionary."""
        self.result = ValidationResult()

        if not isinstance(config_data, dict):
            self.result.add_error(ConfigValidationError("Configuration must be a mapping"))
            return self.result

        self._validate_structure(config_data)
        self._validate_base_topic(config_data)

        config_obj = self._validate_pydantic_model(config_data)
        if config_obj:
            self._validate_broker(config_obj)
            self._validate_topics(config_obj)
            self._validate_reconnect(config_obj)

        return self.result

    def validate_yaml_file(self, file_path: Union[str, Path]) -> ValidationResult:
        """Validate YAML configuration file."""
        self.result = ValidationResult()
        file_path = Path(file_path)

        if not file_path.is_file():
            self.result.add_error(ConfigValidationError(
                f"Configuration file does not exist: {file_path}"
            ))
            return self.result

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.result.add_error(ConfigValidationError(f"YAML parsing error: {e}"))
            return self.result

        return self.validate_config(config_data or {})

    def _validate_structure(self, config: Dict[str, Any]) -> None:
        unknown_keys = set(config.keys()) - KNOWN_SECTIONS
        if not unknown_keys:
            return

        if self.strict_mode:
            for key in sorted(unknown_keys):
                self.result.add_error(ConfigValidationError(
                    f"Unknown configuration key: {key}",
                    path=key
                ))
        else:
            self.result.add_warning(
                f"Unknown configuration keys: {', '.join(sorted(unknown_keys))}"
            )

    def _validate_base_topic(self, config: Dict[str, Any]) -> None:
        """Report wildcards explicitly, before the model error hides the reason."""
        topics = config.get("topics") or {}
        base_topic = topics.get("base_topic") if isinstance(topics, dict) else None
        if isinstance(base_topic, str) and ("#" in base_topic or "+" in base_topic):
            self.result.add_error(ConfigValidationError(
                "Base topic must not contain MQTT wildcards ('#' or '+')",
                path="topics.base_topic"
            ))

    def _validate_pydantic_model(self, config: Dict[str, Any]) -> Optional[MonitorConfiguration]:
        try:
            return MonitorConfiguration(**config)
        except ValidationError as e:
            for error in e.errors():
                field_path = ".".join(str(x) for x in error['loc'])
                if field_path == "topics.base_topic" and not self.result.is_valid:
                    continue
                self.result.add_error(ConfigValidationError(
                    error['msg'],
                    path=field_path,
                    details={"type": error['type'], "input": error.get('input')}
                ))
            return None
        except ValueError as e:
            self.result.add_error(ConfigValidationError(str(e)))
            return None

    def _validate_broker(self, config: MonitorConfiguration) -> None:
        if config.broker.host.lower() in PUBLIC_BROKERS:
            self.result.add_warning(
                f"{config.broker.host} is a public broker; anyone can publish sensor readings",
                path="broker.host"
            )

        if config.broker.port == 8883:
            self.result.add_warning(
                "Port 8883 is normally MQTT over TLS, which this monitor does not negotiate",
                path="broker.port"
            )

    def _validate_topics(self, config: MonitorConfiguration) -> None:
        if not config.topics.base_topic.endswith("/"):
            self.result.add_warning(
                f"Base topic has no trailing '/'; subscribing to {config.topics.topic_filter}",
                path="topics.base_topic"
            )

        if not config.topics.auto_subscribe:
            self.result.add_warning(
                "auto_subscribe is off; no readings arrive until subscribe() is called",
                path="topics.auto_subscribe"
            )

    def _validate_reconnect(self, config: MonitorConfiguration) -> None:
        reconnect = config.reconnect
        if reconnect.enabled and reconnect.initial_delay_s < 0.5:
            self.result.add_warning(
                f"Very short reconnect delay ({reconnect.initial_delay_s}s) may hammer the broker",
                path="reconnect.initial_delay_s"
            )


def validate_config_dict(config_data: Dict[str, Any], strict: bool = False) -> ValidationResult:
    """Validate configuration dictionary (convenience function)."""
    return ConfigValidator(strict_mode=strict).validate_config(config_data)


def validate_config_file(file_path: Union[str, Path], strict: bool = False) -> ValidationResult:
    """Validate configuration YAML file (convenience function)."""
    return ConfigValidator(strict_mode=strict).validate_yaml_file(file_path)


def generate_example_config() -> Dict[str, Any]:
    """Generate example configuration dictionary."""
    return MonitorConfiguration().export_dict()
