"""Command-line interface for configuration management.

Usage:
    python -m homesecurity.lib.config [COMMAND] [OPTIONS]

Commands:
    validate    - Validate configuration file
    create      - Create new configuration file
    show        - Show the effective configuration (file plus environment)

Examples:
    python -m homesecurity.lib.config validate config.yaml
    python -m homesecurity.lib.config create --output config.yaml
    HOMESEC_BROKER_HOST=localhost python -m homesecurity.lib.config show config.yaml
"""

import argparse
import json
import sys
from pathlib import Path

from homesecurity.lib.config import (
    ConfigManager,
    ConfigurationError,
    save_config_to_file,
)
from homesecurity.lib.config.validation import validate_config_file
from homesecurity.models.monitor_configuration import MonitorConfiguration


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description="Home Security Monitor Configuration Management",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Available commands", metavar="COMMAND")

    validate_parser = subparsers.add_parser("validate", help="Validate configuration file")
    validate_parser.add_argument("config_file", type=Path, help="Path to configuration file to validate")
    validate_parser.add_argument("--strict", action="store_true", help="Treat unknown keys as errors")
    validate_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format for validation results"
    )

    create_parser_ = subparsers.add_parser("create", help="Create new configuration file")
    create_parser_.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("config.yaml"),
        help="Output file path"
    )
    create_parser_.add_argument("--broker-host", help="Broker hostname")
    create_parser_.add_argument("--base-topic", help="Sensor base topic")
    create_parser_.add_argument("--overwrite", action="store_true", help="Overwrite existing file")

    show_parser = subparsers.add_parser("show", help="Show effective configuration")
    show_parser.add_argument("config_file", type=Path, help="Path to configuration file")
    show_parser.add_argument("--format", choices=["yaml", "json"], default="yaml", help="Output format")

    return parser


def cmd_validate(args) -> int:
    """Handle validate command."""
    print(f"Validating configuration: {args.config_file}")

    result = validate_config_file(args.config_file, strict=args.strict)

    if args.format == "json":
        print(json.dumps(result.get_summary(), indent=2))
    else:
        result.print_results(verbose=args.verbose)

    return 0 if result.is_valid else 1


def cmd_create(args) -> int:
    """Handle create command."""
    if args.output.exists() and not args.overwrite:
        print(f"File already exists: {args.output}", file=sys.stderr)
        print("Use --overwrite to replace existing file")
        return 1

    overrides = {}
    if args.broker_host:
        overrides["broker"] = {"host": args.broker_host}
    if args.base_topic:
        overrides["topics"] = {"base_topic": args.base_topic}

    try:
        config = ConfigManager(args.output, validate=True).merge_config(overrides)
        save_config_to_file(config, args.output)
    except ConfigurationError as e:
        print(f"Create error: {e}", file=sys.stderr)
        return 1

    print(f"Created configuration file: {args.output}")
    return 0


def cmd_show(args) -> int:
    """Handle show command."""
    manager = ConfigManager(args.config_file, validate=True)
    try:
        config: MonitorConfiguration = manager.load_config()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps(config.model_dump(mode="json"), indent=2))
    else:
        print(manager.export_config_yaml())

    return 0


def main() -> int:
    parser = create_parser()
    args = parser.parse_args()

    commands = {
        "validate": cmd_validate,
        "create": cmd_create,
        "show": cmd_show,
    }

    if args.command not in commands:
        parser.print_help()
        return 1

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
