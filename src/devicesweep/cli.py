"""
devicesweep Command Line Interface.

Provides commands for cleaning up stale directory devices:
- report: Export stale devices without changing them
- disable: Disable stale enabled devices
- delete: Delete stale enabled devices
- filter: Show the threshold and filter a sweep would use
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from devicesweep import __version__
from devicesweep.config import (
    ConfigError,
    DevicesweepConfig,
    LoggingConfig,
    load_config,
    validate_config,
)
from devicesweep.core.runner import SweepReport, create_runner
from devicesweep.directory.errors import DirectoryError, FatalDirectoryError
from devicesweep.export import ExportError
from devicesweep.policy.engine import StaleDeviceEvaluator
from devicesweep.policy.models import SweepMode


logger = logging.getLogger("devicesweep")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="devicesweep",
        description="Report, disable or delete stale Entra ID devices",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        metavar="FILE",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # report command
    report_parser = subparsers.add_parser(
        "report", help="Export stale devices without changing them"
    )
    add_sweep_arguments(report_parser)
    report_parser.set_defaults(func=cmd_sweep, mode=SweepMode.REPORT)

    # disable / delete commands
    for mode, help_text in (
        (SweepMode.DISABLE, "Disable stale enabled devices"),
        (SweepMode.DELETE, "Delete stale enabled devices"),
    ):
        mutate_parser = subparsers.add_parser(mode.value, help=help_text)
        add_sweep_arguments(mutate_parser)
        run_group = mutate_parser.add_mutually_exclusive_group()
        run_group.add_argument(
            "--dry-run",
            dest="dry_run",
            action="store_const",
            const=True,
            default=None,
            help="Simulate changes (default)",
        )
        run_group.add_argument(
            "--commit",
            dest="dry_run",
            action="store_const",
            const=False,
            help="Apply changes; they cannot be undone",
        )
        mutate_parser.set_defaults(func=cmd_sweep, mode=mode)

    # filter command
    filter_parser = subparsers.add_parser(
        "filter", help="Show the threshold and filter a sweep would use"
    )
    add_sweep_arguments(filter_parser, export=False)
    filter_parser.set_defaults(func=cmd_filter, mode=SweepMode.REPORT)

    # Parse arguments
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    # Execute command
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("Interrupted; results were not exported")
        return 130


def add_sweep_arguments(parser: argparse.ArgumentParser, export: bool = True) -> None:
    """Add options shared by every sweep command."""
    parser.add_argument(
        "-d", "--days-back",
        type=int,
        default=None,
        metavar="N",
        help="Days since last sign-in that make a device stale (default: 90)",
    )
    parser.add_argument(
        "--include-enabled",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Include enabled devices (default: yes)",
    )
    parser.add_argument(
        "--include-disabled",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Include disabled devices (default: yes)",
    )
    if export:
        parser.add_argument(
            "-o", "--export-folder",
            metavar="DIR",
            default=None,
            help="Folder for the CSV export (default: temp directory)",
        )


def setup_logging(config: LoggingConfig, verbose: bool = False) -> None:
    """Configure logging based on config."""
    level_name = "debug" if verbose else config.log_level
    level = getattr(logging, level_name.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        Path(config.log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )


def get_config(args: argparse.Namespace) -> DevicesweepConfig | None:
    """Load configuration, printing the problem if it cannot be read."""
    try:
        return load_config(args.config)
    except (FileNotFoundError, ConfigError) as e:
        print(f"Configuration error: {e}")
    except yaml.YAMLError as e:
        print(f"Configuration file is not valid YAML: {e}")
    return None


def sweep_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Collect sweep option overrides from parsed arguments."""
    overrides = {
        "days_back": args.days_back,
        "include_enabled": args.include_enabled,
        "include_disabled": args.include_disabled,
        "export_folder": getattr(args, "export_folder", None),
    }
    if args.mode.mutates:
        overrides["dry_run"] = args.dry_run
    else:
        overrides["dry_run"] = True
    return overrides


def output(data: Any, args: argparse.Namespace) -> None:
    """Output data in requested format."""
    if getattr(args, "json", False):
        print(json.dumps(data, indent=2, default=str))
    elif isinstance(data, dict):
        for key, value in data.items():
            print(f"{key}: {value}")
    else:
        print(data)


def print_summary(report: SweepReport) -> None:
    """Print the human-readable result of a sweep."""
    if report.mode.mutates and report.options.dry_run:
        print("[dry-run] No changes were committed")

    print(report.message)
    excluded = report.exported_count - report.identified_count
    if excluded:
        print(f"{excluded} excluded devices recorded with their notes in {report.export_path}")

    for failure in report.failures:
        print(f"Failed to {report.mode.verb} {failure.device.label}: {failure.error}")


def cmd_sweep(args: argparse.Namespace) -> int:
    """Run a report, disable or delete sweep."""
    config = get_config(args)
    if config is None:
        return 1
    setup_logging(config.logging, args.verbose)

    try:
        options = config.sweep.to_options(**sweep_overrides(args))
    except ValueError as e:
        print(f"Invalid option: {e}")
        return 1

    errors = validate_config(config, require_credentials=not options.is_vacuous)
    if errors:
        print("Configuration invalid:")
        for error in errors:
            print(f"  - {error}")
        return 1

    try:
        runner = create_runner(config, args.mode, options=options)
        report = runner.run()
    except FatalDirectoryError as e:
        logger.error("Authentication or authorization failed: %s", e)
        print(f"Authentication or authorization failed: {e}")
        return 1
    except DirectoryError as e:
        logger.error("Directory query failed: %s", e)
        print(f"Directory query failed: {e}")
        return 1
    except ExportError as e:
        logger.error("%s", e)
        print(f"Export failed: {e}")
        return 1

    if getattr(args, "json", False):
        output(report.to_dict(), args)
    else:
        print_summary(report)

    return 0


def cmd_filter(args: argparse.Namespace) -> int:
    """Show the threshold and filter without contacting the directory."""
    config = get_config(args)
    if config is None:
        return 1

    try:
        options = config.sweep.to_options(**sweep_overrides(args))
    except ValueError as e:
        print(f"Invalid option: {e}")
        return 1

    evaluator = StaleDeviceEvaluator(options, args.mode)
    result = {
        "days_back": options.days_back,
        "threshold": evaluator.threshold,
        "filter": evaluator.filter_predicate,
    }

    if getattr(args, "json", False):
        output(result, args)
    else:
        print(f"Threshold:  {result['threshold']}")
        if result["filter"] is None:
            print("Filter:     none (enabled and disabled devices both excluded)")
        else:
            print(f"Filter:     {result['filter']}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
