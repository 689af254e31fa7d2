"""Command line interface for store migrations."""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import AuthenticationError, ConfigurationError
from .models.migration import MigrationConfig, MigrationRun
from .orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)


def load_config(args) -> MigrationConfig:
    """Load the configuration from a JSON file, or from the environment."""
    if args.config:
        try:
            with open(args.config) as f:
                config_data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read config file {args.config}: {e}")
        return MigrationConfig.from_dict(config_data)

    env_file = args.env_file or find_dotenv(usecwd=True)
    if env_file:
        load_dotenv(env_file)
    return MigrationConfig.from_env(os.environ)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Store Migration Tool - Copy collections and their files between record stores"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run migration
    run_parser = subparsers.add_parser("run", help="Run a migration")
    run_parser.add_argument("--config", help="Path to migration config file (JSON)")
    run_parser.add_argument("--env-file", help="Read settings from this .env file")
    run_parser.add_argument(
        "--collection",
        action="append",
        dest="collections",
        help="Only migrate this configured collection (repeatable)",
    )
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Check connections
    check_parser = subparsers.add_parser("check", help="Check connections to both stores")
    check_parser.add_argument("--config", help="Path to migration config file (JSON)")
    check_parser.add_argument("--env-file", help="Read settings from this .env file")
    check_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command == "run":
        return run_migration(args)
    elif args.command == "check":
        return run_check(args)

    parser.print_help()
    return 2


def run_migration(args) -> int:
    """Run a migration, returning the process exit code."""
    try:
        config = load_config(args)
        orchestrator = MigrationOrchestrator(config)
        result = orchestrator.run_migration(collections=args.collections)
    except (ConfigurationError, AuthenticationError) as e:
        print(f"Error during data transfer: {e}", file=sys.stderr)
        return 1

    print_summary(result)
    return 0


def run_check(args) -> int:
    """Check connectivity and credentials for both stores."""
    try:
        config = load_config(args)
        status = MigrationOrchestrator(config).check_connections()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    for role, ok in status.items():
        print(f"{role}: {'ok' if ok else 'FAILED'}")
    return 0 if all(status.values()) else 1


def print_summary(run: MigrationRun) -> None:
    """Print a per-collection summary of a run."""
    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    print(f"Status: {run.status.value}")

    for result in run.results:
        print(f"\n{result.collection} [{result.status.value}]")
        print(f"  Records: {result.succeeded}/{result.total} transferred, {result.failed} failed")
        print(f"  Deleted from destination: {result.deleted}")
        print(
            f"  Attachments: {result.attachments_uploaded} uploaded, "
            f"{result.attachments_failed} failed"
        )
        if result.hierarchical:
            print(
                f"  Links: {result.links_updated} updated, {result.links_dropped} dropped, "
                f"{result.links_failed} failed"
            )

    print(f"\nRecords Processed: {run.total_records_processed}")
    print(f"Succeeded: {run.total_records_succeeded}")
    print(f"Failed: {run.total_records_failed}")
    if run.duration_seconds:
        print(f"Duration: {run.duration_seconds:.2f} seconds")


if __name__ == "__main__":
    sys.exit(main())
