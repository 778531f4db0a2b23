"""Scheduled organize run.

Deployed to the application data directory and started by the OS scheduler:

    python autotidy_worker.py --config PATH [--dry-run] [--verbose]

The script stays at a fixed path across upgrades, so it only parses arguments
and hands over to the installed autotidy package.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from autotidy.app import AutoTidyApp
from autotidy.config import load_config
from autotidy.errors import ConfigError
from autotidy.logger import Logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="autotidy_worker", description="Run one organize pass")
    parser.add_argument("--config", type=Path, required=True, help="Path to configuration file")
    parser.add_argument("--dry-run", action="store_true", help="Preview moves without touching files")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show detailed output")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    if not args.config.exists():
        print(f"Config file not found: {args.config}", file=sys.stderr)
        return 1
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger = Logger(verbosity=2 if args.verbose else 1, dry_run=args.dry_run, settings=config.logging)
    if not config.source_path.is_dir():
        logger.error(f"Source folder does not exist: {config.source_path}")
        return 1

    app = AutoTidyApp(config, logger=logger)
    result = app.organize_now(dry_run=args.dry_run)
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
