"""autotidy - command-line front end.

Usage:
    autotidy [options]

Options:
    --config PATH       Configuration file (default: <data dir>/config.json)
    --data-dir DIR      Application data directory
    --source DIR        Override the source folder
    --organize          Organize the source folder once (default action)
    --watch             Watch the source folder until interrupted
    --undo              Undo the last organize batch
    --deploy            Deploy the worker script to its stable location
    --schedule          Create or update the scheduled task from the config
    --repair-schedule   Validate the scheduled task and repair drift
    --remove-schedule   Remove the scheduled task
    --run-task          Start the scheduled task now
    --status            Show deployment, schedule and statistics
    --dry-run           Preview moves without touching files
    --verbose           Show detailed output
    --quiet             Suppress all output except errors
    --version           Show version number
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

from . import __version__
from .app import AutoTidyApp
from .config import CONFIG_FILE_NAME, default_data_dir, load_config
from .errors import ConfigError
from .logger import Colors, Logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="autotidy",
        description="Keep a downloads folder organized by file type",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  autotidy                          # Organize the source folder once
  autotidy --dry-run                # Preview moves
  autotidy --watch                  # Organize new files as they arrive
  autotidy --undo                   # Undo the last batch
  autotidy --schedule               # Register the scheduled worker
  autotidy --repair-schedule        # Fix the scheduled task after an upgrade
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file (default: <data dir>/config.json)",
    )
    parser.add_argument(
        "--data-dir",
        dest="data_dir",
        type=Path,
        help="Application data directory",
    )
    parser.add_argument(
        "--source",
        dest="source_folder",
        help="Override the source folder",
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument("--organize", action="store_true", help="Organize the source folder once")
    actions.add_argument("--watch", action="store_true", help="Watch the source folder until interrupted")
    actions.add_argument("--undo", action="store_true", help="Undo the last organize batch")
    actions.add_argument("--deploy", action="store_true", help="Deploy the worker script")
    actions.add_argument("--schedule", action="store_true", help="Create or update the scheduled task")
    actions.add_argument(
        "--repair-schedule",
        dest="repair_schedule",
        action="store_true",
        help="Validate the scheduled task and repair drift",
    )
    actions.add_argument(
        "--remove-schedule",
        dest="remove_schedule",
        action="store_true",
        help="Remove the scheduled task",
    )
    actions.add_argument("--run-task", dest="run_task", action="store_true", help="Start the scheduled task now")
    actions.add_argument("--status", action="store_true", help="Show deployment, schedule and statistics")

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview moves without touching files",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show detailed output",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress all output except errors",
    )

    return parser.parse_args(argv)


def _watch(app: AutoTidyApp) -> int:
    report = app.startup(start_watcher=True)
    if not report.watching:
        return 1
    app.logger.info("Press Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        app.logger.info("\nStopping watch mode...")
    app.shutdown()
    return 0


def _status(app: AutoTidyApp) -> int:
    logger = app.logger
    config = app.config
    deployment = app.deployer.status()

    logger.header("Configuration")
    logger.info(f"  Config file:  {config.config_path}")
    logger.info(f"  Source:       {config.source_path}")
    logger.info(f"  Categories:   {', '.join(c.name for c in config.enabled_categories)}")

    logger.header("Worker")
    logger.info(f"  Stable path:  {deployment['stable_path']}")
    logger.info(f"  Deployed:     {deployment['deployed']} (version {deployment['version']})")

    logger.header("Schedule")
    if config.schedule.enabled:
        logger.info(
            f"  {config.schedule.frequency.value} at {config.schedule.time}: "
            f"{app.scheduler.inspect().value}"
        )
    else:
        logger.info("  disabled")

    app.store.refresh(app.ledger, app.statistics)
    stats = app.statistics
    stats.check_and_reset_daily_counters()
    logger.header("Statistics")
    logger.info(f"  {stats.summary()}")

    batch = app.ledger.get_last_undoable_batch()
    if batch is not None:
        logger.info(
            f"  Last batch:   {batch.batch_id}, {batch.file_count} file(s) "
            f"at {batch.start_time:%Y-%m-%d %H:%M}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    data_dir = args.data_dir or default_data_dir()
    config_path = args.config or data_dir / CONFIG_FILE_NAME
    if args.config and not args.config.exists():
        print(f"{Colors.RED}Error:{Colors.RESET} Config file not found: {args.config}", file=sys.stderr)
        return 1

    try:
        config = load_config(config_path)
    except ConfigError as e:
        print(f"{Colors.RED}Error:{Colors.RESET} {e}", file=sys.stderr)
        return 1

    if args.source_folder:
        config.source_folder = args.source_folder

    verbosity = 1
    if args.verbose:
        verbosity = 2
    if args.quiet:
        verbosity = 0
    logger = Logger(verbosity=verbosity, dry_run=args.dry_run, settings=config.logging)

    app = AutoTidyApp(config, data_dir=data_dir, logger=logger)

    if args.watch:
        return _watch(app)

    if args.status:
        return _status(app)

    if args.undo:
        undo = app.undo_last()
        if undo is None:
            logger.info("Nothing to undo")
            return 0
        logger.success(f"Restored {undo.success_count} file(s) from batch {undo.batch_id}")
        return 1 if undo.failed else 0

    if args.deploy:
        deployment = app.deployer.deploy_if_needed()
        if not deployment.success:
            logger.error(deployment.error_message or "Worker deployment failed")
            return 1
        if not deployment.was_updated:
            logger.info(f"Worker already up to date: {deployment.deployed_path}")
        return 0

    if args.schedule or args.repair_schedule or args.remove_schedule or args.run_task:
        if args.schedule:
            result = app.scheduler.create_or_update(config)
        elif args.repair_schedule:
            result = app.scheduler.validate_and_repair(config)
        elif args.remove_schedule:
            result = app.scheduler.remove()
        else:
            result = app.scheduler.run_now()
        if not result.success:
            logger.error(result.message)
            return 1
        logger.success(result.message)
        return 0

    if not config.source_path.is_dir():
        logger.error(f"Source folder does not exist: {config.source_path}")
        return 1
    result = app.organize_now(dry_run=args.dry_run)
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
