"""Wires the organizing core together for a desktop shell or the CLI."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import AppConfig, default_data_dir
from .deployer import DeploymentResult, WorkerDeployer
from .events import EventSink, LoggerEventSink
from .history import UndoResult
from .logger import Logger
from .pipeline import OrganizePipeline, OrganizeResult
from .scheduler import ScheduleReconciler, SchedulerBackend, ScheduleResult, SchtasksBackend
from .storage import StateStore
from .watcher import DebouncedWatcher


@dataclass
class StartupReport:
    """What startup() did."""

    deployment: DeploymentResult
    schedule: ScheduleResult | None = None
    watching: bool = False


class AutoTidyApp:
    """Owns the ledger, statistics, watcher and reconcilers for one process."""

    def __init__(
        self,
        config: AppConfig,
        data_dir: Path | None = None,
        logger: Logger | None = None,
        sink: EventSink | None = None,
        scheduler_backend: SchedulerBackend | None = None,
        deployer: WorkerDeployer | None = None,
        watcher_options: dict[str, Any] | None = None,
    ) -> None:
        self.config = config
        self.data_dir = data_dir or default_data_dir()
        self.logger = logger or Logger(settings=config.logging)
        self.sink = sink or LoggerEventSink(self.logger)
        self.store = StateStore(self.data_dir)
        self.ledger = self.store.load_history()
        self.statistics = self.store.load_statistics()
        self.lock = threading.RLock()

        self.deployer = deployer or WorkerDeployer(self.data_dir, logger=self.logger)
        self.scheduler = ScheduleReconciler(
            scheduler_backend or SchtasksBackend(),
            self.deployer,
            config_path=config.config_path,
            logger=self.logger,
        )
        self.watcher = DebouncedWatcher(
            self.ledger,
            self.statistics,
            self.sink,
            self.logger,
            self.store,
            lock=self.lock,
            **(watcher_options or {}),
        )

    def pipeline(self) -> OrganizePipeline:
        return OrganizePipeline(
            self.config, self.ledger, self.statistics, self.sink,
            self.logger, self.store, lock=self.lock,
        )

    def startup(self, start_watcher: bool = False) -> StartupReport:
        """Deploy the worker, repair the schedule and optionally start watching."""
        deployment = self.deployer.deploy_if_needed()
        if not deployment.success:
            self.sink.error(deployment.error_message or "Worker deployment failed")

        report = StartupReport(deployment=deployment)
        if self.config.schedule.enabled:
            report.schedule = self.scheduler.validate_and_repair(self.config)
            if not report.schedule.success:
                self.sink.error(report.schedule.message)
            elif report.schedule.was_repaired:
                self.logger.info(report.schedule.message)

        if start_watcher:
            report.watching = self.watcher.start(self.config)
        return report

    def apply_config(self, config: AppConfig) -> ScheduleResult:
        """Adopt a new configuration after the user saved it."""
        self.config = config
        if config.config_path is not None:
            self.scheduler.config_path = config.config_path
        result = self.scheduler.create_or_update(config)
        if not result.success:
            self.sink.error(result.message)

        if self.watcher.is_running:
            self.watcher.stop()
            self.watcher.start(config)
        return result

    def organize_now(self, dry_run: bool = False) -> OrganizeResult:
        return self.pipeline().organize_folder(dry_run=dry_run)

    def undo_last(self) -> UndoResult | None:
        """Undo the most recent undoable batch, or return None if there is none."""
        with self.lock:
            self.store.refresh(self.ledger, self.statistics)
            batch = self.ledger.get_last_undoable_batch()
            if batch is None:
                return None
            result = self.ledger.undo(batch)
            self._persist()

        for message in result.messages:
            self.sink.error(message)
        return result

    def shutdown(self) -> None:
        """Stop watching. State is already saved after every change."""
        self.watcher.stop()

    def _persist(self) -> None:
        try:
            self.store.save_history(self.ledger)
            self.store.save_statistics(self.statistics)
        except OSError as e:
            self.sink.error(f"Could not save history: {e}")
