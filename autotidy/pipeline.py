"""Classify → move → record, shared by the watcher and full-folder runs."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path

from .classifier import Classifier
from .config import AppConfig
from .errors import MoveFailed
from .events import EventSink, FileOrganizedEvent
from .history import HistoryLedger, MoveBatch, MoveRecord
from .logger import Logger
from .mover import MoveExecutor
from .stats import Statistics
from .storage import StateStore


class OperationStatus(Enum):
    """Status of a file operation."""

    MOVED = "moved"
    PLANNED = "planned"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class FileOperation:
    """Result of a single file operation."""

    source: Path
    status: OperationStatus = OperationStatus.SKIPPED
    destination: Path | None = None
    category: str | None = None
    reason: str | None = None
    record: MoveRecord | None = None


@dataclass
class OrganizeResult:
    """Result of a full-folder run."""

    batch_id: str | None = None
    moved: list[FileOperation] = field(default_factory=list)
    planned: list[FileOperation] = field(default_factory=list)
    skipped: list[FileOperation] = field(default_factory=list)
    failed: list[FileOperation] = field(default_factory=list)
    total_processed: int = 0
    dry_run: bool = False

    @property
    def records(self) -> list[MoveRecord]:
        return [op.record for op in self.moved if op.record is not None]

    def add(self, operation: FileOperation) -> None:
        self.total_processed += 1
        if operation.status == OperationStatus.MOVED:
            self.moved.append(operation)
        elif operation.status == OperationStatus.PLANNED:
            self.planned.append(operation)
        elif operation.status == OperationStatus.FAILED:
            self.failed.append(operation)
        else:
            self.skipped.append(operation)


class OrganizePipeline:
    """Runs files through the classifier and move executor and records the outcome.

    Ledger and statistics are shared with the watcher's sweep thread, so all
    mutation and persistence happens under ``lock``. Other processes (the
    scheduled worker, a second front end) write the same state files, so
    every change reloads them first and saves right after.
    """

    def __init__(
        self,
        config: AppConfig,
        ledger: HistoryLedger,
        statistics: Statistics,
        sink: EventSink,
        logger: Logger | None = None,
        store: StateStore | None = None,
        lock: threading.RLock | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.statistics = statistics
        self.sink = sink
        self.logger = logger or Logger(verbosity=0)
        self.store = store
        self.lock = lock or threading.RLock()
        self.classifier = Classifier(
            config.categories, config.exclude_patterns, config.min_size_bytes
        )
        self.executor = MoveExecutor(config.duplicate_handling)

    def process_file(
        self,
        path: Path,
        batch: MoveBatch | None = None,
        dry_run: bool = False,
        now: datetime | None = None,
    ) -> FileOperation:
        """Organize one file.

        Without a batch the move is recorded as a one-record batch of its own.
        Failures are reported through the sink and never raised.
        """
        try:
            if not path.is_file():
                return FileOperation(path, reason="not a file")
            size = path.stat().st_size
        except OSError as e:
            return FileOperation(path, OperationStatus.SKIPPED, reason=str(e))

        rule = self.classifier.classify(path.name, size)
        if rule is None:
            reason = self.classifier.explain(path.name, size)
            self.logger.debug(f"Skipping: {path.name} ({reason})")
            return FileOperation(path, OperationStatus.SKIPPED, reason=reason)

        if dry_run:
            destination = self.executor.plan_destination(path, rule.destination_path)
            if destination is None:
                return FileOperation(
                    path, OperationStatus.DUPLICATE, category=rule.name,
                    reason="file already exists in target",
                )
            self.logger.info(f"Would move: {path.name} → {destination}")
            return FileOperation(path, OperationStatus.PLANNED, destination, rule.name)

        try:
            record = self.executor.execute(path, rule, now)
        except MoveFailed as e:
            self.sink.error(f"Failed to move {path.name}: {e.reason}")
            return FileOperation(path, OperationStatus.FAILED, category=rule.name, reason=e.reason)

        if record is None:
            self.logger.debug(f"Duplicate: {path.name} already exists in {rule.name}")
            return FileOperation(
                path, OperationStatus.DUPLICATE, category=rule.name,
                reason="file already exists in target",
            )

        with self.lock:
            self._refresh()
            if batch is None:
                single = MoveBatch.create_new(now)
                single.moves.append(record)
                self.ledger.add_batch(single, now)
            else:
                batch.moves.append(record)
                self.ledger.put_batch(batch, now)
            self.statistics.record_move(record.file_size, now)
            self._persist()

        self.sink.file_organized(
            FileOrganizedEvent(
                file_name=record.file_name,
                category=record.category,
                size=record.file_size,
                destination_path=record.destination_path,
            )
        )
        return FileOperation(
            path, OperationStatus.MOVED, Path(record.destination_path), rule.name, record=record
        )

    def organize_folder(self, dry_run: bool = False, now: datetime | None = None) -> OrganizeResult:
        """One pass over the source folder; all moves form a single batch."""
        now = now or datetime.now()
        result = OrganizeResult(dry_run=dry_run)
        source_dir = self.config.source_path

        self.logger.header(f"Organizing {source_dir}")
        if not source_dir.is_dir():
            self.sink.error(f"Source folder does not exist: {source_dir}")
            return result

        cutoff = None
        if self.config.file_age_threshold > 0:
            cutoff = now - timedelta(hours=self.config.file_age_threshold)

        batch = MoveBatch.create_new(now)
        result.batch_id = batch.batch_id

        for path in sorted(source_dir.iterdir()):
            if not path.is_file():
                continue
            if cutoff is not None and not _older_than(path, cutoff):
                self.logger.debug(f"Skipping: {path.name} (newer than {self.config.file_age_threshold}h)")
                result.add(FileOperation(path, reason="too recent"))
                continue
            result.add(self.process_file(path, batch=batch, dry_run=dry_run, now=now))

        if not dry_run:
            with self.lock:
                self._refresh()
                if batch.moves:
                    self.ledger.put_batch(batch, datetime.now())
                self.statistics.record_run_complete(datetime.now())
                self._persist()

        summary = [f"{len(result.moved)} moved"]
        if dry_run:
            summary = [f"{len(result.planned)} planned"]
        if result.skipped:
            summary.append(f"{len(result.skipped)} skipped")
        if result.failed:
            summary.append(f"{len(result.failed)} failed")
        self.logger.info(f"Summary: {', '.join(summary)}")
        return result

    def _refresh(self) -> None:
        if self.store is not None:
            self.store.refresh(self.ledger, self.statistics)

    def _persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save_history(self.ledger)
            self.store.save_statistics(self.statistics)
        except OSError as e:
            self.sink.error(f"Could not save history: {e}")


def _older_than(path: Path, cutoff: datetime) -> bool:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime) <= cutoff
    except OSError:
        return False
