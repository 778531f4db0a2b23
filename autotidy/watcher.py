"""Real-time organizing of new files in the source folder.

Filesystem events only record candidates in a pending set. A sweep thread
releases a candidate once it has been quiet for ``quiet_period`` seconds, so
files that are still being written (browser downloads) are left alone. Moves
happen on the sweep thread and never inside the event callback.
"""

from __future__ import annotations

import os
import threading
import time
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import AppConfig
from .events import EventSink
from .history import HistoryLedger
from .logger import Logger
from .pipeline import FileOperation, OrganizePipeline
from .stats import Statistics
from .storage import StateStore

# Extensions browsers use while a download is in progress
INCOMPLETE_DOWNLOAD_EXTENSIONS = frozenset({".crdownload", ".part", ".tmp"})

DEFAULT_QUIET_PERIOD = 30.0
DEFAULT_SWEEP_INTERVAL = 10.0
DEFAULT_INITIAL_DELAY = 5.0


class WatcherState(Enum):
    """Lifecycle of the watcher."""

    STOPPED = "stopped"
    RUNNING = "running"


class PendingFileHandler(FileSystemEventHandler):
    """Feeds created files and finished downloads into the pending set."""

    def __init__(self, watcher: DebouncedWatcher) -> None:
        super().__init__()
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self.watcher.queue_file(Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        old_path = Path(os.fsdecode(event.src_path))
        new_path = Path(os.fsdecode(event.dest_path))
        if (
            old_path.suffix.lower() in INCOMPLETE_DOWNLOAD_EXTENSIONS
            and new_path.suffix.lower() not in INCOMPLETE_DOWNLOAD_EXTENSIONS
        ):
            self.watcher.queue_file(new_path)


class DebouncedWatcher:
    """Stopped → start(config) → Running → stop() → Stopped."""

    def __init__(
        self,
        ledger: HistoryLedger,
        statistics: Statistics,
        sink: EventSink,
        logger: Logger | None = None,
        store: StateStore | None = None,
        quiet_period: float = DEFAULT_QUIET_PERIOD,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        initial_delay: float = DEFAULT_INITIAL_DELAY,
        observer_factory: Callable[[], Any] = Observer,
        clock: Callable[[], float] = time.monotonic,
        lock: threading.RLock | None = None,
    ) -> None:
        self.ledger = ledger
        self.statistics = statistics
        self.sink = sink
        self.logger = logger or Logger(verbosity=0)
        self.store = store
        self.quiet_period = quiet_period
        self.sweep_interval = sweep_interval
        self.initial_delay = initial_delay
        self.observer_factory = observer_factory
        self.clock = clock
        self.ledger_lock = lock or threading.RLock()

        self.pipeline: OrganizePipeline | None = None
        self._pending: dict[Path, float] = {}
        self._lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = WatcherState.STOPPED
        self._observer: Any = None
        self._sweeper: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == WatcherState.RUNNING

    def pending_files(self) -> dict[Path, float]:
        with self._lock:
            return dict(self._pending)

    def start(self, config: AppConfig) -> bool:
        """Begin watching the configured source folder. Returns False on failure."""
        with self._state_lock:
            if self._state == WatcherState.RUNNING:
                return True

            source_dir = config.source_path
            if not source_dir.is_dir():
                self.sink.error(f"Source folder does not exist: {source_dir}")
                return False

            pipeline = OrganizePipeline(
                config, self.ledger, self.statistics, self.sink,
                self.logger, self.store, lock=self.ledger_lock,
            )

            observer = self.observer_factory()
            try:
                observer.schedule(PendingFileHandler(self), str(source_dir), recursive=False)
                observer.start()
            except OSError as e:
                self.sink.error(f"Failed to start file watcher: {e}")
                return False

            self.pipeline = pipeline
            self._observer = observer
            self._stop_event = threading.Event()
            self._state = WatcherState.RUNNING
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(self._stop_event,),
                name="autotidy-sweep",
                daemon=True,
            )
            self._sweeper.start()

        self.logger.info(f"Watching {source_dir}")
        return True

    def stop(self) -> None:
        """Stop watching. No move is attempted after this returns.

        A sweep already in progress finishes the files it released; this call
        waits for it unless it is made from the sweep thread itself.
        """
        with self._state_lock:
            observer, sweeper = self._observer, self._sweeper
            was_running = self._state == WatcherState.RUNNING
            self._state = WatcherState.STOPPED
            self._observer = None
            self._sweeper = None
            self._stop_event.set()

        if observer is not None:
            observer.stop()
        if sweeper is not None and sweeper is not threading.current_thread():
            sweeper.join()
        if observer is not None:
            try:
                observer.join(timeout=5)
            except RuntimeError:
                pass  # observer thread was never started

        with self._lock:
            self._pending.clear()

        if was_running:
            self.logger.info("File watcher stopped")

    def queue_file(self, path: Path) -> None:
        """Add or refresh a candidate with the current timestamp."""
        if self._state != WatcherState.RUNNING:
            return
        with self._lock:
            self._pending[path] = self.clock()

    def sweep(self, now: float | None = None) -> list[FileOperation]:
        """Release quiet candidates and organize them."""
        if self._state != WatcherState.RUNNING or self.pipeline is None:
            return []

        now = self.clock() if now is None else now
        with self._lock:
            ready = [
                path for path, seen in self._pending.items()
                if now - seen >= self.quiet_period
            ]
            for path in ready:
                del self._pending[path]

        operations: list[FileOperation] = []
        for path in ready:
            try:
                operations.append(self.pipeline.process_file(path, now=datetime.now()))
            except Exception as e:  # noqa: BLE001
                self.sink.error(f"Error processing {path.name}: {e}")
        return operations

    def _sweep_loop(self, stop_event: threading.Event) -> None:
        if stop_event.wait(self.initial_delay):
            return
        while not stop_event.is_set():
            self.sweep()
            if stop_event.wait(self.sweep_interval):
                return

    def __enter__(self) -> DebouncedWatcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
