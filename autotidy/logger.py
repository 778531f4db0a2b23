"""Console and file logging for autotidy."""

from __future__ import annotations

import re
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import TextIO

from .config import LoggingSettings, LogLevel

LOG_FILE_PREFIX = "autotidy-"

_ANSI = re.compile(r"\033\[[0-9;]*m")


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"

    @classmethod
    def disable(cls) -> None:
        """Disable colors (for non-TTY output)."""
        cls.RESET = ""
        cls.BOLD = ""
        cls.DIM = ""
        cls.GREEN = ""
        cls.YELLOW = ""
        cls.RED = ""
        cls.CYAN = ""
        cls.GRAY = ""


class Logger:
    """Logger with verbosity control and an optional monthly log file.

    verbosity: 0=quiet, 1=normal, 2=verbose. The watcher logs from its own
    threads, so output is serialized.
    """

    def __init__(
        self,
        verbosity: int = 1,
        dry_run: bool = False,
        settings: LoggingSettings | None = None,
    ) -> None:
        self.verbosity = verbosity
        self.dry_run = dry_run
        self.settings = settings if settings and settings.enabled else None
        self._lock = threading.Lock()
        self._log_file: Path | None = None

        # Disable colors if not a TTY
        if not sys.stdout.isatty():
            Colors.disable()

    def info(self, message: str) -> None:
        """Log info message."""
        if self.verbosity >= 1:
            prefix = "[DRY-RUN] " if self.dry_run else ""
            self._emit(f"{prefix}{message}")
        self._write_file(LogLevel.INFO, message)

    def success(self, message: str) -> None:
        """Log success message."""
        if self.verbosity >= 1:
            self._emit(f"{Colors.GREEN}✓{Colors.RESET} {message}")
        self._write_file(LogLevel.INFO, message)

    def warn(self, message: str) -> None:
        """Log warning message."""
        if self.verbosity >= 1:
            self._emit(f"{Colors.YELLOW}⚠{Colors.RESET} {message}")
        self._write_file(LogLevel.WARN, message)

    def error(self, message: str) -> None:
        """Log error message."""
        self._emit(f"{Colors.RED}✗{Colors.RESET} {message}", stream=sys.stderr)
        self._write_file(LogLevel.ERROR, message)

    def debug(self, message: str) -> None:
        """Log verbose message."""
        if self.verbosity >= 2:
            self._emit(f"{Colors.DIM}{message}{Colors.RESET}")
        self._write_file(LogLevel.DEBUG, message)

    def header(self, message: str) -> None:
        """Log header message."""
        if self.verbosity >= 1:
            self._emit(f"\n{Colors.BOLD}=== {message} ==={Colors.RESET}")
        self._write_file(LogLevel.INFO, f"=== {message} ===")

    def _emit(self, line: str, stream: TextIO | None = None) -> None:
        with self._lock:
            print(line, file=stream or sys.stdout)

    def _write_file(self, level: LogLevel, message: str) -> None:
        if self.settings is None or level.severity < self.settings.level.severity:
            return

        now = datetime.now()
        line = f"{now:%Y-%m-%d %H:%M:%S} [{level.value.upper()}] {_ANSI.sub('', message).strip()}\n"
        with self._lock:
            try:
                path = self._current_log_file(now)
                with open(path, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                # Stop file logging after the first failure
                print(f"Could not write log file: {e}", file=sys.stderr)
                self.settings = None

    def _current_log_file(self, now: datetime) -> Path:
        assert self.settings is not None
        log_dir = self.settings.log_dir
        path = log_dir / f"{LOG_FILE_PREFIX}{now:%Y-%m}.log"
        if path != self._log_file:
            log_dir.mkdir(parents=True, exist_ok=True)
            self._log_file = path
            if not path.exists():
                path.touch()
            prune_log_files(log_dir, self.settings.max_log_files)
        return path


def prune_log_files(log_dir: Path, max_files: int) -> list[Path]:
    """Delete the oldest monthly log files beyond max_files. Returns deleted paths."""
    if max_files <= 0:
        return []

    # Monthly names sort chronologically
    logs = sorted(log_dir.glob(f"{LOG_FILE_PREFIX}*.log"))
    removed: list[Path] = []
    for path in logs[: max(0, len(logs) - max_files)]:
        try:
            path.unlink()
            removed.append(path)
        except OSError:
            continue
    return removed
