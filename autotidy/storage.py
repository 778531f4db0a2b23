"""Persistence of the history ledger and statistics."""

from __future__ import annotations

import json
import os
import uuid
from pathlib import Path

from .config import default_data_dir
from .history import HistoryLedger
from .stats import Statistics

HISTORY_FILE = "history.json"
STATISTICS_FILE = "statistics.json"


def write_json_atomic(path: Path, data: dict) -> None:
    """Write JSON to a sibling temp file and swap it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_json(path: Path) -> dict | None:
    """Read a JSON object, or None if the file is missing or unreadable."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


class StateStore:
    """Reads and writes state files under the application data directory."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or default_data_dir()

    @property
    def history_path(self) -> Path:
        return self.data_dir / HISTORY_FILE

    @property
    def statistics_path(self) -> Path:
        return self.data_dir / STATISTICS_FILE

    def load_history(self) -> HistoryLedger:
        data = read_json(self.history_path)
        if data is None:
            return HistoryLedger()
        try:
            return HistoryLedger.from_dict(data)
        except (KeyError, TypeError, ValueError):
            return HistoryLedger()

    def save_history(self, ledger: HistoryLedger) -> None:
        write_json_atomic(self.history_path, ledger.to_dict())

    def load_statistics(self) -> Statistics:
        data = read_json(self.statistics_path)
        if data is None:
            return Statistics()
        try:
            return Statistics.from_dict(data)
        except (TypeError, ValueError):
            return Statistics()

    def save_statistics(self, statistics: Statistics) -> None:
        write_json_atomic(self.statistics_path, statistics.to_dict())

    def refresh(self, ledger: HistoryLedger, statistics: Statistics) -> None:
        """Update in-memory state in place with what is saved on disk.

        Objects are updated rather than replaced since the watcher and the
        front end hold references to the same ledger and statistics.
        """
        if self.history_path.exists():
            ledger.__dict__.update(self.load_history().__dict__)
        if self.statistics_path.exists():
            statistics.__dict__.update(self.load_statistics().__dict__)
