"""Tests for the storage module."""
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from autotidy.history import HistoryLedger
from autotidy.history import MoveBatch
from autotidy.history import MoveRecord
from autotidy.stats import Statistics
from autotidy.storage import read_json
from autotidy.storage import StateStore
from autotidy.storage import write_json_atomic


class TestWriteJsonAtomic:
    """Tests for the write_json_atomic function."""

    def test_writes_and_leaves_no_temp_files(self, tmp_path: Path) -> None:
        """Test the target holds the data and no temp file is left behind."""
        target = tmp_path / 'state' / 'data.json'

        write_json_atomic(target, {'a': 1})
        write_json_atomic(target, {'a': 2})

        assert json.loads(target.read_text()) == {'a': 2}
        assert [p.name for p in target.parent.iterdir()] == ['data.json']


class TestReadJson:
    """Tests for the read_json function."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file reads as None."""
        assert read_json(tmp_path / 'missing.json') is None

    def test_corrupt_file(self, tmp_path: Path) -> None:
        """Test invalid JSON reads as None."""
        path = tmp_path / 'bad.json'
        path.write_text('{not json')

        assert read_json(path) is None

    def test_non_object(self, tmp_path: Path) -> None:
        """Test a JSON list is not accepted as state."""
        path = tmp_path / 'list.json'
        path.write_text('[1, 2]')

        assert read_json(path) is None


class TestStateStore:
    """Tests for the StateStore class."""

    def test_defaults_to_data_dir(self, tmp_path: Path) -> None:
        """Test the store uses AUTOTIDY_DATA_DIR when no directory is given."""
        assert StateStore().data_dir == tmp_path / 'appdata'

    def test_fresh_objects_when_missing(self, tmp_path: Path) -> None:
        """Test missing files load as empty state."""
        store = StateStore(tmp_path)

        assert store.load_history().batches == []
        assert store.load_statistics() == Statistics()

    def test_history_persists(self, tmp_path: Path) -> None:
        """Test the ledger is saved and loaded again."""
        store = StateStore(tmp_path)
        ledger = HistoryLedger()
        batch = MoveBatch.create_new(datetime(2024, 5, 1, 9, 0))
        batch.moves.append(
            MoveRecord('/src/a.pdf', '/dst/a.pdf', 'a.pdf', 10, 'Documents', datetime(2024, 5, 1, 9, 0))
        )
        ledger.add_batch(batch, datetime(2024, 5, 1, 9, 1))

        store.save_history(ledger)

        assert store.history_path.exists()
        assert store.load_history().batches == ledger.batches

    def test_statistics_persist(self, tmp_path: Path) -> None:
        """Test statistics are saved and loaded again."""
        store = StateStore(tmp_path)
        stats = Statistics()
        stats.record_move(100, datetime(2024, 5, 1, 9, 0))

        store.save_statistics(stats)

        assert store.load_statistics() == stats

    def test_corrupt_history_yields_fresh_ledger(self, tmp_path: Path) -> None:
        """Test a damaged history file does not raise."""
        store = StateStore(tmp_path)
        store.history_path.write_text(json.dumps({'batches': [{'moves': []}]}))

        assert store.load_history().batches == []

    def test_refresh_updates_objects_in_place(self, tmp_path: Path) -> None:
        """Test refresh brings shared objects up to date with another writer's save."""
        store = StateStore(tmp_path)
        other_ledger = HistoryLedger()
        batch = MoveBatch.create_new(datetime(2024, 5, 1, 9, 0))
        batch.moves.append(
            MoveRecord('/src/a.pdf', '/dst/a.pdf', 'a.pdf', 10, 'Documents', datetime(2024, 5, 1, 9, 0))
        )
        other_ledger.add_batch(batch, datetime(2024, 5, 1, 9, 1))
        other_stats = Statistics()
        other_stats.record_move(10, datetime(2024, 5, 1, 9, 0))
        store.save_history(other_ledger)
        store.save_statistics(other_stats)
        ledger = HistoryLedger()
        stats = Statistics()
        batches = ledger.batches

        store.refresh(ledger, stats)

        assert ledger.batches == other_ledger.batches
        assert ledger.batches is not batches
        assert stats == other_stats

    def test_refresh_without_files_keeps_memory(self, tmp_path: Path) -> None:
        """Test nothing is discarded before the first save."""
        store = StateStore(tmp_path)
        stats = Statistics()
        stats.record_move(10)

        store.refresh(HistoryLedger(), stats)

        assert stats.total_files_moved == 1
