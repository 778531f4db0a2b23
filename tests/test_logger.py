"""Tests for the logger module."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from autotidy.config import LoggingSettings
from autotidy.config import LogLevel
from autotidy.logger import Logger
from autotidy.logger import prune_log_files


class TestLoggerConsole:
    """Tests for console output."""

    def test_quiet_suppresses_info_but_not_errors(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test verbosity 0 only shows errors."""
        logger = Logger(verbosity=0)

        logger.info('hello')
        logger.error('broken')

        captured = capsys.readouterr()
        assert captured.out == ''
        assert 'broken' in captured.err

    def test_debug_needs_verbose(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test debug output only appears at verbosity 2."""
        Logger(verbosity=1).debug('hidden')
        Logger(verbosity=2).debug('shown')

        out = capsys.readouterr().out
        assert 'hidden' not in out
        assert 'shown' in out

    def test_dry_run_prefix(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Test info lines are marked in dry-run mode."""
        Logger(dry_run=True).info('would move')

        assert '[DRY-RUN] would move' in capsys.readouterr().out


class TestLoggerFile:
    """Tests for the monthly log file."""

    def test_writes_monthly_file(self, tmp_path: Path) -> None:
        """Test messages land in autotidy-YYYY-MM.log without color codes."""
        settings = LoggingSettings(log_path=str(tmp_path / 'logs'))
        logger = Logger(verbosity=0, settings=settings)

        logger.success('moved a.pdf')
        logger.error('failed b.pdf')

        log_file = tmp_path / 'logs' / f'autotidy-{datetime.now():%Y-%m}.log'
        content = log_file.read_text()
        assert '[INFO] moved a.pdf' in content
        assert '[ERROR] failed b.pdf' in content
        assert '\033[' not in content

    def test_level_filter(self, tmp_path: Path) -> None:
        """Test messages below the configured level are not written."""
        settings = LoggingSettings(log_path=str(tmp_path), level=LogLevel.WARN)
        logger = Logger(verbosity=0, settings=settings)

        logger.info('routine')
        logger.debug('detail')
        logger.warn('careful')

        content = next(tmp_path.glob('autotidy-*.log')).read_text()
        assert 'routine' not in content
        assert 'detail' not in content
        assert '[WARN] careful' in content

    def test_disabled_settings_write_nothing(self, tmp_path: Path) -> None:
        """Test no file is created when file logging is off."""
        logger = Logger(verbosity=0, settings=LoggingSettings(enabled=False, log_path=str(tmp_path)))

        logger.error('nothing on disk')

        assert list(tmp_path.glob('*.log')) == []

    def test_write_failure_disables_file_logging(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test an unwritable log file does not raise."""
        logger = Logger(verbosity=0, settings=LoggingSettings(log_path=str(tmp_path)))

        with patch('builtins.open', side_effect=PermissionError('denied')):
            logger.error('first')

        assert logger.settings is None
        assert 'Could not write log file' in capsys.readouterr().err


class TestPruneLogFiles:
    """Tests for the prune_log_files function."""

    def test_keeps_newest(self, tmp_path: Path) -> None:
        """Test the oldest monthly files beyond the limit are deleted."""
        for month in ('2024-01', '2024-02', '2024-03', '2024-04'):
            (tmp_path / f'autotidy-{month}.log').write_text(month)
        (tmp_path / 'other.log').write_text('untouched')

        removed = prune_log_files(tmp_path, 2)

        assert [p.name for p in removed] == ['autotidy-2024-01.log', 'autotidy-2024-02.log']
        assert sorted(p.name for p in tmp_path.iterdir()) == [
            'autotidy-2024-03.log',
            'autotidy-2024-04.log',
            'other.log',
        ]

    def test_zero_limit_keeps_everything(self, tmp_path: Path) -> None:
        """Test a limit of zero disables pruning."""
        (tmp_path / 'autotidy-2024-01.log').write_text('')

        assert prune_log_files(tmp_path, 0) == []
