"""Test configuration for pytest."""
from __future__ import annotations

import os
import subprocess
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from autotidy.config import AppConfig
from autotidy.config import CategoryRule
from autotidy.config import LoggingSettings
from autotidy.events import FileOrganizedEvent


@pytest.fixture(autouse=True)
def change_to_tmp(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, Any, None]:
    """Change to temporary directory and isolate the data directory for each test."""
    original_dir = os.getcwd()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('AUTOTIDY_DATA_DIR', str(tmp_path / 'appdata'))
    for name in (
        'AUTOTIDY_SOURCE_FOLDER',
        'AUTOTIDY_DUPLICATE_HANDLING',
        'AUTOTIDY_FILE_AGE_THRESHOLD',
        'AUTOTIDY_FILE_SIZE_THRESHOLD',
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    os.chdir(original_dir)


class RecordingSink:
    """Event sink that keeps everything it receives."""

    def __init__(self) -> None:
        self.organized: list[FileOrganizedEvent] = []
        self.errors: list[str] = []

    def file_organized(self, event: FileOrganizedEvent) -> None:
        self.organized.append(event)

    def error(self, message: str) -> None:
        self.errors.append(message)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Downloads-style source with Documents and Images categories."""
    source = tmp_path / 'downloads'
    source.mkdir()
    return AppConfig(
        source_folder=str(source),
        file_age_threshold=0,
        categories=[
            CategoryRule('Documents', ['.pdf', '.txt'], str(tmp_path / 'docs')),
            CategoryRule('Images', ['.jpg', '.png'], str(tmp_path / 'images')),
        ],
        exclude_patterns=[],
        logging=LoggingSettings(enabled=False),
    )


def _completed(returncode: int, stdout: str = '', stderr: str = '') -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(['schtasks'], returncode, stdout=stdout, stderr=stderr)


class FakeSchedulerBackend:
    """In-memory scheduler keyed by task name."""

    def __init__(self) -> None:
        self.tasks: dict[str, str] = {}
        self.calls: list[str] = []
        self.definition_paths: list[Path] = []
        self.fail_create = False

    def create(self, name: str, definition_path: Path) -> subprocess.CompletedProcess[str]:
        self.calls.append('create')
        self.definition_paths.append(definition_path)
        if self.fail_create:
            return _completed(1, stderr='ERROR: Access is denied.')
        self.tasks[name] = definition_path.read_text(encoding='utf-16')
        return _completed(0)

    def delete(self, name: str) -> subprocess.CompletedProcess[str]:
        self.calls.append('delete')
        if self.tasks.pop(name, None) is None:
            return _completed(1, stderr='ERROR: The system cannot find the file specified.')
        return _completed(0)

    def query(self, name: str) -> subprocess.CompletedProcess[str]:
        self.calls.append('query')
        if name not in self.tasks:
            return _completed(1, stderr='ERROR: The system cannot find the file specified.')
        return _completed(0, stdout=self.tasks[name])

    def run(self, name: str) -> subprocess.CompletedProcess[str]:
        self.calls.append('run')
        return _completed(0 if name in self.tasks else 1)


@pytest.fixture
def backend() -> FakeSchedulerBackend:
    return FakeSchedulerBackend()
