"""Exception types raised by autotidy."""

from __future__ import annotations

from pathlib import Path


class AutoTidyError(Exception):
    """Base error for the project."""


class ConfigError(AutoTidyError):
    """Configuration is malformed or holds an unsupported value."""


class MoveFailed(AutoTidyError):
    """A single file could not be relocated.

    The pipeline reports it and continues with the next file.
    """

    def __init__(self, source: Path, reason: str) -> None:
        super().__init__(f"{source.name}: {reason}")
        self.source = source
        self.reason = reason
