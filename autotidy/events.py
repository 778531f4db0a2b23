"""Notifications emitted to the caller (GUI shell, CLI)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from .logger import Logger
from .stats import format_bytes


@dataclass(frozen=True)
class FileOrganizedEvent:
    """A file was moved into its category folder."""

    file_name: str
    category: str
    size: int
    destination_path: str


class EventSink(Protocol):
    """Receiver for the two notifications the organizing core emits."""

    def file_organized(self, event: FileOrganizedEvent) -> None: ...

    def error(self, message: str) -> None: ...


class CallbackEventSink:
    """Forward events to plain callables."""

    def __init__(
        self,
        on_file_organized: Callable[[FileOrganizedEvent], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        self.on_file_organized = on_file_organized
        self.on_error = on_error

    def file_organized(self, event: FileOrganizedEvent) -> None:
        if self.on_file_organized:
            self.on_file_organized(event)

    def error(self, message: str) -> None:
        if self.on_error:
            self.on_error(message)


class LoggerEventSink:
    """Report events through a Logger."""

    def __init__(self, logger: Logger) -> None:
        self.logger = logger

    def file_organized(self, event: FileOrganizedEvent) -> None:
        self.logger.success(
            f"Moved: {event.file_name} → {event.category} "
            f"({format_bytes(event.size)}) {event.destination_path}"
        )

    def error(self, message: str) -> None:
        self.logger.error(message)
