"""Move history for undo.

Every organize run (or single watcher-triggered move) produces a MoveBatch.
The ledger keeps the most recent batches first and evicts the oldest once
max_batches is exceeded.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

DEFAULT_MAX_BATCHES = 50


def parse_timestamp(value: str | None) -> datetime | None:
    """Read an ISO 8601 timestamp, or None if it is missing or malformed."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class MoveRecord:
    """A single completed file move."""

    source_path: str
    destination_path: str
    file_name: str
    file_size: int
    category: str
    moved_at: datetime
    can_undo: bool = True

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "sourcePath": self.source_path,
            "destinationPath": self.destination_path,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "category": self.category,
            "movedAt": self.moved_at.isoformat(),
            "canUndo": self.can_undo,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MoveRecord:
        """Create from dictionary."""
        return cls(
            source_path=data["sourcePath"],
            destination_path=data["destinationPath"],
            file_name=data.get("fileName") or Path(data["sourcePath"]).name,
            file_size=int(data.get("fileSize", 0)),
            category=data.get("category", ""),
            moved_at=parse_timestamp(data.get("movedAt")) or datetime.now(),
            can_undo=data.get("canUndo", True),
        )


@dataclass
class MoveBatch:
    """All moves from one organize run; the unit of undo."""

    batch_id: str
    start_time: datetime
    end_time: datetime | None = None
    moves: list[MoveRecord] = field(default_factory=list)
    was_undone: bool = False

    @classmethod
    def create_new(cls, now: datetime | None = None) -> MoveBatch:
        """Create an empty batch with a fresh short id."""
        return cls(batch_id=uuid.uuid4().hex[:8], start_time=now or datetime.now())

    @property
    def file_count(self) -> int:
        return len(self.moves)

    @property
    def total_bytes(self) -> int:
        return sum(m.file_size for m in self.moves)

    @property
    def is_undoable(self) -> bool:
        return not self.was_undone and any(m.can_undo for m in self.moves)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "batchId": self.batch_id,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "moves": [m.to_dict() for m in self.moves],
            "wasUndone": self.was_undone,
        }

    @classmethod
    def from_dict(cls, data: dict) -> MoveBatch:
        """Create from dictionary."""
        return cls(
            batch_id=data["batchId"],
            start_time=parse_timestamp(data.get("startTime")) or datetime.now(),
            end_time=parse_timestamp(data.get("endTime")),
            moves=[MoveRecord.from_dict(m) for m in data.get("moves", [])],
            was_undone=data.get("wasUndone", False),
        )


@dataclass
class UndoResult:
    """Outcome of reversing one batch."""

    batch_id: str
    restored: list[MoveRecord] = field(default_factory=list)
    failed: list[tuple[MoveRecord, str]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.restored)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def add_failure(self, move: MoveRecord, reason: str) -> None:
        self.failed.append((move, reason))
        self.messages.append(f"Could not restore {move.file_name}: {reason}")


@dataclass
class HistoryLedger:
    """Bounded list of move batches, most recent first."""

    batches: list[MoveBatch] = field(default_factory=list)
    max_batches: int = DEFAULT_MAX_BATCHES

    def add_batch(self, batch: MoveBatch, now: datetime | None = None) -> bool:
        """Insert a completed batch. Empty batches are ignored."""
        if not batch.moves:
            return False

        batch.end_time = now or datetime.now()
        self.batches.insert(0, batch)
        limit = max(1, self.max_batches)
        del self.batches[limit:]
        return True

    def put_batch(self, batch: MoveBatch, now: datetime | None = None) -> bool:
        """Replace the stored batch with the same id, or add it if there is none.

        Lets a run in progress keep its batch on disk as it grows.
        """
        for i, existing in enumerate(self.batches):
            if existing.batch_id == batch.batch_id:
                batch.end_time = now or datetime.now()
                batch.was_undone = batch.was_undone or existing.was_undone
                self.batches[i] = batch
                return True
        return self.add_batch(batch, now)

    def get_last_undoable_batch(self) -> MoveBatch | None:
        """Most recent batch not yet undone that holds an undoable move."""
        for batch in self.batches:
            if batch.is_undoable:
                return batch
        return None

    def find(self, batch_id: str) -> MoveBatch | None:
        for batch in self.batches:
            if batch.batch_id == batch_id:
                return batch
        return None

    def mark_batch_undone(self, batch_id: str) -> bool:
        batch = self.find(batch_id)
        if batch is None:
            return False
        batch.was_undone = True
        return True

    def clear(self) -> None:
        self.batches.clear()

    def undo(self, batch: MoveBatch) -> UndoResult:
        """Move every file of a batch back to where it came from, newest move first.

        Each record succeeds or fails on its own; a partial undo is still a
        finished undo and the batch is marked undone either way.
        """
        result = UndoResult(batch_id=batch.batch_id)

        for move in reversed(batch.moves):
            if not move.can_undo:
                result.add_failure(move, "move is not undoable")
                continue

            current = Path(move.destination_path)
            original = Path(move.source_path)
            if not current.exists():
                result.add_failure(move, "file no longer exists")
                continue
            if original.exists():
                result.add_failure(move, "original location occupied")
                continue

            try:
                original.parent.mkdir(parents=True, exist_ok=True)
                os.rename(current, original)
            except OSError as e:
                result.add_failure(move, str(e))
                continue
            result.restored.append(move)

        batch.was_undone = True
        return result

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "maxBatches": self.max_batches,
            "batches": [b.to_dict() for b in self.batches],
        }

    @classmethod
    def from_dict(cls, data: dict) -> HistoryLedger:
        """Create from dictionary."""
        max_batches = int(data.get("maxBatches") or DEFAULT_MAX_BATCHES)
        return cls(
            batches=[MoveBatch.from_dict(b) for b in data.get("batches", [])],
            max_batches=max_batches if max_batches > 0 else DEFAULT_MAX_BATCHES,
        )
