"""Relocate a single classified file."""

from __future__ import annotations

import errno
import os
from datetime import datetime
from pathlib import Path

from .config import CategoryRule, DuplicateStrategy
from .errors import MoveFailed
from .history import MoveRecord

# Attempts at claiming a free name when other processes keep taking them
MAX_CLAIM_ATTEMPTS = 10

_NO_HARDLINK_ERRNOS = {errno.EPERM, errno.ENOTSUP, errno.EOPNOTSUPP, errno.EMLINK}


def unique_destination(target_dir: Path, filename: str) -> Path:
    """First free name among name.ext, name_1.ext, name_2.ext, ..."""
    candidate = target_dir / filename
    if not candidate.exists():
        return candidate

    path = Path(filename)
    counter = 1
    while True:
        candidate = target_dir / f"{path.stem}_{counter}{path.suffix}"
        if not candidate.exists():
            return candidate
        counter += 1


def rename_no_replace(source: Path, destination: Path) -> None:
    """Rename ``source`` to ``destination``, raising FileExistsError if it is taken.

    Windows renames already refuse an existing target. A POSIX rename would
    replace it, so there the file is hard-linked under the new name and the
    old name removed.
    """
    if os.name == "nt":
        os.rename(source, destination)
        return

    try:
        os.link(source, destination)
    except FileExistsError:
        raise
    except OSError as e:
        if e.errno not in _NO_HARDLINK_ERRNOS:
            raise
        # Filesystem without hard links
        if destination.exists():
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), str(destination)) from e
        os.rename(source, destination)
        return

    try:
        os.unlink(source)
    except OSError:
        os.unlink(destination)
        raise


def _describe_os_error(e: OSError) -> str:
    if isinstance(e, FileNotFoundError):
        return "source vanished before it could be moved"
    if isinstance(e, PermissionError):
        return "permission denied"
    if e.errno == errno.ENAMETOOLONG:
        return "path too long"
    if e.errno == errno.EXDEV:
        return "destination is on a different volume"
    if isinstance(e, FileExistsError):
        return "destination was created by another process"
    return e.strerror or str(e)


class MoveExecutor:
    """Moves files into category folders with duplicate-name handling.

    File data is never copied, so an interrupted move cannot leave a partial
    file behind. Cross-volume destinations are reported as failures.
    """

    def __init__(self, duplicate_strategy: DuplicateStrategy = DuplicateStrategy.RENAME) -> None:
        self.duplicate_strategy = duplicate_strategy

    def plan_destination(self, source: Path, target_dir: Path) -> Path | None:
        """Where a file would land, or None if the duplicate policy skips it."""
        destination = target_dir / source.name
        if not destination.exists():
            return destination
        if self.duplicate_strategy == DuplicateStrategy.SKIP:
            return None
        return unique_destination(target_dir, source.name)

    def execute(
        self, source: Path, rule: CategoryRule, now: datetime | None = None
    ) -> MoveRecord | None:
        """Move one file. Returns None when skipped as a duplicate.

        Raises MoveFailed for locked, vanished or unreachable files.
        """
        target_dir = rule.destination_path
        try:
            size = source.stat().st_size
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MoveFailed(source, _describe_os_error(e)) from e

        # Already in its category folder
        if source.parent.resolve() == target_dir.resolve():
            return None

        for _ in range(MAX_CLAIM_ATTEMPTS):
            destination = self.plan_destination(source, target_dir)
            if destination is None:
                return None
            try:
                rename_no_replace(source, destination)
                break
            except FileExistsError:
                # Taken between planning and the rename
                continue
            except OSError as e:
                raise MoveFailed(source, _describe_os_error(e)) from e
        else:
            raise MoveFailed(source, "destination was created by another process")

        return MoveRecord(
            source_path=str(source),
            destination_path=str(destination),
            file_name=source.name,
            file_size=size,
            category=rule.name,
            moved_at=now or datetime.now(),
        )
