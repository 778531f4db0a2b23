"""Running totals of organized files."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from .history import parse_timestamp

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_bytes(num_bytes: int) -> str:
    """Format a byte count for display, e.g. 1536 -> '1.5 KB'."""
    size = float(num_bytes)
    order = 0
    while size >= 1024 and order < len(_SIZE_UNITS) - 1:
        order += 1
        size /= 1024
    text = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[order]}"


@dataclass
class Statistics:
    """Cumulative counters plus counters for the current calendar day."""

    total_files_moved: int = 0
    total_bytes_moved: int = 0
    total_run_count: int = 0
    first_run_date: datetime | None = None
    last_run_date: datetime | None = None
    files_moved_today: int = 0
    bytes_moved_today: int = 0
    today_date: date | None = None

    def check_and_reset_daily_counters(self, now: datetime | None = None) -> bool:
        """Start a fresh day if the stored day is not today. Returns True on rollover."""
        today = (now or datetime.now()).date()
        if self.today_date == today:
            return False
        self.files_moved_today = 0
        self.bytes_moved_today = 0
        self.today_date = today
        return True

    def record_move(self, file_size: int, now: datetime | None = None) -> None:
        """Count one real file move."""
        now = now or datetime.now()
        self.check_and_reset_daily_counters(now)

        self.total_files_moved += 1
        self.total_bytes_moved += file_size
        self.files_moved_today += 1
        self.bytes_moved_today += file_size
        self.last_run_date = now
        if self.first_run_date is None:
            self.first_run_date = now

    def record_run_complete(self, now: datetime | None = None) -> None:
        self.total_run_count += 1
        self.last_run_date = now or datetime.now()

    def today(self, now: datetime | None = None) -> tuple[int, int]:
        """(files, bytes) moved today."""
        self.check_and_reset_daily_counters(now)
        return self.files_moved_today, self.bytes_moved_today

    def days_since_first_use(self, now: datetime | None = None) -> int:
        if self.first_run_date is None:
            return 0
        return max(0, ((now or datetime.now()) - self.first_run_date).days)

    def reset(self) -> None:
        fresh = Statistics()
        self.__dict__.update(fresh.__dict__)

    def summary(self) -> str:
        return (
            f"{self.total_files_moved} file(s), {format_bytes(self.total_bytes_moved)} total; "
            f"{self.files_moved_today} file(s), {format_bytes(self.bytes_moved_today)} today; "
            f"{self.total_run_count} run(s)"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "totalFilesMoved": self.total_files_moved,
            "totalBytesMoved": self.total_bytes_moved,
            "totalRunCount": self.total_run_count,
            "firstRunDate": self.first_run_date.isoformat() if self.first_run_date else None,
            "lastRunDate": self.last_run_date.isoformat() if self.last_run_date else None,
            "filesMovedToday": self.files_moved_today,
            "bytesMovedToday": self.bytes_moved_today,
            "todayDate": self.today_date.isoformat() if self.today_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Statistics:
        """Create from dictionary."""
        today = parse_timestamp(data.get("todayDate"))
        return cls(
            total_files_moved=int(data.get("totalFilesMoved", 0)),
            total_bytes_moved=int(data.get("totalBytesMoved", 0)),
            total_run_count=int(data.get("totalRunCount", 0)),
            first_run_date=parse_timestamp(data.get("firstRunDate")),
            last_run_date=parse_timestamp(data.get("lastRunDate")),
            files_moved_today=int(data.get("filesMovedToday", 0)),
            bytes_moved_today=int(data.get("bytesMovedToday", 0)),
            today_date=today.date() if today else None,
        )
