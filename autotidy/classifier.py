"""Decide which category a file belongs to.

Pure functions, no I/O. Exclude patterns always win over category rules, and
among enabled rules the first one (in declared order) listing the file's
extension is chosen.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from .config import CategoryRule


def matches_exclude_pattern(filename: str, pattern: str) -> bool:
    """Case-insensitive match against '*suffix', 'prefix*' or an exact name."""
    name = filename.lower()
    pattern = pattern.strip().lower()
    if not pattern:
        return False
    if pattern.startswith("*"):
        return name.endswith(pattern[1:])
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    return name == pattern


def should_exclude(filename: str, exclude_patterns: Iterable[str]) -> tuple[bool, str | None]:
    """Check if a file should be excluded."""
    for pattern in exclude_patterns:
        if matches_exclude_pattern(filename, pattern):
            return True, f"matches pattern: {pattern}"
    return False, None


def classify(
    filename: str,
    rules: Sequence[CategoryRule],
    exclude_patterns: Iterable[str] = (),
    size: int = 0,
    min_size_bytes: int = 0,
) -> CategoryRule | None:
    """Return the rule a file is routed by, or None when nothing applies."""
    excluded, _ = should_exclude(filename, exclude_patterns)
    if excluded:
        return None
    if min_size_bytes > 0 and size < min_size_bytes:
        return None

    ext = Path(filename).suffix.lower()
    if not ext:
        return None

    for rule in rules:
        if rule.enabled and rule.has_extension(ext):
            return rule
    return None


class Classifier:
    """Classification bound to one configuration snapshot."""

    def __init__(
        self,
        rules: Sequence[CategoryRule],
        exclude_patterns: Sequence[str] = (),
        min_size_bytes: int = 0,
    ) -> None:
        self.rules = list(rules)
        self.exclude_patterns = list(exclude_patterns)
        self.min_size_bytes = min_size_bytes

    def classify(self, filename: str, size: int = 0) -> CategoryRule | None:
        return classify(
            filename,
            self.rules,
            self.exclude_patterns,
            size=size,
            min_size_bytes=self.min_size_bytes,
        )

    def explain(self, filename: str, size: int = 0) -> str | None:
        """Reason a file would not be classified, or None if it would be."""
        excluded, reason = should_exclude(filename, self.exclude_patterns)
        if excluded:
            return reason
        if self.min_size_bytes > 0 and size < self.min_size_bytes:
            return f"smaller than {self.min_size_bytes // 1024} KB"
        if self.classify(filename, size) is None:
            return f"no category for extension '{Path(filename).suffix.lower()}'"
        return None
