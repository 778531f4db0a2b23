"""autotidy - keep a downloads-style folder organized.

Watches a folder, classifies new files by extension and moves them into
category folders. A scheduled worker performs full-folder runs; the worker is
deployed to a version-independent location and the OS scheduler entry that
points at it is repaired automatically after upgrades.
"""

from __future__ import annotations

__version__ = "1.0.0"

__all__ = ["__version__"]
