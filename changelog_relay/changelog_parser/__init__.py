"""Changelog entry parsing and diffing package."""
from __future__ import annotations

from . import (
    adapter,
    diffing,
    git_source,
    globs,
    metadata,
    records,
    sections,
    settings,
    splitter,
    structured,
    webhook,
)
from .model import Entry, Metadata, SplitOutcome

__all__ = [
    "adapter",
    "diffing",
    "git_source",
    "globs",
    "metadata",
    "records",
    "sections",
    "settings",
    "splitter",
    "structured",
    "webhook",
    "Entry",
    "Metadata",
    "SplitOutcome",
    "parse_changelog",
]


def parse_changelog(content: str, header_pattern: str | None = None) -> list[dict[str, object]]:
    """Convenience wrapper: split ``content`` and build one record per entry."""
    pattern = header_pattern or splitter.DEFAULT_HEADER_PATTERN
    return [records.build_record(entry) for entry in splitter.split_entries(content, pattern)]
