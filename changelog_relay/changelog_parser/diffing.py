"""Reduce a change to the changelog entries it newly introduces.

Two reductions are offered and they deliberately disagree on edge cases:

* added-lines mode only sees inserted lines, so bullets added under an
  existing heading (whose line was not re-inserted) produce no new entry;
* snapshot mode compares exact header strings, so editing a heading line
  (even a typo fix) makes that entry count as new.
"""
from __future__ import annotations

from .adapter import ABSENT, StructuredParser, split_with_adapter
from .model import Entry, SplitOutcome
from .splitter import DEFAULT_HEADER_PATTERN, split_entries


def extract_added_lines(unified_diff: str) -> str:
    added: list[str] = []
    for line in (unified_diff or "").split("\n"):
        if line.startswith("+") and not line.startswith("+++"):
            added.append(line[1:])
    return "\n".join(added)


async def new_entries_from_added_lines(
    added_text: str | None,
    header_pattern: str = DEFAULT_HEADER_PATTERN,
    parser: StructuredParser = ABSENT,
) -> SplitOutcome:
    if not added_text or not added_text.strip():
        return SplitOutcome()
    return await split_with_adapter(added_text, header_pattern, parser)


def new_entries_from_snapshots(
    before_text: str | None,
    after_text: str | None,
    header_pattern: str = DEFAULT_HEADER_PATTERN,
) -> list[Entry]:
    known = {entry.header for entry in split_entries(before_text, header_pattern)}
    return [
        entry
        for entry in split_entries(after_text, header_pattern)
        if entry.header not in known
    ]
