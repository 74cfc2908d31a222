"""Split a changelog document into entries at heading lines."""
from __future__ import annotations

import re

from .model import Entry

DEFAULT_HEADER_PATTERN = r"^##\s+.*$"


def compile_header_pattern(header_pattern: str) -> re.Pattern[str]:
    # re.error is left to propagate: there is no safe fallback pattern.
    return re.compile(header_pattern, re.MULTILINE)


def line_at(text: str, index: int) -> str:
    """Return the full line of ``text`` that contains offset ``index``."""
    start = text.rfind("\n", 0, index) + 1
    end = text.find("\n", index)
    if end == -1:
        end = len(text)
    return text[start:end]


def split_entries(
    content: str | None, header_pattern: str = DEFAULT_HEADER_PATTERN
) -> list[Entry]:
    """Partition ``content`` into entries, one per header pattern match.

    Each entry runs from the start of its match to the start of the next
    match (or the end of the document). Content without any match yields an
    empty list.
    """
    if not content:
        return []
    pattern = compile_header_pattern(header_pattern)
    starts: list[tuple[int, str]] = []
    for match in pattern.finditer(content):
        starts.append((match.start(), line_at(content, match.start()).strip()))
    if not starts:
        return []
    entries: list[Entry] = []
    for index, (start, header) in enumerate(starts):
        end = starts[index + 1][0] if index + 1 < len(starts) else len(content)
        entries.append(Entry(header=header, text=content[start:end].strip()))
    return entries
