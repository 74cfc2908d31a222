"""Group an entry's bullet points under their ``###`` sub-headings."""
from __future__ import annotations

import re

ROOT_SECTION = "root"

LINE_SPLIT_RE = re.compile(r"\r?\n")
SUBHEADING_RE = re.compile(r"^###\s+")
BULLET_RE = re.compile(r"^[-*+]\s+")
NUMBERED_RE = re.compile(r"^\d+\.\s+")


def strip_bullet_marker(line: str) -> str | None:
    """Return the bullet text of ``line`` or ``None`` when it is not a bullet.

    Only one marker is removed, so ``- 1. step`` keeps its ``1. step`` text.
    """
    for marker in (BULLET_RE, NUMBERED_RE):
        match = marker.match(line)
        if match:
            return line[match.end():].strip()
    return None


def parse_sections(entry_text: str) -> dict[str, list[str]]:
    sections: dict[str, list[str]] = {ROOT_SECTION: []}
    current = ROOT_SECTION
    for raw_line in LINE_SPLIT_RE.split(entry_text or ""):
        line = raw_line.rstrip()
        heading = SUBHEADING_RE.match(line)
        if heading:
            current = line[heading.end():].strip()
            sections.setdefault(current, [])
            continue
        bullet = strip_bullet_marker(line)
        if bullet:
            sections[current].append(bullet)
    return sections
