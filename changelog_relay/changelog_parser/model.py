"""Shared record types for changelog parsing."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field

SOURCE_SPLITTER = "splitter"
SOURCE_STRUCTURED = "structured"


@dataclass(frozen=True)
class Entry:
    """One release block: its heading line and the text it spans."""

    header: str
    text: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class Metadata:
    version: str | None = None
    date: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return asdict(self)


@dataclass
class SplitOutcome:
    """Entries produced for a document plus how they were obtained."""

    entries: list[Entry] = field(default_factory=list)
    source: str = SOURCE_SPLITTER
    fell_back: bool = False
    error: str | None = None

    @property
    def headers(self) -> list[str]:
        return [entry.header for entry in self.entries]
