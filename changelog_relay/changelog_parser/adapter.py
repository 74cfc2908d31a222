"""Optional structured changelog parsing with the splitter as safety net."""
from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from .model import SOURCE_STRUCTURED, Entry, SplitOutcome
from .splitter import DEFAULT_HEADER_PATTERN, compile_header_pattern, split_entries
from .structured import parse_markdown_changelog

HEADER_MARKER = "##"
UNRELEASED_TITLE = "Unreleased"

ParseFunction = Callable[[str], Any]


class MalformedResultError(ValueError):
    """Raised when a structured parser returns something other than versions."""


def _versions_from_result(result: Any) -> list[Mapping[str, Any]]:
    if not isinstance(result, Mapping):
        raise MalformedResultError(f"expected a mapping, got {type(result).__name__}")
    versions = result.get("versions")
    if versions is None:
        return []
    if not isinstance(versions, list):
        raise MalformedResultError("'versions' is not a list")
    for version in versions:
        if not isinstance(version, Mapping):
            raise MalformedResultError("version record is not a mapping")
    return versions


def _field(version: Mapping[str, Any], key: str) -> str:
    value = version.get(key)
    return str(value).strip() if value else ""


def entry_from_version(version: Mapping[str, Any]) -> Entry:
    title = _field(version, "title") or _field(version, "version") or UNRELEASED_TITLE
    date = _field(version, "date")
    header = f"{HEADER_MARKER} {title} - {date}" if date else f"{HEADER_MARKER} {title}"
    header = header.strip()
    body = _field(version, "body")
    return Entry(header=header, text=f"{header}\n{body}".strip())


@dataclass(frozen=True)
class Absent:
    """No structured parser: every document goes through the splitter."""

    name: str = "none"

    async def split(self, content: str, header_pattern: str) -> SplitOutcome:
        return SplitOutcome(entries=split_entries(content, header_pattern))


@dataclass(frozen=True)
class Available:
    """A structured parser whose output is advisory.

    Zero recognised versions, a malformed result or an exception all fall back
    to the splitter, which may find entries the stricter parser misses.
    """

    parse: ParseFunction
    name: str = "custom"

    async def split(self, content: str, header_pattern: str) -> SplitOutcome:
        try:
            result = self.parse(content)
            if inspect.isawaitable(result):
                result = await result
            versions = _versions_from_result(result)
        except Exception as exc:
            return SplitOutcome(
                entries=split_entries(content, header_pattern),
                fell_back=True,
                error=f"{type(exc).__name__}: {exc}",
            )
        if not versions:
            return SplitOutcome(entries=split_entries(content, header_pattern), fell_back=True)
        return SplitOutcome(
            entries=[entry_from_version(version) for version in versions],
            source=SOURCE_STRUCTURED,
        )


StructuredParser = Absent | Available

ABSENT = Absent()

STRUCTURED_PARSERS: dict[str, ParseFunction] = {
    "markdown": parse_markdown_changelog,
}


def select_structured_parser(name: str | None) -> StructuredParser:
    key = (name or "").strip().lower()
    if key in {"", "none"}:
        return ABSENT
    try:
        return Available(parse=STRUCTURED_PARSERS[key], name=key)
    except KeyError:
        known = ", ".join(["none", *sorted(STRUCTURED_PARSERS)])
        raise ValueError(f"Unknown structured parser {name!r} (expected one of: {known})") from None


async def split_with_adapter(
    content: str | None,
    header_pattern: str = DEFAULT_HEADER_PATTERN,
    parser: StructuredParser = ABSENT,
) -> SplitOutcome:
    if not content:
        return SplitOutcome()
    compile_header_pattern(header_pattern)
    return await parser.split(content, header_pattern)
