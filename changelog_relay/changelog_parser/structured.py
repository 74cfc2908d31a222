"""Heading-aware changelog parser built on a real Markdown parser.

markdown-it-py finds the ``<h2>`` version headings and records the source
lines each block spans. The heading text is read back with BeautifulSoup; the
body is the untouched Markdown between one version heading and the next
``<h1>``/``<h2>``, so inline code, emphasis and links survive as written.
"""
from __future__ import annotations

import re

from bs4 import BeautifulSoup
from markdown_it import MarkdownIt
from markdown_it.token import Token

from .metadata import DATE_RE, extract_version

VERSION_HEADING_TAGS = {"h1", "h2"}

TRAILING_DATE_RE = re.compile(
    rf"\s*(?:[-–—]\s*)?\(?{DATE_RE.pattern}\)?\s*$"
)
HTML_COMMENT_RE = re.compile(r"^\s*<!--.*-->\s*$", re.DOTALL)


def _heading_text(md: MarkdownIt, inline: Token) -> str:
    soup = BeautifulSoup(md.renderInline(inline.content), "lxml")
    return " ".join(soup.get_text().split())


def _comment_lines(tokens: list[Token]) -> set[int]:
    """Source lines occupied by standalone HTML comment blocks."""
    skipped: set[int] = set()
    for token in tokens:
        if token.type == "html_block" and token.map and HTML_COMMENT_RE.match(token.content):
            skipped.update(range(*token.map))
    return skipped


def split_title_and_date(heading: str) -> tuple[str, str | None]:
    """Separate a trailing date (``- 2024-01-02`` or ``(2024-01-02)``) from a heading."""
    match = TRAILING_DATE_RE.search(heading)
    if match is None or match.start() == 0:
        return heading.strip(), None
    return heading[: match.start()].strip(), match.group(1)


def parse_markdown_changelog(text: str) -> dict[str, list[dict[str, str | None]]]:
    source = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    lines = source.split("\n")
    md = MarkdownIt("commonmark")
    tokens = md.parse(source)
    skipped = _comment_lines(tokens)

    boundaries = [
        index
        for index, token in enumerate(tokens)
        if token.type == "heading_open" and token.tag in VERSION_HEADING_TAGS and token.map
    ]
    versions: list[dict[str, str | None]] = []
    for position, index in enumerate(boundaries):
        opening = tokens[index]
        if opening.tag != "h2":
            continue
        heading = _heading_text(md, tokens[index + 1])
        if not heading:
            continue
        start = opening.map[1]
        if position + 1 < len(boundaries):
            end = tokens[boundaries[position + 1]].map[0]
        else:
            end = len(lines)
        body = "\n".join(
            lines[number] for number in range(start, end) if number not in skipped
        )
        title, date = split_title_and_date(heading)
        versions.append(
            {
                "title": title,
                "version": extract_version(heading),
                "date": date,
                "body": body.strip(),
            }
        )
    return {"versions": versions}
