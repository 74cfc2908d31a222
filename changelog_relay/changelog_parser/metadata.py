"""Lexical version and date extraction from entry header lines."""
from __future__ import annotations

import re

from .model import Metadata

VERSION_RE = re.compile(r"\b(\d+\.\d+\.\d+(?:[-+A-Za-z0-9.]+)?)\b")
DATE_RE = re.compile(r"(\d{4}[-/]\d{2}[-/]\d{2})")


def extract_version(header_line: str) -> str | None:
    match = VERSION_RE.search(header_line or "")
    return match.group(1) if match else None


def extract_date(header_line: str) -> str | None:
    match = DATE_RE.search(header_line or "")
    return match.group(1) if match else None


def extract_version_and_date(header_line: str) -> Metadata:
    """Pull the first semver-shaped token and the first date-shaped token.

    Neither value is validated; ``None`` only means the shape was absent.
    """
    return Metadata(version=extract_version(header_line), date=extract_date(header_line))
