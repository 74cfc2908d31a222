"""Turn entries into the JSON records handed to delivery."""
from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from .metadata import extract_version_and_date
from .model import Entry
from .sections import parse_sections


def build_record(
    entry: Entry,
    *,
    extra: Mapping[str, Any] | None = None,
    include_body_raw: bool = False,
) -> dict[str, Any]:
    """Combine header, metadata and sections; ``extra`` keys win on conflict."""
    meta = extract_version_and_date(entry.header)
    record: dict[str, Any] = {
        "header": entry.header,
        "version": meta.version,
        "date": meta.date,
        "sections": parse_sections(entry.text),
    }
    record.update(extra or {})
    if include_body_raw:
        record["bodyRaw"] = entry.text
    return record


def build_payload(
    entry: Entry,
    *,
    file_path: str,
    before: str,
    after: str,
    project: Mapping[str, str] | None = None,
    github: Mapping[str, str] | None = None,
    extra: Mapping[str, Any] | None = None,
    include_body_raw: bool = False,
) -> dict[str, Any]:
    meta = extract_version_and_date(entry.header)
    payload: dict[str, Any] = {
        "filePath": file_path,
        "commit": {"before": before, "after": after},
        "header": entry.header,
        "version": meta.version,
        "date": meta.date,
        "sections": parse_sections(entry.text),
    }
    for key, value in (project or {}).items():
        if value:
            payload[key] = value
    if github is not None:
        payload["github"] = dict(github)
    payload.update(extra or {})
    if include_body_raw:
        payload["bodyRaw"] = entry.text
    return payload


def render_records(records: Sequence[Mapping[str, Any]]) -> str:
    """Serialise one record as an object and anything else as an array."""
    if len(records) == 1:
        return json.dumps(records[0], indent=2, ensure_ascii=False)
    return json.dumps(list(records), indent=2, ensure_ascii=False)
