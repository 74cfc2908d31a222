"""Shell-style glob matching for repository paths."""
from __future__ import annotations

import re
from collections.abc import Callable, Iterable


def glob_to_regex(glob: str) -> re.Pattern[str]:
    parts: list[str] = []
    index = 0
    while index < len(glob):
        char = glob[index]
        if char == "*":
            if glob.startswith("**", index):
                parts.append(".*")
                index += 2
                continue
            parts.append("[^/]*")
        elif char == "?":
            parts.append(".")
        elif char == ".":
            parts.append(r"\.")
        elif char == "/":
            parts.append("/")
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("^" + "".join(parts) + "$")


def compile_glob(glob: str) -> Callable[[str], bool]:
    pattern = glob_to_regex(glob)
    return lambda path: pattern.fullmatch(path) is not None


def split_globs(globs_csv: str | None) -> list[str]:
    return [glob.strip() for glob in (globs_csv or "").split(",") if glob.strip()]


def filter_by_globs(paths: Iterable[str], globs_csv: str | None) -> list[str]:
    """Keep the paths matching at least one of the comma-separated globs.

    An empty glob list disables filtering.
    """
    globs = split_globs(globs_csv)
    if not globs:
        return list(paths)
    matchers = [compile_glob(glob) for glob in globs]
    return [path for path in paths if any(matcher(path) for matcher in matchers)]
