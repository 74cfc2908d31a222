"""Read changed files and changelog text from a git checkout.

Every reader degrades to an empty result when git cannot answer (unknown
commit, missing path, no git executable); failures are logged, never raised.
"""
from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from .diffing import extract_added_lines

logger = logging.getLogger(__name__)

NULL_REF_RE = re.compile(r"^0+$")


def is_null_ref(ref: str | None) -> bool:
    return not ref or NULL_REF_RE.match(ref) is not None


def run_git(args: list[str], cwd: str | Path | None = None) -> str:
    completed = subprocess.run(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=True,
    )
    return completed.stdout


def _describe_failure(exc: Exception) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        stderr = (exc.stderr or "").strip()
        return stderr or f"git exited with status {exc.returncode}"
    return str(exc)


def read_changed_files(
    before: str | None, after: str | None, cwd: str | Path | None = None
) -> list[str]:
    if not after:
        return []
    if is_null_ref(before):
        args = ["ls-files"]
    else:
        args = ["diff", "--name-only", str(before), after]
    try:
        output = run_git(args, cwd)
    except (subprocess.CalledProcessError, OSError) as exc:
        logger.warning("Failed to compute changed files: %s", _describe_failure(exc))
        return []
    return [line for line in output.split("\n") if line]


def read_file_at(ref: str | None, path: str, cwd: str | Path | None = None) -> str:
    if is_null_ref(ref):
        return ""
    try:
        return run_git(["show", f"{ref}:{path}"], cwd)
    except (subprocess.CalledProcessError, OSError) as exc:
        logger.warning("Failed to read %s at %s: %s", path, ref, _describe_failure(exc))
        return ""


def read_added_lines(
    before: str | None, after: str | None, path: str, cwd: str | Path | None = None
) -> str:
    """Return the lines ``after`` added to ``path`` relative to ``before``.

    Without a usable ``before`` the whole file at ``after`` counts as added.
    """
    if not after:
        return ""
    if is_null_ref(before):
        return read_file_at(after, path, cwd)
    try:
        diff_output = run_git(["diff", str(before), after, "--", path], cwd)
    except (subprocess.CalledProcessError, OSError) as exc:
        logger.warning("Failed to get diff for %s: %s", path, _describe_failure(exc))
        return ""
    return extract_added_lines(diff_output)
